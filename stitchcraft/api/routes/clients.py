"""Client book: CRUD, measurements and tracking links."""
import uuid
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.api.dependencies import client_ip
from stitchcraft.api.schemas import (
    ClientCreate,
    ClientResponse,
    ClientUpdate,
    MeasurementCreate,
    MeasurementResponse,
    TrackingTokenResponse,
)
from stitchcraft.core.audit import log_audit
from stitchcraft.core.exceptions import ConflictError
from stitchcraft.core.guards import OrganizationContext, fetch_in_organization, require_permission
from stitchcraft.core.permissions import Permission
from stitchcraft.core.tracking import create_tracking_token
from stitchcraft.database.connection import get_db
from stitchcraft.database.models import (
    Appointment,
    Client,
    ClientMeasurement,
    ClientTrackingToken,
    Invoice,
    Order,
    User,
    utcnow,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/clients", tags=["clients"])


async def _ensure_phone_available(
    db: AsyncSession, tailor_id: uuid.UUID, phone: str, exclude_id: Optional[uuid.UUID] = None
) -> None:
    query = select(Client.id).where(Client.tailor_id == tailor_id, Client.phone == phone)
    if exclude_id is not None:
        query = query.where(Client.id != exclude_id)
    if (await db.execute(query)).first() is not None:
        raise ConflictError("A client with this phone number already exists")


@router.get("", response_model=List[ClientResponse], summary="List clients")
async def list_clients(
    search: Optional[str] = Query(default=None, max_length=100),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    ctx: OrganizationContext = Depends(require_permission(Permission.CLIENTS_READ)),
    db: AsyncSession = Depends(get_db),
) -> List[Client]:
    query = select(Client).where(Client.organization_id == ctx.organization_id)
    if search:
        pattern = f"%{search}%"
        query = query.where(Client.name.ilike(pattern) | Client.phone.ilike(pattern))
    result = await db.execute(query.order_by(Client.name).limit(limit).offset(offset))
    return list(result.scalars().all())


@router.post(
    "",
    response_model=ClientResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a client",
)
async def create_client(
    body: ClientCreate,
    request: Request,
    ctx: OrganizationContext = Depends(require_permission(Permission.CLIENTS_WRITE)),
    db: AsyncSession = Depends(get_db),
) -> Client:
    """Phone numbers are normalized to +233 form and unique per tailor."""
    await _ensure_phone_available(db, ctx.tailor_id, body.phone)

    client = Client(
        tailor_id=ctx.tailor_id,
        organization_id=ctx.organization_id,
        **body.model_dump(),
    )
    db.add(client)
    await db.flush()
    await db.refresh(client)

    await log_audit(
        db, ctx.user.id, "CREATE", "client", client.id, ip_address=client_ip(request)
    )
    logger.info(
        "client_created", client_id=str(client.id), organization_id=str(ctx.organization_id)
    )
    return client


@router.get("/{client_id}", response_model=ClientResponse, summary="Get a client")
async def get_client(
    client_id: uuid.UUID,
    ctx: OrganizationContext = Depends(require_permission(Permission.CLIENTS_READ)),
    db: AsyncSession = Depends(get_db),
) -> Client:
    return await fetch_in_organization(db, Client, client_id, ctx.organization_id)


@router.patch("/{client_id}", response_model=ClientResponse, summary="Update a client")
async def update_client(
    client_id: uuid.UUID,
    body: ClientUpdate,
    ctx: OrganizationContext = Depends(require_permission(Permission.CLIENTS_WRITE)),
    db: AsyncSession = Depends(get_db),
) -> Client:
    client = await fetch_in_organization(db, Client, client_id, ctx.organization_id)
    changes = body.model_dump(exclude_unset=True)

    if changes.get("phone") and changes["phone"] != client.phone:
        await _ensure_phone_available(db, client.tailor_id, changes["phone"], exclude_id=client.id)

    for key, value in changes.items():
        if key in ("name", "phone") and value is None:
            continue
        setattr(client, key, value)
    client.updated_at = utcnow()

    await db.flush()
    await db.refresh(client)
    return client


@router.delete("/{client_id}", summary="Delete a client")
async def delete_client(
    client_id: uuid.UUID,
    request: Request,
    ctx: OrganizationContext = Depends(require_permission(Permission.CLIENTS_WRITE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Clients with orders or invoices cannot be deleted."""
    client = await fetch_in_organization(db, Client, client_id, ctx.organization_id)

    order_count = await db.scalar(select(func.count(Order.id)).where(Order.client_id == client.id))
    invoice_count = await db.scalar(
        select(func.count(Invoice.id)).where(Invoice.client_id == client.id)
    )
    if order_count or invoice_count:
        raise ConflictError(
            f"Cannot delete client with {order_count} orders and {invoice_count} invoices",
            order_count=order_count,
            invoice_count=invoice_count,
        )

    for model in (Appointment, ClientMeasurement, ClientTrackingToken):
        await db.execute(delete(model).where(model.client_id == client.id))
    await db.execute(
        update(User).where(User.linked_client_id == client.id).values(linked_client_id=None)
    )
    await db.execute(delete(Client).where(Client.id == client.id))

    await log_audit(
        db, ctx.user.id, "DELETE", "client", client_id, ip_address=client_ip(request)
    )
    return {"success": True}


@router.post(
    "/{client_id}/tracking-token",
    response_model=TrackingTokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a tracking link",
)
async def issue_tracking_token(
    client_id: uuid.UUID,
    ctx: OrganizationContext = Depends(require_permission(Permission.CLIENTS_WRITE)),
    db: AsyncSession = Depends(get_db),
) -> TrackingTokenResponse:
    """Issue a fresh portal link; any earlier link for the client stops working."""
    client = await fetch_in_organization(db, Client, client_id, ctx.organization_id)
    issued = await create_tracking_token(db, client.id)
    return TrackingTokenResponse(
        token=issued.token, url=issued.url, qr_data=issued.qr_data, expires_at=issued.expires_at
    )


@router.get(
    "/{client_id}/measurements",
    response_model=List[MeasurementResponse],
    summary="List measurements",
)
async def list_measurements(
    client_id: uuid.UUID,
    ctx: OrganizationContext = Depends(require_permission(Permission.CLIENTS_READ)),
    db: AsyncSession = Depends(get_db),
) -> List[ClientMeasurement]:
    client = await fetch_in_organization(db, Client, client_id, ctx.organization_id)
    result = await db.execute(
        select(ClientMeasurement)
        .where(ClientMeasurement.client_id == client.id)
        .order_by(ClientMeasurement.created_at.desc())
    )
    return list(result.scalars().all())


@router.post(
    "/{client_id}/measurements",
    response_model=MeasurementResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record measurements",
)
async def create_measurement(
    client_id: uuid.UUID,
    body: MeasurementCreate,
    ctx: OrganizationContext = Depends(require_permission(Permission.CLIENTS_WRITE)),
    db: AsyncSession = Depends(get_db),
) -> ClientMeasurement:
    client = await fetch_in_organization(db, Client, client_id, ctx.organization_id)
    measurement = ClientMeasurement(client_id=client.id, values=body.values, notes=body.notes)
    db.add(measurement)
    await db.flush()
    await db.refresh(measurement)
    return measurement
