"""
Client studio: the logged-in view of a CLIENT account.

Everything is read through the account's linked client record. An account
that is not linked yet sees empty results; it links itself by presenting a
tracking token.
"""
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.api.dependencies import client_ip
from stitchcraft.api.routes.tracking import portal_orders
from stitchcraft.api.schemas import (
    InvoiceResponse,
    LinkAccountRequest,
    MeasurementResponse,
    PortalOrder,
    PortalPayment,
    PortalTailor,
    StudioMeasurements,
    StudioOverview,
    StudioPayments,
    StudioSummary,
    UserResponse,
)
from stitchcraft.core.audit import log_audit
from stitchcraft.core.auth import link_client_account
from stitchcraft.core.guards import require_client
from stitchcraft.core.tracking import get_client_orders, get_client_payments
from stitchcraft.database.connection import get_db
from stitchcraft.database.models import Client, ClientMeasurement, Invoice, OrderStatus, User

router = APIRouter(prefix="/studio", tags=["studio"])

RECENT_ORDERS = 5
MEASUREMENT_HISTORY = 10

_CLOSED_STATUSES = {
    OrderStatus.COMPLETED.value,
    OrderStatus.DELIVERED.value,
    OrderStatus.CANCELLED.value,
}


@router.post("/link-account", response_model=UserResponse, summary="Link to a client record")
async def link_account(
    body: LinkAccountRequest,
    request: Request,
    user: User = Depends(require_client),
    db: AsyncSession = Depends(get_db),
) -> User:
    await link_client_account(db, user, body.tracking_token)
    await log_audit(
        db,
        user.id,
        "LINK",
        "client",
        user.linked_client_id,
        ip_address=client_ip(request),
    )
    return user


@router.get("/overview", response_model=StudioOverview, summary="Studio overview")
async def overview(
    user: User = Depends(require_client),
    db: AsyncSession = Depends(get_db),
) -> StudioOverview:
    if user.linked_client_id is None:
        return StudioOverview(is_linked=False)

    client = await db.get(Client, user.linked_client_id)
    tailor = await db.get(User, client.tailor_id)
    orders = await get_client_orders(db, client.id)
    last_measured = await db.scalar(
        select(ClientMeasurement.created_at)
        .where(ClientMeasurement.client_id == client.id)
        .order_by(ClientMeasurement.created_at.desc())
        .limit(1)
    )
    open_orders = [order for order in orders if order.status not in _CLOSED_STATUSES]
    outstanding = sum(
        (
            Decimal(order.total_amount) - Decimal(order.paid_amount)
            for order in orders
            if order.status != OrderStatus.CANCELLED.value
        ),
        Decimal("0"),
    )

    return StudioOverview(
        is_linked=True,
        tailor=PortalTailor.model_validate(tailor),
        summary=StudioSummary(
            active_orders=len(open_orders),
            outstanding_balance=outstanding,
            last_measurement_at=last_measured,
        ),
        recent_orders=await portal_orders(db, orders[:RECENT_ORDERS]),
    )


@router.get("/orders", response_model=List[PortalOrder], summary="My orders")
async def list_orders(
    user: User = Depends(require_client),
    db: AsyncSession = Depends(get_db),
) -> List[PortalOrder]:
    if user.linked_client_id is None:
        return []
    return await portal_orders(db, await get_client_orders(db, user.linked_client_id))


@router.get("/payments", response_model=StudioPayments, summary="My invoices and payments")
async def list_payments(
    user: User = Depends(require_client),
    db: AsyncSession = Depends(get_db),
) -> StudioPayments:
    if user.linked_client_id is None:
        return StudioPayments()

    result = await db.execute(
        select(Invoice)
        .where(Invoice.client_id == user.linked_client_id)
        .order_by(Invoice.created_at.desc())
    )
    payments = await get_client_payments(db, user.linked_client_id)
    return StudioPayments(
        invoices=[InvoiceResponse.model_validate(invoice) for invoice in result.scalars().all()],
        payments=[PortalPayment.model_validate(payment) for payment in payments],
    )


@router.get("/measurements", response_model=StudioMeasurements, summary="My measurements")
async def list_measurements(
    user: User = Depends(require_client),
    db: AsyncSession = Depends(get_db),
) -> StudioMeasurements:
    if user.linked_client_id is None:
        return StudioMeasurements()

    result = await db.execute(
        select(ClientMeasurement)
        .where(ClientMeasurement.client_id == user.linked_client_id)
        .order_by(ClientMeasurement.created_at.desc())
        .limit(MEASUREMENT_HISTORY)
    )
    history = [MeasurementResponse.model_validate(m) for m in result.scalars().all()]
    return StudioMeasurements(latest=history[0] if history else None, history=history)
