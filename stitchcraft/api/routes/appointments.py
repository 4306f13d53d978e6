"""Appointment routes. Guarded by the order permissions."""
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.api.schemas import AppointmentCreate, AppointmentResponse, AppointmentUpdate
from stitchcraft.core.exceptions import ValidationFailedError
from stitchcraft.core.guards import OrganizationContext, fetch_in_organization, require_permission
from stitchcraft.core.permissions import Permission
from stitchcraft.database.connection import get_db
from stitchcraft.database.models import (
    Appointment,
    AppointmentStatus,
    Client,
    Order,
    as_aware,
)

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.get("", response_model=List[AppointmentResponse], summary="List appointments")
async def list_appointments(
    start: Optional[datetime] = Query(default=None, alias="from"),
    end: Optional[datetime] = Query(default=None, alias="to"),
    client_id: Optional[uuid.UUID] = Query(default=None, alias="clientId"),
    ctx: OrganizationContext = Depends(require_permission(Permission.ORDERS_READ)),
    db: AsyncSession = Depends(get_db),
) -> List[Appointment]:
    query = select(Appointment).where(Appointment.organization_id == ctx.organization_id)
    if start is not None:
        query = query.where(Appointment.start_time >= start)
    if end is not None:
        query = query.where(Appointment.start_time < end)
    if client_id is not None:
        query = query.where(Appointment.client_id == client_id)
    result = await db.execute(query.order_by(Appointment.start_time))
    return list(result.scalars().all())


@router.post(
    "",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment",
)
async def create_appointment(
    body: AppointmentCreate,
    ctx: OrganizationContext = Depends(require_permission(Permission.ORDERS_WRITE)),
    db: AsyncSession = Depends(get_db),
) -> Appointment:
    client = await fetch_in_organization(db, Client, body.client_id, ctx.organization_id)
    if body.order_id is not None:
        order = await fetch_in_organization(db, Order, body.order_id, ctx.organization_id)
        if order.client_id != client.id:
            raise ValidationFailedError.for_field("orderId", "Order belongs to another client")

    appointment = Appointment(
        tailor_id=ctx.tailor_id,
        organization_id=ctx.organization_id,
        client_id=client.id,
        order_id=body.order_id,
        type=body.type.value,
        status=AppointmentStatus.SCHEDULED.value,
        start_time=body.start_time,
        end_time=body.end_time,
        location=body.location,
        notes=body.notes,
    )
    db.add(appointment)
    await db.flush()
    await db.refresh(appointment)
    return appointment


@router.patch(
    "/{appointment_id}", response_model=AppointmentResponse, summary="Update an appointment"
)
async def update_appointment(
    appointment_id: uuid.UUID,
    body: AppointmentUpdate,
    ctx: OrganizationContext = Depends(require_permission(Permission.ORDERS_WRITE)),
    db: AsyncSession = Depends(get_db),
) -> Appointment:
    appointment = await fetch_in_organization(
        db, Appointment, appointment_id, ctx.organization_id
    )
    changes = body.model_dump(exclude_unset=True)

    start_time = changes.get("start_time") or appointment.start_time
    end_time = changes.get("end_time") or appointment.end_time
    if as_aware(end_time) <= as_aware(start_time):
        raise ValidationFailedError.for_field("endTime", "endTime must be after startTime")

    for key, value in changes.items():
        if value is None:
            continue
        setattr(appointment, key, value.value if key in ("type", "status") else value)

    await db.flush()
    await db.refresh(appointment)
    return appointment


@router.delete("/{appointment_id}", summary="Delete an appointment")
async def delete_appointment(
    appointment_id: uuid.UUID,
    ctx: OrganizationContext = Depends(require_permission(Permission.ORDERS_WRITE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    appointment = await fetch_in_organization(
        db, Appointment, appointment_id, ctx.organization_id
    )
    await db.delete(appointment)
    await db.flush()
    return {"success": True}
