"""Order routes."""
import uuid
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.api.dependencies import client_ip
from stitchcraft.api.schemas import OrderCreate, OrderResponse, OrderUpdate
from stitchcraft.core.audit import log_audit
from stitchcraft.core.exceptions import ConflictError, ValidationFailedError
from stitchcraft.core.guards import OrganizationContext, fetch_in_organization, require_permission
from stitchcraft.core.invoicing import round_currency
from stitchcraft.core.numbering import generate_order_number
from stitchcraft.core.permissions import Permission
from stitchcraft.database.connection import get_db
from stitchcraft.database.models import (
    Appointment,
    Client,
    ClientMeasurement,
    Invoice,
    Order,
    OrderRating,
    OrderStatus,
    Payment,
    utcnow,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def apply_status_change(order: Order, new_status: OrderStatus) -> None:
    """Move an order to a new status and stamp the lifecycle timestamps."""
    if new_status.value == order.status:
        return
    now = utcnow()
    if new_status == OrderStatus.IN_PROGRESS and order.started_at is None:
        order.started_at = now
    elif new_status == OrderStatus.COMPLETED:
        order.completed_at = now
    elif new_status == OrderStatus.DELIVERED:
        order.delivered_at = now
    order.status = new_status.value


@router.get("", response_model=List[OrderResponse], summary="List orders")
async def list_orders(
    order_status: Optional[OrderStatus] = Query(default=None, alias="status"),
    client_id: Optional[uuid.UUID] = Query(default=None, alias="clientId"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    ctx: OrganizationContext = Depends(require_permission(Permission.ORDERS_READ)),
    db: AsyncSession = Depends(get_db),
) -> List[Order]:
    query = select(Order).where(Order.organization_id == ctx.organization_id)
    if order_status is not None:
        query = query.where(Order.status == order_status.value)
    if client_id is not None:
        query = query.where(Order.client_id == client_id)
    result = await db.execute(
        query.order_by(Order.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all())


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an order",
)
async def create_order(
    body: OrderCreate,
    request: Request,
    ctx: OrganizationContext = Depends(require_permission(Permission.ORDERS_WRITE)),
    db: AsyncSession = Depends(get_db),
) -> Order:
    """
    Create an order for a client of the organization.

    The total defaults to material plus labor cost; order numbers run
    SC-YYMM-NNNN per tailor.
    """
    client = await fetch_in_organization(db, Client, body.client_id, ctx.organization_id)

    if body.measurement_id is not None:
        measurement = await db.get(ClientMeasurement, body.measurement_id)
        if measurement is None or measurement.client_id != client.id:
            raise ValidationFailedError.for_field(
                "measurementId", "Measurement not found for client"
            )

    total_amount = body.total_amount
    if total_amount is None:
        total_amount = body.material_cost + body.labor_cost

    order = Order(
        order_number=await generate_order_number(db, ctx.tailor_id),
        tailor_id=ctx.tailor_id,
        organization_id=ctx.organization_id,
        client_id=client.id,
        garment_type=body.garment_type.value,
        garment_description=body.garment_description,
        style_notes=body.style_notes,
        quantity=body.quantity,
        material_cost=round_currency(body.material_cost),
        labor_cost=round_currency(body.labor_cost),
        total_amount=round_currency(total_amount),
        measurement_id=body.measurement_id,
        deadline=body.deadline,
        status=OrderStatus.PENDING.value,
    )
    db.add(order)
    try:
        await db.flush()
    except IntegrityError as e:
        raise ConflictError("Order number was taken concurrently; retry the request") from e
    await db.refresh(order)

    await log_audit(
        db,
        ctx.user.id,
        "CREATE",
        "order",
        order.id,
        details={"orderNumber": order.order_number},
        ip_address=client_ip(request),
    )
    logger.info(
        "order_created",
        order_id=str(order.id),
        order_number=order.order_number,
        organization_id=str(ctx.organization_id),
    )
    return order


@router.get("/{order_id}", response_model=OrderResponse, summary="Get an order")
async def get_order(
    order_id: uuid.UUID,
    ctx: OrganizationContext = Depends(require_permission(Permission.ORDERS_READ)),
    db: AsyncSession = Depends(get_db),
) -> Order:
    return await fetch_in_organization(db, Order, order_id, ctx.organization_id)


@router.patch("/{order_id}", response_model=OrderResponse, summary="Update an order")
async def update_order(
    order_id: uuid.UUID,
    body: OrderUpdate,
    request: Request,
    ctx: OrganizationContext = Depends(require_permission(Permission.ORDERS_WRITE)),
    db: AsyncSession = Depends(get_db),
) -> Order:
    order = await fetch_in_organization(db, Order, order_id, ctx.organization_id)
    changes = body.model_dump(exclude_unset=True, exclude={"status"})
    previous_status = order.status

    for key, value in changes.items():
        if value is None and key in ("quantity", "material_cost", "labor_cost", "total_amount"):
            continue
        setattr(order, key, value)

    if body.total_amount is None and ("material_cost" in changes or "labor_cost" in changes):
        order.total_amount = round_currency(order.material_cost + order.labor_cost)

    if body.status is not None:
        apply_status_change(order, body.status)

    order.updated_at = utcnow()
    await db.flush()
    await db.refresh(order)

    if order.status != previous_status:
        await log_audit(
            db,
            ctx.user.id,
            "STATUS_CHANGE",
            "order",
            order.id,
            details={"from": previous_status, "to": order.status},
            ip_address=client_ip(request),
        )
        logger.info(
            "order_status_changed",
            order_id=str(order.id),
            previous_status=previous_status,
            status=order.status,
        )
    return order


@router.delete("/{order_id}", summary="Delete an order")
async def delete_order(
    order_id: uuid.UUID,
    request: Request,
    ctx: OrganizationContext = Depends(require_permission(Permission.ORDERS_DELETE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Orders with recorded payments must be cancelled instead."""
    order = await fetch_in_organization(db, Order, order_id, ctx.organization_id)

    payment_count = await db.scalar(
        select(func.count(Payment.id)).where(Payment.order_id == order.id)
    )
    if payment_count:
        raise ConflictError(
            f"Cannot delete order with {payment_count} payments. Consider cancelling instead.",
            payment_count=payment_count,
        )

    await db.execute(delete(OrderRating).where(OrderRating.order_id == order.id))
    for model in (Invoice, Appointment):
        await db.execute(update(model).where(model.order_id == order.id).values(order_id=None))
    await db.execute(delete(Order).where(Order.id == order.id))

    await log_audit(
        db,
        ctx.user.id,
        "DELETE",
        "order",
        order_id,
        details={"orderNumber": order.order_number},
        ip_address=client_ip(request),
    )
    return {"success": True}
