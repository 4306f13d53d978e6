"""
Payment routes.

Manual payments (cash, mobile money, bank transfer) are recorded through the
same idempotent recorder as Paystack webhooks, keyed by transaction id.
"""
import uuid
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.api.dependencies import client_ip, get_payment_recorder
from stitchcraft.api.schemas import (
    OrderResponse,
    PaymentCreate,
    PaymentResponse,
    RecordPaymentResponse,
)
from stitchcraft.core.audit import log_audit
from stitchcraft.core.guards import OrganizationContext, fetch_in_organization, require_permission
from stitchcraft.core.payments import PaymentRecorder, manual_reference
from stitchcraft.core.permissions import Permission
from stitchcraft.database.connection import get_db
from stitchcraft.database.models import Payment

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("", response_model=List[PaymentResponse], summary="List payments")
async def list_payments(
    order_id: Optional[uuid.UUID] = Query(default=None, alias="orderId"),
    client_id: Optional[uuid.UUID] = Query(default=None, alias="clientId"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    ctx: OrganizationContext = Depends(require_permission(Permission.PAYMENTS_READ)),
    db: AsyncSession = Depends(get_db),
) -> List[Payment]:
    query = select(Payment).where(Payment.organization_id == ctx.organization_id)
    if order_id is not None:
        query = query.where(Payment.order_id == order_id)
    if client_id is not None:
        query = query.where(Payment.client_id == client_id)
    result = await db.execute(
        query.order_by(Payment.paid_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all())


@router.post(
    "",
    response_model=RecordPaymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a payment",
    responses={200: {"description": "Transaction id was already recorded"}},
)
async def record_payment(
    body: PaymentCreate,
    request: Request,
    response: Response,
    ctx: OrganizationContext = Depends(require_permission(Permission.PAYMENTS_WRITE)),
    db: AsyncSession = Depends(get_db),
    recorder: PaymentRecorder = Depends(get_payment_recorder),
) -> RecordPaymentResponse:
    """
    Record a payment against an order.

    Replaying the same transaction id returns the original payment with
    alreadyRecorded=true and status 200; the order balance is unchanged.
    """
    reference = body.transaction_id or manual_reference(body.method.value)

    result = await recorder.record_payment(
        db,
        order_id=body.order_id,
        amount=body.amount,
        reference=reference,
        method=body.method.value,
        paid_at=body.paid_at,
        notes=body.notes,
        invoice_id=body.invoice_id,
        mobile_number=body.mobile_number,
        organization_id=ctx.organization_id,
    )

    if result.already_recorded:
        response.status_code = status.HTTP_200_OK
    else:
        await log_audit(
            db,
            ctx.user.id,
            "CREATE",
            "payment",
            result.payment.id,
            details={"amount": str(body.amount), "method": body.method.value},
            ip_address=client_ip(request),
        )

    return RecordPaymentResponse(
        already_recorded=result.already_recorded,
        payment=PaymentResponse.model_validate(result.payment),
        order=OrderResponse.model_validate(result.order),
    )


@router.get("/{payment_id}", response_model=PaymentResponse, summary="Get a payment")
async def get_payment(
    payment_id: uuid.UUID,
    ctx: OrganizationContext = Depends(require_permission(Permission.PAYMENTS_READ)),
    db: AsyncSession = Depends(get_db),
) -> Payment:
    return await fetch_in_organization(db, Payment, payment_id, ctx.organization_id)
