"""
Public client tracking portal.

No session: the token in the path is the credential. Every handler starts
by validating it, and only data belonging to the bound client is returned.
"""
import time
import uuid
from decimal import Decimal
from typing import List

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.api.dependencies import get_payment_recorder, get_paystack_client
from stitchcraft.api.schemas import (
    OrderResponse,
    PortalClient,
    PortalOrder,
    PortalPayment,
    PortalTailor,
    TimelineStep,
    TrackFeedbackRequest,
    TrackingPortalResponse,
    TrackPayRequest,
)
from stitchcraft.config import get_settings
from stitchcraft.core.exceptions import (
    InvalidTrackingTokenError,
    NotFoundError,
    PaymentVerificationError,
    ValidationFailedError,
)
from stitchcraft.core.payments import PaymentRecorder
from stitchcraft.core.tracking import (
    TrackingValidation,
    generate_order_timeline,
    get_client_orders,
    get_client_payments,
    get_order_ratings,
    submit_order_rating,
    touch_tracking_token,
    validate_tracking_token,
)
from stitchcraft.database.connection import get_db
from stitchcraft.database.models import Order, PaymentMethod
from stitchcraft.integrations.paystack_client import PaystackClient
from stitchcraft.integrations.webhook_handler import parse_paystack_datetime

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/track", tags=["tracking"])


async def portal_orders(db: AsyncSession, orders: List[Order]) -> List[PortalOrder]:
    """Orders with balance, timeline and the client's rating, as the client sees them."""
    ratings = await get_order_ratings(db, [order.id for order in orders])
    result = []
    for order in orders:
        rating = ratings.get(order.id)
        result.append(
            PortalOrder(
                **OrderResponse.model_validate(order).model_dump(),
                balance=Decimal(order.total_amount) - Decimal(order.paid_amount),
                timeline=[TimelineStep(**step) for step in generate_order_timeline(order)],
                rating=rating.rating if rating is not None else None,
            )
        )
    return result


async def _require_valid_token(db: AsyncSession, token: str) -> TrackingValidation:
    validation = await validate_tracking_token(db, token)
    if not validation.valid:
        raise InvalidTrackingTokenError(validation.error)
    return validation


@router.get("/pay/verify", summary="Confirm a portal payment")
async def verify_portal_payment(
    reference: str = Query(..., min_length=1, max_length=255),
    db: AsyncSession = Depends(get_db),
    paystack: PaystackClient = Depends(get_paystack_client),
    recorder: PaymentRecorder = Depends(get_payment_recorder),
) -> dict:
    """
    Verify a Paystack reference and record the payment.

    Safe to call repeatedly and concurrently with the webhook: whichever
    arrives second finds the reference already recorded.
    """
    transaction = await paystack.verify_transaction(reference)
    if not transaction.succeeded:
        logger.info("portal_payment_not_successful", reference=reference, status=transaction.status)
        raise PaymentVerificationError()

    order_id = transaction.metadata.get("orderId")
    try:
        order_uuid = uuid.UUID(str(order_id))
    except ValueError:
        raise ValidationFailedError.for_field("metadata", "Invalid transaction metadata")

    result = await recorder.record_payment(
        db,
        order_id=order_uuid,
        amount=transaction.amount,
        reference=reference,
        method=PaymentMethod.PAYSTACK.value,
        paid_at=parse_paystack_datetime(transaction.paid_at),
        notes=f"Public Tracking Ref: {reference}",
    )
    return {"success": True, "alreadyRecorded": result.already_recorded}


@router.get("/{token}", response_model=TrackingPortalResponse, summary="Tracking portal")
async def tracking_portal(token: str, db: AsyncSession = Depends(get_db)) -> TrackingPortalResponse:
    validation = await _require_valid_token(db, token)
    client, tailor = validation.client, validation.tailor

    orders = await get_client_orders(db, client.id)
    payments = await get_client_payments(db, client.id)

    response = TrackingPortalResponse(
        client=PortalClient.model_validate(client),
        tailor=PortalTailor.model_validate(tailor),
        orders=await portal_orders(db, orders),
        payments=[PortalPayment.model_validate(payment) for payment in payments],
    )

    await touch_tracking_token(db, validation.token_id)
    return response


@router.post("/{token}/pay", summary="Start a portal payment")
async def start_portal_payment(
    token: str,
    body: TrackPayRequest,
    db: AsyncSession = Depends(get_db),
    paystack: PaystackClient = Depends(get_paystack_client),
) -> dict:
    """Initialize a Paystack checkout for one of the client's orders."""
    validation = await _require_valid_token(db, token)
    client = validation.client

    order = await db.get(Order, body.order_id)
    if order is None or order.client_id != client.id:
        raise NotFoundError("Order", str(body.order_id))

    app_url = get_settings().app_url.rstrip("/")
    data = await paystack.initialize_transaction(
        email=client.email or f"client-{client.id}@stitchcraft.gh",
        amount=body.amount,
        reference=f"TRACK-{order.order_number}-{int(time.time() * 1000)}",
        callback_url=(
            f"{app_url}/track/{token}/success?orderId={order.id}&amount={body.amount}"
        ),
        metadata={
            "orderId": str(order.id),
            "clientId": str(order.client_id),
            "tailorId": str(order.tailor_id),
        },
    )
    logger.info(
        "portal_payment_started",
        order_id=str(order.id),
        amount=str(body.amount),
        reference=data.get("reference"),
    )
    return {"success": True, "data": data}


@router.post(
    "/{token}/feedback",
    status_code=status.HTTP_201_CREATED,
    summary="Rate a finished order",
)
async def submit_feedback(
    token: str, body: TrackFeedbackRequest, db: AsyncSession = Depends(get_db)
) -> dict:
    validation = await _require_valid_token(db, token)
    rating = await submit_order_rating(
        db, validation.client.id, body.order_id, body.rating, body.review
    )
    return {"success": True, "id": str(rating.id), "rating": rating.rating}
