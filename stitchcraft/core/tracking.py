"""
Client tracking portal service.

A tracking token is a public capability: whoever holds it can see the bound
client's orders and payments without logging in. Validation is read-only;
recording use is a separate best-effort step.
"""
import secrets
import string
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from stitchcraft.config import get_settings
from stitchcraft.core.exceptions import ConflictError, NotFoundError, ValidationFailedError
from stitchcraft.database.models import (
    Client,
    ClientTrackingToken,
    Order,
    OrderRating,
    OrderStatus,
    Payment,
    User,
    as_aware,
    utcnow,
)
from stitchcraft.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

TOKEN_LENGTH = 32
TOKEN_ALPHABET = string.ascii_letters + string.digits

INVALID_TOKEN = "Invalid tracking token"
INACTIVE_TOKEN = "Token has been deactivated"
EXPIRED_TOKEN = "Token has expired"

# Lifecycle shown on the portal, in order.
TIMELINE_STEPS = [
    (OrderStatus.PENDING, "Order Placed"),
    (OrderStatus.CONFIRMED, "Confirmed"),
    (OrderStatus.IN_PROGRESS, "In Progress"),
    (OrderStatus.READY_FOR_FITTING, "Ready for Fitting"),
    (OrderStatus.FITTING_DONE, "Fitting Complete"),
    (OrderStatus.COMPLETED, "Completed"),
]

RATEABLE_STATUSES = (OrderStatus.COMPLETED.value, OrderStatus.DELIVERED.value)


@dataclass
class TrackingValidation:
    """Outcome of a token lookup; client and tailor are set only when valid."""

    valid: bool
    client: Optional[Client] = None
    tailor: Optional[User] = None
    error: Optional[str] = None
    token_id: Optional[uuid.UUID] = None


@dataclass
class IssuedTrackingToken:
    token: str
    url: str
    expires_at: Optional[datetime] = None
    qr_data: str = field(init=False)

    def __post_init__(self) -> None:
        self.qr_data = self.url


def generate_tracking_token() -> str:
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))


def tracking_url(token: str) -> str:
    return f"{get_settings().app_url.rstrip('/')}/track/{token}"


async def create_tracking_token(db: AsyncSession, client_id: uuid.UUID) -> IssuedTrackingToken:
    """
    Issue a fresh token for the client.

    Any currently active tokens for the client are deactivated first, so at
    most one token is live per client.
    """
    settings = get_settings()

    await db.execute(
        update(ClientTrackingToken)
        .where(
            ClientTrackingToken.client_id == client_id,
            ClientTrackingToken.is_active.is_(True),
        )
        .values(is_active=False)
    )

    expires_at = None
    if settings.tracking_token_ttl_days > 0:
        expires_at = utcnow() + timedelta(days=settings.tracking_token_ttl_days)

    token = generate_tracking_token()
    db.add(ClientTrackingToken(client_id=client_id, token=token, expires_at=expires_at))
    await db.flush()

    logger.info("tracking_token_issued", client_id=str(client_id))
    return IssuedTrackingToken(token=token, url=tracking_url(token), expires_at=expires_at)


async def validate_tracking_token(db: AsyncSession, token: Optional[str]) -> TrackingValidation:
    """
    Resolve a token to its client and owning tailor.

    Never mutates state. Invalid, deactivated and expired tokens come back
    with valid=False and no client or tailor data.
    """
    if not token:
        return _rejected(INVALID_TOKEN)

    result = await db.execute(
        select(ClientTrackingToken)
        .where(ClientTrackingToken.token == token)
        .options(selectinload(ClientTrackingToken.client).selectinload(Client.tailor))
    )
    tracking_token = result.scalar_one_or_none()

    if tracking_token is None:
        return _rejected(INVALID_TOKEN)

    if not tracking_token.is_active:
        return _rejected(INACTIVE_TOKEN)

    if tracking_token.expires_at is not None and as_aware(tracking_token.expires_at) < utcnow():
        return _rejected(EXPIRED_TOKEN)

    metrics.record_tracking_lookup("valid")
    client = tracking_token.client
    return TrackingValidation(
        valid=True, client=client, tailor=client.tailor, token_id=tracking_token.id
    )


def _rejected(error: str) -> TrackingValidation:
    logger.info("tracking_token_invalid", reason=error)
    metrics.record_tracking_lookup("invalid")
    return TrackingValidation(valid=False, error=error)


async def touch_tracking_token(db: AsyncSession, token_id: uuid.UUID) -> None:
    """
    Record token use. Failures are logged and swallowed.

    Runs in a SAVEPOINT so a failed update does not abort the request's
    transaction.
    """
    try:
        async with db.begin_nested():
            await db.execute(
                update(ClientTrackingToken)
                .where(ClientTrackingToken.id == token_id)
                .values(last_used_at=utcnow())
            )
    except SQLAlchemyError as e:
        logger.warning("tracking_token_touch_failed", token_id=str(token_id), error=str(e))


async def get_client_orders(db: AsyncSession, client_id: uuid.UUID) -> List[Order]:
    result = await db.execute(
        select(Order).where(Order.client_id == client_id).order_by(Order.created_at.desc())
    )
    return list(result.scalars().all())


async def get_client_payments(db: AsyncSession, client_id: uuid.UUID) -> List[Payment]:
    result = await db.execute(
        select(Payment).where(Payment.client_id == client_id).order_by(Payment.paid_at.desc())
    )
    return list(result.scalars().all())


async def get_order_ratings(
    db: AsyncSession, order_ids: List[uuid.UUID]
) -> Dict[uuid.UUID, OrderRating]:
    if not order_ids:
        return {}
    result = await db.execute(select(OrderRating).where(OrderRating.order_id.in_(order_ids)))
    return {rating.order_id: rating for rating in result.scalars().all()}


def generate_order_timeline(order: Order) -> List[Dict[str, Any]]:
    """
    Portal timeline for an order.

    Steps up to the current status are completed; the current one is
    flagged. Cancelled orders show no progress; delivered orders show every
    step completed.
    """
    statuses = [status.value for status, _ in TIMELINE_STEPS]
    if order.status == OrderStatus.DELIVERED.value:
        current_index = len(statuses) - 1
    elif order.status in statuses:
        current_index = statuses.index(order.status)
    else:
        current_index = -1

    timestamps = {
        OrderStatus.PENDING.value: order.created_at,
        OrderStatus.IN_PROGRESS.value: order.started_at,
        OrderStatus.COMPLETED.value: order.completed_at,
    }

    return [
        {
            "status": status.value,
            "label": label,
            "completed": index <= current_index,
            "current": index == current_index,
            "date": timestamps.get(status.value) if index <= current_index else None,
        }
        for index, (status, label) in enumerate(TIMELINE_STEPS)
    ]


async def submit_order_rating(
    db: AsyncSession,
    client_id: uuid.UUID,
    order_id: uuid.UUID,
    rating: int,
    review: Optional[str] = None,
) -> OrderRating:
    """
    Store the client's one rating for a finished order.

    Raises:
        NotFoundError: Order missing or not the client's
        ValidationFailedError: Order not finished yet
        ConflictError: Order already rated
    """
    order = await db.get(Order, order_id)
    if order is None or order.client_id != client_id:
        raise NotFoundError("Order", str(order_id))

    if order.status not in RATEABLE_STATUSES:
        raise ValidationFailedError.for_field("orderId", "Order is not completed yet")

    existing = await db.execute(select(OrderRating.id).where(OrderRating.order_id == order_id))
    if existing.first() is not None:
        raise ConflictError("Order has already been rated")

    order_rating = OrderRating(order_id=order_id, rating=rating, review=review)
    db.add(order_rating)
    await db.flush()

    logger.info("order_rated", order_id=str(order_id), rating=rating)
    return order_rating
