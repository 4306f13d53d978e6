"""
Sequential document numbers: PREFIX-YYMM-NNNN, per tailor per month.

The next number follows the highest one issued in the period, so deleting
a document never frees its number. Numbers are unique per tailor in the
schema; two requests racing for the same number fail one of them with a
conflict instead of duplicating it.
"""
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.database.models import Invoice, Order, Payment, utcnow

ORDER_PREFIX = "SC"
INVOICE_PREFIX = "INV"
PAYMENT_PREFIX = "PAY"

SEQUENCE_WIDTH = 4


def period_prefix(prefix: str, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"{prefix}-{now.year % 100:02d}{now.month:02d}"


def format_number(prefix: str, sequence: int, now: Optional[datetime] = None) -> str:
    return f"{period_prefix(prefix, now)}-{sequence:0{SEQUENCE_WIDTH}d}"


def parse_sequence(number: Optional[str]) -> int:
    """Trailing sequence of a document number; 0 when absent or malformed."""
    if not number:
        return 0
    _, _, tail = number.rpartition("-")
    return int(tail) if tail.isdigit() else 0


async def _next_number(
    db: AsyncSession, column: Any, tailor_column: Any, tailor_id: uuid.UUID, prefix: str
) -> str:
    now = utcnow()
    period = period_prefix(prefix, now)
    # Longest first: past 9999 the sequence widens and string order alone is wrong.
    latest = await db.scalar(
        select(column)
        .where(tailor_column == tailor_id, column.startswith(f"{period}-"))
        .order_by(func.length(column).desc(), column.desc())
        .limit(1)
    )
    return format_number(prefix, parse_sequence(latest) + 1, now)


async def generate_order_number(db: AsyncSession, tailor_id: uuid.UUID) -> str:
    return await _next_number(db, Order.order_number, Order.tailor_id, tailor_id, ORDER_PREFIX)


async def generate_invoice_number(db: AsyncSession, tailor_id: uuid.UUID) -> str:
    return await _next_number(
        db, Invoice.invoice_number, Invoice.tailor_id, tailor_id, INVOICE_PREFIX
    )


async def generate_payment_number(db: AsyncSession, tailor_id: uuid.UUID) -> str:
    return await _next_number(
        db, Payment.payment_number, Payment.tailor_id, tailor_id, PAYMENT_PREFIX
    )
