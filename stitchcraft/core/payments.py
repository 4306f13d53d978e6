"""
Idempotent payment recording.

Flow:
1. Validate input
2. Look up an existing payment by provider reference (idempotency key)
3. Check the order (and invoice) exist
4. In one transaction: increment order.paid_amount SQL-side, insert the
   payment, update the linked invoice
5. Commit; a unique violation from a concurrent duplicate is reported as
   already recorded

The unique constraint on payments.transaction_id is the final arbiter, so
no lock is taken.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

import structlog
from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.core.exceptions import ConflictError, NotFoundError, ValidationFailedError
from stitchcraft.core.numbering import generate_payment_number
from stitchcraft.database.models import (
    Invoice,
    InvoiceStatus,
    Order,
    Payment,
    PaymentMethod,
    PaymentStatus,
    utcnow,
)
from stitchcraft.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


@dataclass
class PaymentResult:
    """Outcome of record_payment; already_recorded means nothing changed."""

    already_recorded: bool
    payment: Optional[Payment]
    order: Optional[Order]


class PaymentRecorder:
    """
    Records successful payments against orders exactly once per reference.

    Used by the manual payments endpoint, the Paystack webhook and the
    tracking portal's payment verification.
    """

    def __init__(self) -> None:
        logger.debug("payment_recorder_initialized")

    @staticmethod
    def _validate(amount: Decimal, reference: str, method: str) -> Decimal:
        """
        Validate payment input.

        Raises:
            ValidationFailedError: If validation fails
        """
        errors = {}
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            errors["amount"] = ["Amount must be a number"]
        else:
            if not amount.is_finite() or amount <= 0:
                errors["amount"] = ["Amount must be positive"]

        if not reference or not str(reference).strip():
            errors["transactionId"] = ["Transaction reference is required"]

        if method not in {m.value for m in PaymentMethod}:
            errors["method"] = [f"Unsupported payment method: {method}"]

        if errors:
            raise ValidationFailedError(errors)
        return amount

    async def _find_by_reference(self, db: AsyncSession, reference: str) -> Optional[Payment]:
        result = await db.execute(select(Payment).where(Payment.transaction_id == reference))
        return result.scalar_one_or_none()

    async def _already_recorded(
        self, db: AsyncSession, existing: Payment, organization_id: Optional[uuid.UUID] = None
    ) -> PaymentResult:
        if organization_id is not None and existing.organization_id != organization_id:
            raise ConflictError("Transaction reference has already been used")
        order = await db.get(Order, existing.order_id)
        metrics.record_payment(existing.method, "already_recorded", float(existing.amount))
        logger.info(
            "payment_already_recorded",
            transaction_id=existing.transaction_id,
            payment_id=str(existing.id),
        )
        return PaymentResult(already_recorded=True, payment=existing, order=order)

    async def record_payment(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        amount: Decimal,
        reference: str,
        method: str,
        paid_at: Optional[datetime] = None,
        notes: Optional[str] = None,
        invoice_id: Optional[uuid.UUID] = None,
        mobile_number: Optional[str] = None,
        organization_id: Optional[uuid.UUID] = None,
    ) -> PaymentResult:
        """
        Record a successful payment exactly once.

        Args:
            db: Database session
            order_id: Order being paid
            amount: Amount in GHS
            reference: Provider transaction reference (idempotency key)
            method: PaymentMethod value
            paid_at: When the funds were received (defaults to now)
            notes: Optional free-text notes
            invoice_id: Optional invoice to credit as well
            mobile_number: Optional mobile money number
            organization_id: When given, the order must belong to it

        Returns:
            PaymentResult

        Raises:
            ValidationFailedError: Bad amount, reference or method, or an
                invoice billed to another client or order
            NotFoundError: Order or invoice does not exist (or is outside
                the organization)
            ConflictError: Reference already used by another organization,
                or a concurrent payment took the same payment number
            SQLAlchemyError: Persistence failure; nothing is written
        """
        amount = self._validate(amount, reference, method)
        reference = reference.strip()

        existing = await self._find_by_reference(db, reference)
        if existing is not None:
            return await self._already_recorded(db, existing, organization_id)

        order = await db.get(Order, order_id)
        if order is None or (
            organization_id is not None and order.organization_id != organization_id
        ):
            raise NotFoundError("Order", str(order_id))

        if invoice_id is not None:
            invoice = await db.get(Invoice, invoice_id)
            if invoice is None or invoice.organization_id != order.organization_id:
                raise NotFoundError("Invoice", str(invoice_id))
            if invoice.client_id != order.client_id or invoice.order_id not in (None, order.id):
                raise ValidationFailedError.for_field(
                    "invoiceId", "Invoice does not belong to this order"
                )

        payment_number = await generate_payment_number(db, order.tailor_id)
        now = utcnow()

        try:
            await db.execute(
                update(Order)
                .where(Order.id == order.id)
                .values(paid_amount=Order.paid_amount + amount, updated_at=now)
                .execution_options(synchronize_session=False)
            )

            payment = Payment(
                payment_number=payment_number,
                transaction_id=reference,
                tailor_id=order.tailor_id,
                organization_id=order.organization_id,
                client_id=order.client_id,
                order_id=order.id,
                invoice_id=invoice_id,
                amount=amount,
                method=method,
                status=PaymentStatus.COMPLETED.value,
                mobile_number=mobile_number,
                notes=notes,
                paid_at=paid_at or now,
            )
            db.add(payment)

            if invoice_id is not None:
                fully_paid = Invoice.paid_amount + amount >= Invoice.total_amount
                await db.execute(
                    update(Invoice)
                    .where(Invoice.id == invoice_id)
                    .values(
                        paid_amount=Invoice.paid_amount + amount,
                        status=case(
                            (fully_paid, InvoiceStatus.PAID.value), else_=Invoice.status
                        ),
                        paid_at=case((fully_paid, now), else_=Invoice.paid_at),
                    )
                    .execution_options(synchronize_session=False)
                )

            await db.flush()
            await db.commit()

        except IntegrityError as e:
            await db.rollback()
            existing = await self._find_by_reference(db, reference)
            if existing is None:
                # Not a duplicate reference: another payment took this number first.
                logger.warning(
                    "payment_number_collision",
                    order_id=str(order_id),
                    payment_number=payment_number,
                    error=str(e),
                )
                raise ConflictError("Payment number was taken concurrently; retry") from e
            return await self._already_recorded(db, existing, organization_id)

        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("payment_record_failed", order_id=str(order_id), error=str(e))
            raise

        await db.refresh(order)
        if invoice_id is not None:
            await db.refresh(invoice)

        metrics.record_payment(method, "recorded", float(amount))
        logger.info(
            "payment_recorded",
            payment_id=str(payment.id),
            payment_number=payment_number,
            order_id=str(order.id),
            amount=str(amount),
            method=method,
            transaction_id=reference,
        )
        return PaymentResult(already_recorded=False, payment=payment, order=order)


def manual_reference(method: str) -> str:
    """Reference for payments entered without a provider transaction id."""
    prefix = method.split("_")[0]
    return f"{prefix}-{uuid.uuid4().hex[:16].upper()}"
