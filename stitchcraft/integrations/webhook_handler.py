"""
Paystack webhook handler with signature verification and event routing.

Implements:
- HMAC-SHA512 signature verification over the raw request body
- Event type routing to registered handlers
- Idempotent processing (payments are keyed by the Paystack reference)
"""
import hashlib
import hmac
import json
import time
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.config import get_settings
from stitchcraft.core.exceptions import (
    NotFoundError,
    ValidationFailedError,
    WebhookSignatureError,
)
from stitchcraft.core.payments import PaymentRecorder
from stitchcraft.database.models import PaymentMethod
from stitchcraft.integrations.paystack_client import extract_metadata
from stitchcraft.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

EventHandler = Callable[[Dict[str, Any], AsyncSession], Awaitable[Dict[str, Any]]]

IGNORED = {"status": "ignored"}


def parse_paystack_datetime(value: Optional[str]) -> Optional[datetime]:
    """Paystack timestamps are ISO 8601 with a trailing Z."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class WebhookHandler:
    """
    Handles Paystack webhook events.

    Handlers are registered per event type; events without a handler are
    acknowledged and ignored so Paystack stops retrying them.
    """

    def __init__(self, payment_recorder: Optional[PaymentRecorder] = None):
        """
        Initialize webhook handler.

        Args:
            payment_recorder: Optional recorder used for charge events
        """
        self.settings = get_settings()
        self.payment_recorder = payment_recorder or PaymentRecorder()
        self.event_handlers: Dict[str, EventHandler] = {}

    def register_handler(self, event_type: str, handler: EventHandler) -> None:
        """
        Register a handler for a specific event type.

        Args:
            event_type: Paystack event type (e.g., 'charge.success')
            handler: Async callable taking (event data, db session)
        """
        self.event_handlers[event_type] = handler
        logger.info("webhook_handler_registered", event_type=event_type)

    def verify_signature(
        self, payload: bytes, signature: Optional[str], secret: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Verify the signature and decode the event.

        Args:
            payload: Raw request body as bytes
            signature: x-paystack-signature header value
            secret: Optional secret key (uses config if not provided)

        Returns:
            Decoded event body

        Raises:
            WebhookSignatureError: Missing or mismatched signature
            ValidationFailedError: Body is not a JSON object
        """
        if not signature:
            logger.warning("webhook_signature_missing")
            raise WebhookSignatureError("Missing signature")

        secret_key = secret or self.settings.paystack_secret_key
        expected = hmac.new(secret_key.encode("utf-8"), payload, hashlib.sha512).hexdigest()
        # Header values may carry any byte; compare as bytes.
        received = signature.strip().lower().encode("utf-8", "replace")
        if not hmac.compare_digest(expected.encode("ascii"), received):
            logger.warning("webhook_signature_verification_failed")
            raise WebhookSignatureError("Invalid signature")

        try:
            event = json.loads(payload)
        except ValueError:
            raise ValidationFailedError.for_field("body", "Malformed JSON")
        if not isinstance(event, dict):
            raise ValidationFailedError.for_field("body", "Expected a JSON object")

        return event

    async def process_event(self, event: Dict[str, Any], db: AsyncSession) -> Dict[str, Any]:
        """
        Route a verified event to its handler.

        Returns:
            Response body for Paystack
        """
        event_type = str(event.get("event") or "unknown")
        data = event.get("data") if isinstance(event.get("data"), dict) else {}
        start_time = time.time()

        handler = self.event_handlers.get(event_type)
        if handler is None:
            logger.info("webhook_event_ignored", event_type=event_type)
            metrics.record_webhook_event(event_type, "ignored", time.time() - start_time)
            return IGNORED

        result = await handler(data, db)
        metrics.record_webhook_event(
            event_type, result.get("status", "processed"), time.time() - start_time
        )
        return result

    async def handle_charge_success(
        self, data: Dict[str, Any], db: AsyncSession
    ) -> Dict[str, Any]:
        """
        Handle charge.success: record the payment against metadata.orderId.

        Missing metadata, an unknown order or an unusable amount is
        acknowledged as ignored.
        """
        reference = data.get("reference")
        metadata = extract_metadata(data)
        order_id = metadata.get("orderId")

        if not order_id or not reference:
            logger.warning("webhook_missing_order_id", reference=reference)
            return IGNORED

        try:
            order_uuid = uuid.UUID(str(order_id))
        except ValueError:
            logger.warning("webhook_invalid_order_id", reference=reference, order_id=order_id)
            return IGNORED

        try:
            amount = Decimal(str(data.get("amount") or 0)) / 100
        except InvalidOperation:
            logger.warning("webhook_invalid_amount", reference=reference)
            return IGNORED

        try:
            result = await self.payment_recorder.record_payment(
                db,
                order_id=order_uuid,
                amount=amount,
                reference=str(reference),
                method=PaymentMethod.PAYSTACK.value,
                paid_at=parse_paystack_datetime(data.get("paid_at")),
                notes=f"Paystack Webhook Ref: {reference}",
            )
        except NotFoundError:
            logger.warning("webhook_order_not_found", reference=reference, order_id=order_id)
            return IGNORED
        except ValidationFailedError as e:
            logger.warning("webhook_payment_rejected", reference=reference, error=e.message)
            return IGNORED

        logger.info(
            "webhook_payment_processed",
            order_id=str(order_uuid),
            reference=reference,
            amount=str(amount),
            already_recorded=result.already_recorded,
        )
        return {"status": "duplicate" if result.already_recorded else "success"}
