"""
Tests for Paystack webhook verification and processing.
"""
import hashlib
import hmac
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from stitchcraft.core.exceptions import ValidationFailedError, WebhookSignatureError
from stitchcraft.database.models import Order, Payment
from stitchcraft.integrations.paystack_client import (
    SIMULATED_REFERENCE_PREFIX,
    PaystackClient,
    extract_metadata,
    to_pesewas,
)
from stitchcraft.integrations.webhook_handler import WebhookHandler, parse_paystack_datetime

SECRET = "sk_test_mock"
WEBHOOK_URL = "/api/v1/webhooks/paystack"


def _sign(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


def _charge_event(reference: str, metadata: Any, amount: int = 15000) -> Dict[str, Any]:
    return {
        "event": "charge.success",
        "data": {
            "reference": reference,
            "amount": amount,
            "status": "success",
            "paid_at": "2026-01-10T09:30:00.000Z",
            "metadata": metadata,
        },
    }


async def _post_event(client: AsyncClient, event: Dict[str, Any]):
    body = json.dumps(event).encode("utf-8")
    return await client.post(
        WEBHOOK_URL,
        content=body,
        headers={"content-type": "application/json", "x-paystack-signature": _sign(body)},
    )


class TestWebhookHandler:
    """Test suite for WebhookHandler."""

    @pytest.mark.unit
    def test_verify_signature_valid(self) -> None:
        """Test a correctly signed body is decoded."""
        body = json.dumps({"event": "charge.success", "data": {}}).encode("utf-8")

        event = WebhookHandler().verify_signature(body, _sign(body))

        assert event["event"] == "charge.success"

    @pytest.mark.unit
    def test_verify_signature_missing(self) -> None:
        """Test a missing signature header is rejected."""
        with pytest.raises(WebhookSignatureError, match="Missing signature"):
            WebhookHandler().verify_signature(b"{}", None)

    @pytest.mark.unit
    def test_verify_signature_tampered_body(self) -> None:
        """Test a signature for a different body is rejected."""
        signature = _sign(b'{"amount": 100}')

        with pytest.raises(WebhookSignatureError, match="Invalid signature"):
            WebhookHandler().verify_signature(b'{"amount": 100000}', signature)

    @pytest.mark.unit
    @pytest.mark.parametrize("signature", ["\u00e9abc", "\u00e9" * 128, "\u2603"])
    def test_verify_signature_non_ascii(self, signature: str) -> None:
        """Test a header with non-ASCII characters is a mismatch, not a crash."""
        with pytest.raises(WebhookSignatureError, match="Invalid signature"):
            WebhookHandler().verify_signature(b"{}", signature)

    @pytest.mark.unit
    def test_verify_signature_tolerates_case_and_whitespace(self) -> None:
        """Test an upper-cased, padded signature still matches."""
        body = b"{\"event\": \"charge.success\", \"data\": {}}"

        event = WebhookHandler().verify_signature(body, f"  {_sign(body).upper()} ")

        assert event["event"] == "charge.success"

    @pytest.mark.unit
    def test_verify_signature_non_object_body(self) -> None:
        """Test a signed body that is not a JSON object."""
        body = b"[1, 2, 3]"

        with pytest.raises(ValidationFailedError):
            WebhookHandler().verify_signature(body, _sign(body))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unregistered_event_is_ignored(self, db) -> None:
        """Test events without a handler are acknowledged."""
        result = await WebhookHandler().process_event({"event": "transfer.success"}, db)

        assert result == {"status": "ignored"}

    @pytest.mark.unit
    def test_metadata_forms(self) -> None:
        """Test metadata as an object, a JSON string and an empty string."""
        assert extract_metadata({"metadata": {"orderId": "a"}}) == {"orderId": "a"}
        assert extract_metadata({"metadata": '{"orderId": "b"}'}) == {"orderId": "b"}
        assert extract_metadata({"metadata": ""}) == {}
        assert extract_metadata({"metadata": "not json"}) == {}
        assert extract_metadata({}) == {}

    @pytest.mark.unit
    def test_parse_paystack_datetime(self) -> None:
        """Test Paystack timestamps with a trailing Z."""
        parsed = parse_paystack_datetime("2026-01-10T09:30:00.000Z")

        assert parsed == datetime(2026, 1, 10, 9, 30, tzinfo=timezone.utc)
        assert parse_paystack_datetime(None) is None
        assert parse_paystack_datetime("yesterday") is None

    @pytest.mark.unit
    def test_to_pesewas(self) -> None:
        """Test GHS to pesewa conversion."""
        assert to_pesewas(Decimal("150.00")) == 15000
        assert to_pesewas(Decimal("0.5")) == 50


class TestSimulatedPaystack:
    """Test suite for the offline Paystack stand-in used with the placeholder key."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_verify_echoes_initialized_checkout(self) -> None:
        """Test verification returns the amount and metadata of the checkout."""
        paystack = PaystackClient()

        data = await paystack.initialize_transaction(
            email="akosua@example.com",
            amount=Decimal("75.50"),
            reference="TRACK-SC-2601-0001-1",
            metadata={"orderId": "order-1"},
        )
        transaction = await paystack.verify_transaction(data["reference"])

        assert data["reference"].startswith(SIMULATED_REFERENCE_PREFIX)
        assert transaction.succeeded
        assert transaction.amount == Decimal("75.50")
        assert transaction.metadata == {"orderId": "order-1"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_remembered_checkouts_are_bounded(self, mocker: Any) -> None:
        """Test the oldest simulated checkouts are forgotten once the cache is full."""
        mocker.patch("stitchcraft.integrations.paystack_client.SIMULATED_CACHE_SIZE", 2)
        clock = mocker.patch("stitchcraft.integrations.paystack_client.time")
        clock.time.side_effect = [1.0, 2.0, 3.0]
        paystack = PaystackClient()

        references = []
        for amount in ("10.00", "20.00", "30.00"):
            data = await paystack.initialize_transaction(
                email="akosua@example.com", amount=Decimal(amount), reference="TRACK"
            )
            references.append(data["reference"])

        assert len(set(references)) == 3
        assert list(paystack._simulated) == references[1:]
        latest = await paystack.verify_transaction(references[2])
        assert latest.amount == Decimal("30.00")


class TestPaystackWebhookApi:
    """Integration tests for the webhook endpoint."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_missing_signature(self, client: AsyncClient, workshop) -> None:
        """Test unsigned requests are rejected with 400."""
        response = await client.post(WEBHOOK_URL, json={"event": "charge.success"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_signature"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_bad_signature(self, client: AsyncClient, workshop) -> None:
        """Test a signature made with the wrong secret is rejected."""
        body = json.dumps(_charge_event("PS-1", {"orderId": str(workshop.order.id)})).encode()

        response = await client.post(
            WEBHOOK_URL,
            content=body,
            headers={"x-paystack-signature": _sign(body, "sk_test_other")},
        )

        assert response.status_code == 400

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_charge_without_order_is_ignored(
        self, client: AsyncClient, workshop, session_factory
    ) -> None:
        """Test a charge with no orderId is acknowledged and nothing is recorded."""
        response = await _post_event(client, _charge_event("PS-NO-ORDER", {}))

        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}
        async with session_factory() as session:
            assert await session.scalar(select(func.count(Payment.id))) == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_charge_for_unknown_order_is_ignored(
        self, client: AsyncClient, workshop
    ) -> None:
        """Test an orderId that matches nothing is acknowledged."""
        event = _charge_event("PS-UNKNOWN", {"orderId": "00000000-0000-0000-0000-000000000000"})

        response = await _post_event(client, event)

        assert response.json() == {"status": "ignored"}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_charge_success_then_duplicate(
        self, client: AsyncClient, workshop, session_factory
    ) -> None:
        """Test redelivery of the same charge records the payment once."""
        event = _charge_event("PS-REF-1", json.dumps({"orderId": str(workshop.order.id)}))

        first = await _post_event(client, event)
        second = await _post_event(client, event)

        assert first.json() == {"status": "success"}
        assert second.json() == {"status": "duplicate"}

        async with session_factory() as session:
            payments = (await session.execute(select(Payment))).scalars().all()
            order = await session.get(Order, workshop.order.id)
        assert len(payments) == 1
        assert Decimal(payments[0].amount) == Decimal("150.00")
        assert payments[0].notes == "Paystack Webhook Ref: PS-REF-1"
        assert Decimal(order.paid_amount) == Decimal("150.00")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_other_event_types_are_ignored(self, client: AsyncClient, workshop) -> None:
        """Test unhandled event types return ignored."""
        response = await _post_event(client, {"event": "subscription.create", "data": {}})

        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_non_ascii_signature_is_rejected(
        self, client: AsyncClient, workshop, session_factory
    ) -> None:
        """Test a signature header carrying non-ASCII bytes is a 400."""
        body = json.dumps(_charge_event("PS-UTF", {"orderId": str(workshop.order.id)})).encode()

        response = await client.post(
            WEBHOOK_URL,
            content=body,
            headers=[(b"x-paystack-signature", "\u00e9abc".encode("utf-8"))],
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_signature"
        async with session_factory() as session:
            assert await session.scalar(select(func.count(Payment.id))) == 0
