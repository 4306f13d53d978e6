"""
Tests for the public tracking portal.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from stitchcraft.api.dependencies import get_paystack_client
from stitchcraft.api.main import app
from stitchcraft.core.tracking import (
    EXPIRED_TOKEN,
    INACTIVE_TOKEN,
    INVALID_TOKEN,
    create_tracking_token,
    generate_order_timeline,
    generate_tracking_token,
    touch_tracking_token,
    validate_tracking_token,
)
from stitchcraft.database.models import (
    Client,
    ClientTrackingToken,
    Order,
    OrderStatus,
    Payment,
)
from stitchcraft.integrations.paystack_client import PaystackClient, PaystackTransaction


def _order(status: OrderStatus, **timestamps) -> Order:
    return Order(
        order_number="SC-2601-0001",
        garment_type="DASHIKI",
        total_amount=Decimal("100.00"),
        status=status.value,
        created_at=datetime(2026, 1, 5, tzinfo=timezone.utc),
        **timestamps,
    )


class TestTrackingTokens:
    """Test suite for token issue and validation."""

    @pytest.mark.unit
    def test_generated_token_shape(self) -> None:
        """Test tokens are 32 alphanumeric characters."""
        token = generate_tracking_token()
        assert len(token) == 32
        assert token.isalnum()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_valid_token_resolves_client_and_tailor(
        self, session_factory, workshop, tracking_token
    ) -> None:
        """Test a live token returns the client and owning tailor."""
        async with session_factory() as session:
            validation = await validate_tracking_token(session, tracking_token)

        assert validation.valid is True
        assert validation.client.id == workshop.client.id
        assert validation.tailor.id == workshop.tailor.id

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_token(self, db, workshop) -> None:
        """Test unknown and empty tokens carry no client data."""
        for token in ("does-not-exist", "", None):
            validation = await validate_tracking_token(db, token)
            assert validation.valid is False
            assert validation.error == INVALID_TOKEN
            assert validation.client is None
            assert validation.tailor is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_reissue_deactivates_previous_token(
        self, db, session_factory, workshop, tracking_token
    ) -> None:
        """Test at most one token is live per client."""
        fresh = await create_tracking_token(db, workshop.client.id)
        await db.commit()

        async with session_factory() as session:
            old = await validate_tracking_token(session, tracking_token)
            new = await validate_tracking_token(session, fresh.token)

        assert old.valid is False
        assert old.error == INACTIVE_TOKEN
        assert new.valid is True
        assert fresh.qr_data == fresh.url
        assert fresh.url.endswith(f"/track/{fresh.token}")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_expired_token(self, db, session_factory, workshop, tracking_token) -> None:
        """Test tokens past their expiry are rejected."""
        await db.execute(
            update(ClientTrackingToken)
            .where(ClientTrackingToken.token == tracking_token)
            .values(expires_at=datetime.now(timezone.utc) - timedelta(days=1))
        )
        await db.commit()

        async with session_factory() as session:
            validation = await validate_tracking_token(session, tracking_token)

        assert validation.valid is False
        assert validation.error == EXPIRED_TOKEN

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_validation_does_not_record_use(self, db, workshop, tracking_token) -> None:
        """Test validating a token leaves last_used_at untouched."""
        await validate_tracking_token(db, tracking_token)

        last_used = await db.scalar(
            select(ClientTrackingToken.last_used_at).where(
                ClientTrackingToken.token == tracking_token
            )
        )
        assert last_used is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_touch_records_use(self, db, workshop, tracking_token, session_factory) -> None:
        """Test a successful touch stamps last_used_at."""
        validation = await validate_tracking_token(db, tracking_token)

        await touch_tracking_token(db, validation.token_id)
        await db.commit()

        async with session_factory() as session:
            last_used = await session.scalar(
                select(ClientTrackingToken.last_used_at).where(
                    ClientTrackingToken.id == validation.token_id
                )
            )
        assert last_used is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_touch_keeps_request_transaction(
        self, db, workshop, tracking_token, session_factory, mocker
    ) -> None:
        """Test a failing touch is rolled back alone and earlier writes still commit."""
        validation = await validate_tracking_token(db, tracking_token)
        client = await db.get(Client, workshop.client.id)
        client.notes = "Prefers Saturday fittings"
        savepoints = mocker.spy(db, "begin_nested")
        locked = OperationalError("UPDATE", {}, Exception("database is locked"))

        with patch.object(db, "execute", AsyncMock(side_effect=locked)):
            await touch_tracking_token(db, validation.token_id)

        assert savepoints.call_count == 1
        await db.commit()

        async with session_factory() as session:
            saved = await session.get(Client, workshop.client.id)
            last_used = await session.scalar(
                select(ClientTrackingToken.last_used_at).where(
                    ClientTrackingToken.id == validation.token_id
                )
            )
        assert saved.notes == "Prefers Saturday fittings"
        assert last_used is None
        assert last_used is None


class TestOrderTimeline:
    """Test suite for the portal timeline."""

    @pytest.mark.unit
    def test_in_progress_order(self) -> None:
        """Test steps up to the current status are completed."""
        started = datetime(2026, 1, 7, tzinfo=timezone.utc)
        timeline = generate_order_timeline(_order(OrderStatus.IN_PROGRESS, started_at=started))

        assert [step["completed"] for step in timeline] == [True, True, True, False, False, False]
        assert [step["current"] for step in timeline].index(True) == 2
        assert timeline[0]["date"] == datetime(2026, 1, 5, tzinfo=timezone.utc)
        assert timeline[2]["date"] == started
        assert timeline[5]["date"] is None

    @pytest.mark.unit
    def test_cancelled_order_shows_no_progress(self) -> None:
        """Test a cancelled order has no completed or current step."""
        timeline = generate_order_timeline(_order(OrderStatus.CANCELLED))

        assert not any(step["completed"] for step in timeline)
        assert not any(step["current"] for step in timeline)

    @pytest.mark.unit
    def test_delivered_order_completes_every_step(self) -> None:
        """Test delivered orders show the whole lifecycle done."""
        timeline = generate_order_timeline(_order(OrderStatus.DELIVERED))

        assert all(step["completed"] for step in timeline)
        assert timeline[-1]["label"] == "Completed"


class TestTrackingPortalApi:
    """Integration tests for the /track endpoints."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_portal_view(
        self, client: AsyncClient, workshop, tracking_token, session_factory
    ) -> None:
        """Test the portal returns the client's orders and records token use."""
        response = await client.get(f"/api/v1/track/{tracking_token}")

        assert response.status_code == 200
        body = response.json()
        assert body["client"]["name"] == "Akosua Boateng"
        assert body["tailor"]["id"] == str(workshop.tailor.id)
        assert "passwordHash" not in body["tailor"]
        assert len(body["orders"]) == 1
        order = body["orders"][0]
        assert order["orderNumber"] == "SC-2601-0001"
        assert Decimal(str(order["balance"])) == Decimal("500.00")
        assert order["timeline"][0]["current"] is True
        assert order["rating"] is None
        assert body["payments"] == []

        async with session_factory() as session:
            last_used = await session.scalar(
                select(ClientTrackingToken.last_used_at).where(
                    ClientTrackingToken.token == tracking_token
                )
            )
        assert last_used is not None

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_portal_hides_other_clients(
        self, client: AsyncClient, workshop, other_workshop, tracking_token
    ) -> None:
        """Test only the bound client's orders are listed."""
        response = await client.get(f"/api/v1/track/{tracking_token}")

        order_ids = {order["id"] for order in response.json()["orders"]}
        assert order_ids == {str(workshop.order.id)}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_invalid_token(self, client: AsyncClient, workshop) -> None:
        """Test an unknown token is a 404 with the token error code."""
        response = await client.get("/api/v1/track/nope")

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "invalid_tracking_token"
        assert error["message"] == INVALID_TOKEN

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_reissued_link_invalidates_old_one(
        self, client: AsyncClient, workshop, tracking_token
    ) -> None:
        """Test the tailor issuing a new link revokes the previous link."""
        issued = await client.post(
            f"/api/v1/clients/{workshop.client.id}/tracking-token", headers=workshop.headers
        )
        assert issued.status_code == 201
        new_token = issued.json()["token"]

        old = await client.get(f"/api/v1/track/{tracking_token}")
        new = await client.get(f"/api/v1/track/{new_token}")

        assert old.status_code == 404
        assert old.json()["error"]["message"] == INACTIVE_TOKEN
        assert new.status_code == 200

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_feedback_requires_finished_order(
        self, client: AsyncClient, db, workshop, tracking_token
    ) -> None:
        """Test rating is only accepted once the order is completed, and only once."""
        url = f"/api/v1/track/{tracking_token}/feedback"
        payload = {"orderId": str(workshop.order.id), "rating": 5, "review": "Beautiful kaba"}

        too_early = await client.post(url, json=payload)
        assert too_early.status_code == 400

        await db.execute(
            update(Order)
            .where(Order.id == workshop.order.id)
            .values(status=OrderStatus.COMPLETED.value)
        )
        await db.commit()

        accepted = await client.post(url, json=payload)
        assert accepted.status_code == 201
        assert accepted.json()["rating"] == 5

        duplicate = await client.post(url, json=payload)
        assert duplicate.status_code == 409

        portal = await client.get(f"/api/v1/track/{tracking_token}")
        assert portal.json()["orders"][0]["rating"] == 5

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_feedback_rating_out_of_range(
        self, client: AsyncClient, workshop, tracking_token
    ) -> None:
        """Test ratings outside 1-5 fail validation."""
        response = await client.post(
            f"/api/v1/track/{tracking_token}/feedback",
            json={"orderId": str(workshop.order.id), "rating": 6},
        )

        assert response.status_code == 400

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_start_payment(self, client: AsyncClient, workshop, tracking_token) -> None:
        """Test a portal checkout carries the order in its metadata."""
        paystack = AsyncMock(spec=PaystackClient)
        paystack.initialize_transaction.return_value = {
            "authorization_url": "https://checkout.paystack.com/abc",
            "access_code": "abc",
            "reference": "TRACK-SC-2601-0001-1",
        }
        app.dependency_overrides[get_paystack_client] = lambda: paystack

        response = await client.post(
            f"/api/v1/track/{tracking_token}/pay",
            json={"orderId": str(workshop.order.id), "amount": "200.00"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["access_code"] == "abc"
        kwargs = paystack.initialize_transaction.call_args.kwargs
        assert kwargs["amount"] == Decimal("200.00")
        assert kwargs["email"] == "akosua@example.com"
        assert kwargs["reference"].startswith("TRACK-SC-2601-0001-")
        assert kwargs["metadata"]["orderId"] == str(workshop.order.id)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_start_payment_for_foreign_order(
        self, client: AsyncClient, workshop, other_workshop, tracking_token
    ) -> None:
        """Test a token cannot be used to pay another client's order."""
        paystack = AsyncMock(spec=PaystackClient)
        app.dependency_overrides[get_paystack_client] = lambda: paystack

        response = await client.post(
            f"/api/v1/track/{tracking_token}/pay",
            json={"orderId": str(other_workshop.order.id), "amount": "200.00"},
        )

        assert response.status_code == 404
        paystack.initialize_transaction.assert_not_called()

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_verify_payment_is_idempotent(
        self, client: AsyncClient, workshop, session_factory
    ) -> None:
        """Test verifying the same reference twice records one payment."""
        paystack = AsyncMock(spec=PaystackClient)
        paystack.verify_transaction.return_value = PaystackTransaction(
            reference="TRACK-REF-1",
            status="success",
            amount_pesewas=15000,
            metadata={"orderId": str(workshop.order.id)},
            paid_at="2026-01-10T09:30:00.000Z",
        )
        app.dependency_overrides[get_paystack_client] = lambda: paystack

        first = await client.get("/api/v1/track/pay/verify", params={"reference": "TRACK-REF-1"})
        second = await client.get("/api/v1/track/pay/verify", params={"reference": "TRACK-REF-1"})

        assert first.status_code == 200
        assert first.json() == {"success": True, "alreadyRecorded": False}
        assert second.json() == {"success": True, "alreadyRecorded": True}

        async with session_factory() as session:
            payments = (await session.execute(select(Payment))).scalars().all()
            order = await session.get(Order, workshop.order.id)
        assert len(payments) == 1
        assert payments[0].method == "PAYSTACK"
        assert Decimal(order.paid_amount) == Decimal("150.00")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_verify_unsuccessful_payment(self, client: AsyncClient, workshop) -> None:
        """Test a failed transaction is not recorded."""
        paystack = AsyncMock(spec=PaystackClient)
        paystack.verify_transaction.return_value = PaystackTransaction(
            reference="TRACK-REF-2",
            status="failed",
            amount_pesewas=15000,
            metadata={"orderId": str(workshop.order.id)},
        )
        app.dependency_overrides[get_paystack_client] = lambda: paystack

        response = await client.get(
            "/api/v1/track/pay/verify", params={"reference": "TRACK-REF-2"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "payment_verification_failed"
