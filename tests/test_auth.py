"""
Tests for registration, login and sessions.
"""
from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select, update

from stitchcraft.core.auth import (
    authenticate_user,
    create_session,
    hash_password,
    resolve_session,
    slugify,
    verify_password,
)
from stitchcraft.core.exceptions import RateLimitExceededError, UnauthorizedError
from stitchcraft.database.models import (
    Organization,
    OrganizationMember,
    Session,
    UserRole,
    UserStatus,
    utcnow,
)

from .conftest import PASSWORD, create_user


class TestPasswordsAndSessions:
    """Test suite for password hashing and session resolution."""

    @pytest.mark.unit
    def test_password_round_trip(self) -> None:
        """Test bcrypt hashing and verification."""
        password_hash = hash_password("kente-and-batakari")

        assert password_hash != "kente-and-batakari"
        assert verify_password("kente-and-batakari", password_hash)
        assert not verify_password("wrong", password_hash)
        assert not verify_password("anything", "not-a-bcrypt-hash")

    @pytest.mark.unit
    def test_slugify(self) -> None:
        """Test organization slugs."""
        assert slugify("Ama's Kente Studio") == "ama-s-kente-studio"
        assert slugify("!!!") == "workshop"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_expired_session_is_removed(self, db, workshop) -> None:
        """Test an expired session resolves to no user and is deleted."""
        session = await create_session(db, workshop.tailor.id)
        await db.execute(
            update(Session)
            .where(Session.id == session.id)
            .values(expires_at=utcnow() - timedelta(minutes=1))
        )
        await db.commit()

        assert await resolve_session(db, session.token) is None
        remaining = await db.scalar(select(Session.id).where(Session.id == session.id))
        assert remaining is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_approved_user_becomes_active_on_login(self, db) -> None:
        """Test first login promotes APPROVED to ACTIVE."""
        await create_user(db, "kojo@stitchcraft.gh", UserRole.TAILOR, UserStatus.APPROVED)
        await db.commit()

        user = await authenticate_user(db, "  Kojo@StitchCraft.gh ", PASSWORD)

        assert user.status == UserStatus.ACTIVE.value

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,message",
        [
            (UserStatus.PENDING, "pending approval"),
            (UserStatus.SUSPENDED, "suspended"),
            (UserStatus.REJECTED, "rejected"),
        ],
    )
    async def test_blocked_statuses(self, db, status: UserStatus, message: str) -> None:
        """Test accounts that may not log in."""
        await create_user(db, "blocked@stitchcraft.gh", UserRole.TAILOR, status)
        await db.commit()

        with pytest.raises(UnauthorizedError, match=message):
            await authenticate_user(db, "blocked@stitchcraft.gh", PASSWORD)


class TestAuthApi:
    """Integration tests for the auth endpoints."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_register_tailor_is_pending(
        self, client: AsyncClient, session_factory
    ) -> None:
        """Test a tailor registers PENDING with an organization and no session."""
        response = await client.post(
            "/api/v1/auth/register",
            json={
                "email": "Efua@Kente.gh",
                "password": "strong-password",
                "name": "Efua Asante",
                "phone": "0241234567",
                "businessName": "Efua's Kente Studio",
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["token"] is None
        assert body["user"]["status"] == "PENDING"
        assert body["user"]["email"] == "efua@kente.gh"
        assert body["user"]["phone"] == "+233241234567"

        async with session_factory() as session:
            organization = (await session.execute(select(Organization))).scalar_one()
            membership = (await session.execute(select(OrganizationMember))).scalar_one()
        assert organization.slug == "efua-s-kente-studio"
        assert membership.role == "MANAGER"

        login = await client.post(
            "/api/v1/auth/login",
            json={"email": "efua@kente.gh", "password": "strong-password"},
        )
        assert login.status_code == 401

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_register_admin_rejected(self, client: AsyncClient) -> None:
        """Test nobody can self-register as admin."""
        response = await client.post(
            "/api/v1/auth/register",
            json={
                "email": "root@stitchcraft.gh",
                "password": "strong-password",
                "name": "Root",
                "role": "ADMIN",
            },
        )

        assert response.status_code == 400

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, client: AsyncClient, workshop) -> None:
        """Test emails are unique."""
        response = await client.post(
            "/api/v1/auth/register",
            json={
                "email": "ama-kente@stitchcraft.gh",
                "password": "strong-password",
                "name": "Someone Else",
            },
        )

        assert response.status_code == 409

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_register_client_with_tracking_token(
        self, client: AsyncClient, workshop, tracking_token
    ) -> None:
        """Test a client account links to the tailor's client record."""
        response = await client.post(
            "/api/v1/auth/register",
            json={
                "email": "akosua@example.com",
                "password": "strong-password",
                "name": "Akosua Boateng",
                "role": "CLIENT",
                "trackingToken": tracking_token,
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["token"]
        assert body["user"]["status"] == "ACTIVE"
        assert body["user"]["linkedClientId"] == str(workshop.client.id)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_register_client_with_bad_token(self, client: AsyncClient) -> None:
        """Test an unknown tracking token is a validation failure."""
        response = await client.post(
            "/api/v1/auth/register",
            json={
                "email": "yaa@example.com",
                "password": "strong-password",
                "name": "Yaa",
                "role": "CLIENT",
                "trackingToken": "unknown-token",
            },
        )

        assert response.status_code == 400
        assert "trackingToken" in response.json()["error"]["details"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_login_me_logout(self, client: AsyncClient, workshop, rate_limiter) -> None:
        """Test the full session lifecycle with a bearer token."""
        login = await client.post(
            "/api/v1/auth/login",
            json={"email": "ama-kente@stitchcraft.gh", "password": PASSWORD},
        )
        assert login.status_code == 200
        token = login.json()["token"]
        assert "sc_session=" in login.headers["set-cookie"]
        rate_limiter.reset.assert_awaited_once()

        client.cookies.clear()
        headers = {"Authorization": f"Bearer {token}"}
        me = await client.get("/api/v1/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json()["email"] == "ama-kente@stitchcraft.gh"

        logout = await client.post("/api/v1/auth/logout", headers=headers)
        assert logout.status_code == 200

        after = await client.get("/api/v1/auth/me", headers=headers)
        assert after.status_code == 401

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client: AsyncClient, workshop) -> None:
        """Test bad credentials are a 401."""
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "ama-kente@stitchcraft.gh", "password": "nope-nope"},
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "unauthorized"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_login_rate_limited(self, client: AsyncClient, workshop, rate_limiter) -> None:
        """Test the limiter's rejection is a 429 with Retry-After."""
        rate_limiter.check_login.side_effect = RateLimitExceededError(
            limit=5, window_seconds=900, retry_after_seconds=120
        )

        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "ama-kente@stitchcraft.gh", "password": PASSWORD},
        )

        assert response.status_code == 429
        assert response.headers["retry-after"] == "120"
        assert response.json()["error"]["code"] == "rate_limit_exceeded"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_me_requires_session(self, client: AsyncClient) -> None:
        """Test anonymous requests are a 401."""
        response = await client.get("/api/v1/auth/me")

        assert response.status_code == 401
