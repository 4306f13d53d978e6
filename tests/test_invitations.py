"""
Tests for worker invitations and the permission catalogue.
"""
from datetime import timedelta
from typing import Dict, Tuple

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from stitchcraft.core.auth import create_session
from stitchcraft.core.exceptions import ConflictError, NotFoundError, ValidationFailedError
from stitchcraft.core.invitations import (
    accept_invitation,
    create_invitation,
    get_open_invitation,
    revoke_invitation,
)
from stitchcraft.core.permissions import Permission
from stitchcraft.database.models import (
    Invitation,
    InvitationStatus,
    OrganizationMember,
    User,
    UserRole,
    as_aware,
    utcnow,
)

from .conftest import add_worker, create_user

INVITEE = "yaw@stitchcraft.gh"


async def invitee(db) -> Tuple[User, Dict[str, str]]:
    user = await create_user(db, INVITEE, UserRole.CLIENT, name="Yaw Boakye")
    session = await create_session(db, user.id)
    await db.commit()
    return user, {"Authorization": f"Bearer {session.token}"}


class TestCreateInvitation:
    """Test suite for create_invitation."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_normalises_email_and_issues_token(self, db, workshop) -> None:
        """Test the email is stored lowercased with a fresh token and expiry."""
        invitation = await create_invitation(
            db,
            workshop.organization.id,
            workshop.tailor,
            " Yaw@StitchCraft.gh ",
            "SENIOR",
            ["payments:read", "payments:read"],
        )

        assert invitation.email == INVITEE
        assert invitation.status == InvitationStatus.PENDING.value
        assert invitation.permissions == ["payments:read"]
        assert len(invitation.token) >= 32
        assert as_aware(invitation.expires_at) > utcnow()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_existing_member_conflicts(self, db, workshop) -> None:
        """Test inviting someone already in the organization is a conflict."""
        with pytest.raises(ConflictError):
            await create_invitation(
                db, workshop.organization.id, workshop.tailor, workshop.tailor.email, "WORKER"
            )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_live_duplicate_conflicts(self, db, workshop) -> None:
        """Test a second invitation while one is pending is a conflict."""
        await create_invitation(db, workshop.organization.id, workshop.tailor, INVITEE, "WORKER")

        with pytest.raises(ConflictError):
            await create_invitation(
                db, workshop.organization.id, workshop.tailor, INVITEE, "WORKER"
            )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_expired_invitation_can_be_reissued(self, db, workshop) -> None:
        """Test an expired pending invitation does not block a new one."""
        first = await create_invitation(
            db, workshop.organization.id, workshop.tailor, INVITEE, "WORKER"
        )
        first.expires_at = utcnow() - timedelta(minutes=1)
        await db.flush()

        second = await create_invitation(
            db, workshop.organization.id, workshop.tailor, INVITEE, "WORKER"
        )

        assert second.token != first.token


class TestAcceptInvitation:
    """Test suite for accept_invitation and token lookup."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_accept_creates_membership(self, db, workshop) -> None:
        """Test accepting joins the organization with the invited role and grants."""
        invitation = await create_invitation(
            db, workshop.organization.id, workshop.tailor, INVITEE, "SENIOR", ["payments:read"]
        )
        user = await create_user(db, INVITEE, UserRole.CLIENT)

        result = await accept_invitation(db, user, invitation.token)

        assert not result.already_member
        assert user.role == UserRole.WORKER.value
        assert invitation.status == InvitationStatus.ACCEPTED.value
        assert invitation.accepted_at is not None
        membership = (
            await db.execute(
                select(OrganizationMember).where(OrganizationMember.user_id == user.id)
            )
        ).scalar_one()
        assert membership.organization_id == workshop.organization.id
        assert membership.role == "SENIOR"
        assert membership.permissions == ["payments:read"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_tailor_keeps_role(self, db, workshop, other_workshop) -> None:
        """Test a tailor joining another organization stays a tailor."""
        invitation = await create_invitation(
            db,
            workshop.organization.id,
            workshop.tailor,
            other_workshop.tailor.email,
            "WORKER",
        )

        await accept_invitation(db, other_workshop.tailor, invitation.token)

        assert other_workshop.tailor.role == UserRole.TAILOR.value

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_wrong_email_rejected(self, db, workshop) -> None:
        """Test only the invited address can accept."""
        invitation = await create_invitation(
            db, workshop.organization.id, workshop.tailor, INVITEE, "WORKER"
        )
        stranger = await create_user(db, "stranger@example.com", UserRole.CLIENT)

        with pytest.raises(ValidationFailedError) as exc_info:
            await accept_invitation(db, stranger, invitation.token)

        assert "token" in exc_info.value.field_errors
        assert invitation.status == InvitationStatus.PENDING.value

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", ["accepted", "revoked", "expired", "unknown"])
    async def test_closed_tokens_are_invalid(self, db, workshop, state: str) -> None:
        """Test accepted, revoked, expired and unknown tokens never resolve."""
        invitation = await create_invitation(
            db, workshop.organization.id, workshop.tailor, INVITEE, "WORKER"
        )
        token = invitation.token
        if state == "accepted":
            invitation.status = InvitationStatus.ACCEPTED.value
        elif state == "revoked":
            await revoke_invitation(db, workshop.organization.id, invitation.id)
        elif state == "expired":
            invitation.expires_at = utcnow() - timedelta(seconds=1)
        else:
            token = "no-such-invitation"
        await db.flush()

        with pytest.raises(ValidationFailedError):
            await get_open_invitation(db, token)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_revoke_scoped_to_organization(self, db, workshop, other_workshop) -> None:
        """Test another organization cannot revoke the invitation."""
        invitation = await create_invitation(
            db, workshop.organization.id, workshop.tailor, INVITEE, "WORKER"
        )

        with pytest.raises(NotFoundError):
            await revoke_invitation(db, other_workshop.organization.id, invitation.id)

        assert invitation.status == InvitationStatus.PENDING.value


class TestInvitationsApi:
    """Integration tests for inviting, previewing and accepting."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_invite_and_accept(self, client: AsyncClient, db, workshop) -> None:
        """Test the whole flow from invitation to a working membership."""
        url = f"/api/v1/organizations/{workshop.organization.id}/invitations"

        created = await client.post(
            url,
            json={"email": INVITEE, "role": "WORKER", "permissions": ["payments:read"]},
            headers=workshop.headers,
        )
        assert created.status_code == 201
        token = created.json()["token"]
        assert created.json()["url"].endswith(f"/auth/accept-invitation?token={token}")
        assert created.json()["invitedByName"] == "ama-kente owner"

        pending = await client.get(url, headers=workshop.headers)
        assert [i["email"] for i in pending.json()] == [INVITEE]
        assert "token" not in pending.json()[0]

        preview = await client.get(f"/api/v1/invitations/accept?token={token}")
        assert preview.status_code == 200
        assert preview.json()["organizationSlug"] == "ama-kente"
        assert preview.json()["email"] == INVITEE

        _, headers = await invitee(db)
        before = await client.get("/api/v1/orders", headers=headers)
        assert before.status_code == 403

        accepted = await client.post(
            "/api/v1/invitations/accept", json={"token": token}, headers=headers
        )
        assert accepted.status_code == 200
        assert accepted.json()["alreadyMember"] is False
        assert accepted.json()["message"] == "Welcome to ama-kente Studio!"

        me = await client.get("/api/v1/auth/me", headers=headers)
        orders = await client.get("/api/v1/orders", headers=headers)
        payments = await client.get("/api/v1/payments", headers=headers)
        assert me.json()["role"] == "WORKER"
        assert orders.status_code == 200
        assert payments.status_code == 200

        after = await client.get(url, headers=workshop.headers)
        assert after.json() == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_duplicate_invitation_conflicts(self, client: AsyncClient, workshop) -> None:
        """Test a second live invitation to the same email is a 409."""
        url = f"/api/v1/organizations/{workshop.organization.id}/invitations"

        first = await client.post(url, json={"email": INVITEE}, headers=workshop.headers)
        second = await client.post(url, json={"email": INVITEE}, headers=workshop.headers)

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["error"]["code"] == "conflict"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_revoked_invitation_cannot_be_accepted(
        self, client: AsyncClient, db, workshop
    ) -> None:
        """Test revoking closes the token and a second revoke conflicts."""
        url = f"/api/v1/organizations/{workshop.organization.id}/invitations"
        created = await client.post(url, json={"email": INVITEE}, headers=workshop.headers)
        invitation_id = created.json()["id"]

        revoked = await client.delete(f"{url}/{invitation_id}", headers=workshop.headers)
        again = await client.delete(f"{url}/{invitation_id}", headers=workshop.headers)
        assert revoked.json() == {"success": True}
        assert again.status_code == 409

        _, headers = await invitee(db)
        accepted = await client.post(
            "/api/v1/invitations/accept",
            json={"token": created.json()["token"]},
            headers=headers,
        )
        assert accepted.status_code == 400
        assert "token" in accepted.json()["error"]["details"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_accept_requires_login(self, client: AsyncClient) -> None:
        """Test accepting anonymously is a 401."""
        response = await client.post("/api/v1/invitations/accept", json={"token": "abc"})

        assert response.status_code == 401

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_worker_cannot_invite(self, client: AsyncClient, db, workshop) -> None:
        """Test inviting needs workers:manage."""
        headers = await add_worker(db, workshop)

        response = await client.post(
            f"/api/v1/organizations/{workshop.organization.id}/invitations",
            json={"email": INVITEE},
            headers=headers,
        )

        assert response.status_code == 403

    @pytest.mark.integration
    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "POST"])
    async def test_other_organization_not_found(
        self, client: AsyncClient, workshop, other_workshop, method: str
    ) -> None:
        """Test invitations of another organization look absent."""
        response = await client.request(
            method,
            f"/api/v1/organizations/{workshop.organization.id}/invitations",
            json={"email": INVITEE} if method == "POST" else None,
            headers=other_workshop.headers,
        )

        assert response.status_code == 404

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_invitation_rows_are_kept(
        self, client: AsyncClient, workshop, session_factory
    ) -> None:
        """Test revoking marks the row instead of deleting it."""
        url = f"/api/v1/organizations/{workshop.organization.id}/invitations"
        created = await client.post(url, json={"email": INVITEE}, headers=workshop.headers)

        await client.delete(f"{url}/{created.json()['id']}", headers=workshop.headers)

        async with session_factory() as session:
            invitation = (await session.execute(select(Invitation))).scalar_one()
        assert invitation.status == InvitationStatus.REVOKED.value


class TestPermissionCatalogueApi:
    """Integration tests for the permission catalogue."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_lists_every_permission(self, client: AsyncClient, workshop) -> None:
        """Test every key is described with the roles that hold it by default."""
        response = await client.get(
            f"/api/v1/organizations/{workshop.organization.id}/permissions",
            headers=workshop.headers,
        )

        assert response.status_code == 200
        catalogue = {entry["key"]: entry for entry in response.json()}
        assert set(catalogue) == {permission.value for permission in Permission}
        assert all(entry["description"] for entry in catalogue.values())
        assert all("MANAGER" in entry["defaultRoles"] for entry in catalogue.values())
        assert "WORKER" not in catalogue["payments:write"]["defaultRoles"]
