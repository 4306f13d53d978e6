"""
Worker invitations.

An owner or manager invites an email address into the organization with a
worker role and optional extra grants. The invitee accepts while logged in
as that email; accepting creates the membership and turns a plain account
into a WORKER. Tailor and admin accounts keep their role.
"""
import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, List

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.config import get_settings
from stitchcraft.core.auth import TAILOR_ROLES
from stitchcraft.core.exceptions import ConflictError, NotFoundError, ValidationFailedError
from stitchcraft.database.models import (
    Invitation,
    InvitationStatus,
    OrganizationMember,
    User,
    UserRole,
    as_aware,
    utcnow,
)

logger = structlog.get_logger(__name__)

INVALID_INVITATION = "Invalid or expired invitation"


@dataclass
class AcceptedInvitation:
    invitation: Invitation
    already_member: bool


def invitation_url(token: str) -> str:
    return f"{get_settings().app_url.rstrip('/')}/auth/accept-invitation?token={token}"


def is_expired(invitation: Invitation) -> bool:
    return as_aware(invitation.expires_at) < utcnow()


async def create_invitation(
    db: AsyncSession,
    organization_id: uuid.UUID,
    invited_by: User,
    email: str,
    role: str,
    permissions: Iterable[str] = (),
) -> Invitation:
    """
    Invite an email address into the organization.

    Raises:
        ConflictError: The address already belongs to a member, or holds a
            live invitation
    """
    email = email.strip().lower()

    member = await db.execute(
        select(OrganizationMember.id)
        .join(User, User.id == OrganizationMember.user_id)
        .where(OrganizationMember.organization_id == organization_id, User.email == email)
    )
    if member.first() is not None:
        raise ConflictError("User is already a member of this organization")

    pending = await db.execute(
        select(Invitation).where(
            Invitation.organization_id == organization_id,
            Invitation.email == email,
            Invitation.status == InvitationStatus.PENDING.value,
        )
    )
    if any(not is_expired(invitation) for invitation in pending.scalars().all()):
        raise ConflictError("An invitation is already pending for this email")

    invitation = Invitation(
        organization_id=organization_id,
        email=email,
        role=role,
        permissions=sorted(set(permissions)),
        token=secrets.token_urlsafe(32),
        invited_by_id=invited_by.id,
        expires_at=utcnow() + timedelta(days=get_settings().invitation_ttl_days),
    )
    db.add(invitation)
    await db.flush()
    await db.refresh(invitation)

    logger.info(
        "invitation_created",
        invitation_id=str(invitation.id),
        organization_id=str(organization_id),
        role=role,
    )
    return invitation


async def list_pending_invitations(
    db: AsyncSession, organization_id: uuid.UUID
) -> List[Invitation]:
    result = await db.execute(
        select(Invitation)
        .where(
            Invitation.organization_id == organization_id,
            Invitation.status == InvitationStatus.PENDING.value,
        )
        .order_by(Invitation.created_at.desc())
    )
    return list(result.scalars().all())


async def revoke_invitation(
    db: AsyncSession, organization_id: uuid.UUID, invitation_id: uuid.UUID
) -> Invitation:
    invitation = await db.get(Invitation, invitation_id)
    if invitation is None or invitation.organization_id != organization_id:
        raise NotFoundError("Invitation", str(invitation_id))
    if invitation.status != InvitationStatus.PENDING.value:
        raise ConflictError("Only pending invitations can be revoked")

    invitation.status = InvitationStatus.REVOKED.value
    await db.flush()
    logger.info("invitation_revoked", invitation_id=str(invitation.id))
    return invitation


async def get_open_invitation(db: AsyncSession, token: str) -> Invitation:
    """
    Pending, unexpired invitation for a token.

    Raises:
        ValidationFailedError: Unknown, accepted, revoked or expired token
    """
    result = await db.execute(select(Invitation).where(Invitation.token == token))
    invitation = result.scalar_one_or_none()
    if (
        invitation is None
        or invitation.status != InvitationStatus.PENDING.value
        or is_expired(invitation)
    ):
        raise ValidationFailedError.for_field("token", INVALID_INVITATION)
    return invitation


async def accept_invitation(db: AsyncSession, user: User, token: str) -> AcceptedInvitation:
    """
    Join the inviting organization.

    Accepting when already a member only closes the invitation.

    Raises:
        ValidationFailedError: Invalid token, or the invitation was sent to
            another email address
    """
    invitation = await get_open_invitation(db, token)

    if user.email.lower() != invitation.email:
        raise ValidationFailedError.for_field(
            "token", "This invitation was sent to a different email address"
        )

    result = await db.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == invitation.organization_id,
            OrganizationMember.user_id == user.id,
        )
    )
    already_member = result.scalar_one_or_none() is not None

    if not already_member:
        db.add(
            OrganizationMember(
                organization_id=invitation.organization_id,
                user_id=user.id,
                role=invitation.role,
                permissions=list(invitation.permissions or []),
            )
        )
        if user.role not in TAILOR_ROLES and user.role != UserRole.ADMIN.value:
            user.role = UserRole.WORKER.value

    invitation.status = InvitationStatus.ACCEPTED.value
    invitation.accepted_at = utcnow()
    await db.flush()

    logger.info(
        "invitation_accepted",
        invitation_id=str(invitation.id),
        user_id=str(user.id),
        already_member=already_member,
    )
    return AcceptedInvitation(invitation=invitation, already_member=already_member)
