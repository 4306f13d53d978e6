"""Invitation preview and acceptance for the invitee."""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.api.dependencies import client_ip
from stitchcraft.api.schemas import (
    InvitationAcceptRequest,
    InvitationAcceptResponse,
    InvitationPreview,
)
from stitchcraft.core.audit import log_audit
from stitchcraft.core.guards import require_user
from stitchcraft.core.invitations import accept_invitation, get_open_invitation
from stitchcraft.database.connection import get_db
from stitchcraft.database.models import User

router = APIRouter(prefix="/invitations", tags=["invitations"])


@router.get("/accept", response_model=InvitationPreview, summary="Inspect an invitation")
async def preview_invitation(
    token: str = Query(..., min_length=1, max_length=64),
    db: AsyncSession = Depends(get_db),
) -> InvitationPreview:
    """Public: shows who invited whom, before the invitee logs in."""
    invitation = await get_open_invitation(db, token)
    return InvitationPreview(
        email=invitation.email,
        role=invitation.role,
        organization_name=invitation.organization.name,
        organization_slug=invitation.organization.slug,
        invited_by_name=invitation.invited_by.name,
        expires_at=invitation.expires_at,
    )


@router.post("/accept", response_model=InvitationAcceptResponse, summary="Accept an invitation")
async def accept(
    body: InvitationAcceptRequest,
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> InvitationAcceptResponse:
    result = await accept_invitation(db, user, body.token)
    organization = result.invitation.organization

    await log_audit(
        db,
        user.id,
        "ACCEPT",
        "invitation",
        result.invitation.id,
        details={"organization_id": str(organization.id), "role": result.invitation.role},
        ip_address=client_ip(request),
    )

    if result.already_member:
        message = f"You are already a member of {organization.name}"
    else:
        message = f"Welcome to {organization.name}!"
    return InvitationAcceptResponse(
        already_member=result.already_member,
        organization_id=organization.id,
        organization_slug=organization.slug,
        message=message,
    )
