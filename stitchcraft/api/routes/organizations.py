"""Organization membership, worker invitations and the permission catalogue."""
import uuid
from typing import List

import structlog
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.api.dependencies import client_ip
from stitchcraft.api.schemas import (
    InvitationCreate,
    InvitationCreatedResponse,
    InvitationResponse,
    MemberResponse,
    MemberUpdate,
    PermissionInfo,
)
from stitchcraft.core.audit import log_audit
from stitchcraft.core.exceptions import NotFoundError, ValidationFailedError
from stitchcraft.core.guards import OrganizationContext, require_permission
from stitchcraft.core.invitations import (
    create_invitation,
    invitation_url,
    list_pending_invitations,
    revoke_invitation,
)
from stitchcraft.core.permissions import (
    PERMISSION_DESCRIPTIONS,
    ROLE_PERMISSIONS,
    Permission,
    effective_permissions,
)
from stitchcraft.database.connection import get_db
from stitchcraft.database.models import Invitation, OrganizationMember

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/organizations", tags=["organizations"])


def _member_response(member: OrganizationMember) -> MemberResponse:
    return MemberResponse(
        id=member.id,
        user_id=member.user_id,
        name=member.user.name,
        email=member.user.email,
        role=member.role,
        permissions=list(member.permissions or []),
        effective_permissions=sorted(
            p.value for p in effective_permissions(member.role, member.permissions or [])
        ),
        created_at=member.created_at,
    )


def _ensure_same_organization(ctx: OrganizationContext, org_id: uuid.UUID) -> None:
    if org_id != ctx.organization_id:
        raise NotFoundError("Organization", str(org_id))


@router.get(
    "/{org_id}/members", response_model=List[MemberResponse], summary="List members"
)
async def list_members(
    org_id: uuid.UUID,
    ctx: OrganizationContext = Depends(require_permission(Permission.WORKERS_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> List[MemberResponse]:
    _ensure_same_organization(ctx, org_id)
    result = await db.execute(
        select(OrganizationMember)
        .where(OrganizationMember.organization_id == org_id)
        .order_by(OrganizationMember.created_at)
    )
    return [_member_response(member) for member in result.scalars().all()]


@router.patch(
    "/{org_id}/members/{member_id}",
    response_model=MemberResponse,
    summary="Change a member's role or grants",
)
async def update_member(
    org_id: uuid.UUID,
    member_id: uuid.UUID,
    body: MemberUpdate,
    request: Request,
    ctx: OrganizationContext = Depends(require_permission(Permission.WORKERS_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> MemberResponse:
    """
    Update a member.

    ``permissions`` are extra grants on top of the role defaults and replace
    any previous grants. The owner's role is fixed.
    """
    _ensure_same_organization(ctx, org_id)

    member = await db.get(OrganizationMember, member_id)
    if member is None or member.organization_id != org_id:
        raise NotFoundError("Member", str(member_id))

    if body.role is not None and body.role.value != member.role:
        if member.user_id == ctx.tailor_id:
            raise ValidationFailedError.for_field("role", "The owner's role cannot be changed")
        member.role = body.role.value
    if body.permissions is not None:
        member.permissions = sorted({p.value for p in body.permissions})

    await db.flush()
    await db.refresh(member)

    await log_audit(
        db,
        ctx.user.id,
        "UPDATE",
        "organization_member",
        member.id,
        details={"role": member.role, "permissions": member.permissions},
        ip_address=client_ip(request),
    )
    logger.info(
        "member_updated",
        member_id=str(member.id),
        organization_id=str(org_id),
        role=member.role,
    )
    return _member_response(member)


def _invitation_response(invitation: Invitation) -> InvitationResponse:
    return InvitationResponse(
        id=invitation.id,
        email=invitation.email,
        role=invitation.role,
        permissions=list(invitation.permissions or []),
        status=invitation.status,
        invited_by_name=invitation.invited_by.name,
        expires_at=invitation.expires_at,
        accepted_at=invitation.accepted_at,
        created_at=invitation.created_at,
    )


@router.get(
    "/{org_id}/permissions",
    response_model=List[PermissionInfo],
    summary="Permission catalogue",
)
async def list_permissions(
    org_id: uuid.UUID,
    ctx: OrganizationContext = Depends(require_permission(Permission.WORKERS_MANAGE)),
) -> List[PermissionInfo]:
    """Every grantable key with its description and the roles that hold it by default."""
    _ensure_same_organization(ctx, org_id)
    return [
        PermissionInfo(
            key=permission.value,
            description=description,
            default_roles=[
                role.value for role, granted in ROLE_PERMISSIONS.items() if permission in granted
            ],
        )
        for permission, description in PERMISSION_DESCRIPTIONS.items()
    ]


@router.get(
    "/{org_id}/invitations",
    response_model=List[InvitationResponse],
    summary="List pending invitations",
)
async def list_invitations(
    org_id: uuid.UUID,
    ctx: OrganizationContext = Depends(require_permission(Permission.WORKERS_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> List[InvitationResponse]:
    _ensure_same_organization(ctx, org_id)
    return [_invitation_response(i) for i in await list_pending_invitations(db, org_id)]


@router.post(
    "/{org_id}/invitations",
    response_model=InvitationCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invite a worker",
)
async def invite_worker(
    org_id: uuid.UUID,
    body: InvitationCreate,
    request: Request,
    ctx: OrganizationContext = Depends(require_permission(Permission.WORKERS_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> InvitationCreatedResponse:
    """
    Invite an email address to join as a worker.

    The response carries the acceptance link; delivering it to the invitee
    is left to the caller.
    """
    _ensure_same_organization(ctx, org_id)

    invitation = await create_invitation(
        db,
        org_id,
        ctx.user,
        email=body.email,
        role=body.role.value,
        permissions=[p.value for p in body.permissions],
    )
    await log_audit(
        db,
        ctx.user.id,
        "CREATE",
        "invitation",
        invitation.id,
        details={"role": invitation.role, "permissions": invitation.permissions},
        ip_address=client_ip(request),
    )
    return InvitationCreatedResponse(
        **_invitation_response(invitation).model_dump(),
        token=invitation.token,
        url=invitation_url(invitation.token),
    )


@router.delete("/{org_id}/invitations/{invitation_id}", summary="Revoke an invitation")
async def delete_invitation(
    org_id: uuid.UUID,
    invitation_id: uuid.UUID,
    request: Request,
    ctx: OrganizationContext = Depends(require_permission(Permission.WORKERS_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    _ensure_same_organization(ctx, org_id)
    invitation = await revoke_invitation(db, org_id, invitation_id)
    await log_audit(
        db, ctx.user.id, "REVOKE", "invitation", invitation.id, ip_address=client_ip(request)
    )
    return {"success": True}
