"""
Request guards.

FastAPI dependencies that resolve the current actor from the session token
and enforce role and permission policy before a handler runs:

- ADMIN bypasses permission checks.
- TAILOR / SEAMSTRESS must own the organization.
- WORKER must be a member whose effective permissions include the key.
- CLIENT never holds workforce permissions.
"""
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Type, TypeVar

import structlog
from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.config import get_settings
from stitchcraft.core.auth import TAILOR_ROLES, resolve_session
from stitchcraft.core.exceptions import ForbiddenError, NotFoundError, UnauthorizedError
from stitchcraft.core.permissions import Permission, effective_permissions
from stitchcraft.database.connection import get_db
from stitchcraft.database.models import (
    Organization,
    OrganizationMember,
    User,
    UserRole,
    UserStatus,
)

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT")


@dataclass
class OrganizationContext:
    """Actor plus the organization every subsequent query is scoped to."""

    user: User
    organization_id: uuid.UUID
    tailor_id: uuid.UUID


def session_token_from_request(request: Request) -> Optional[str]:
    """Session token from the cookie, falling back to a bearer header."""
    token = request.cookies.get(get_settings().session_cookie_name)
    if token:
        return token
    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


async def get_current_user(
    request: Request, db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    return await resolve_session(db, session_token_from_request(request))


async def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    if user is None:
        raise UnauthorizedError()
    return user


async def require_active_tailor(user: User = Depends(require_user)) -> User:
    if user.role not in TAILOR_ROLES:
        raise ForbiddenError("Tailor account required")
    if user.status != UserStatus.ACTIVE.value:
        raise ForbiddenError("Tailor account is not active")
    return user


async def require_client(user: User = Depends(require_user)) -> User:
    if user.role != UserRole.CLIENT.value:
        raise ForbiddenError("Client account required")
    return user


async def require_admin(user: User = Depends(require_user)) -> User:
    if user.role != UserRole.ADMIN.value:
        raise ForbiddenError("Admin access required")
    return user


async def resolve_organization(db: AsyncSession, user: User) -> Optional[Organization]:
    """
    Organization the user works in.

    Owners resolve to the organization they own; workers to their first
    membership.
    """
    if user.role in TAILOR_ROLES:
        result = await db.execute(
            select(Organization)
            .where(Organization.owner_id == user.id)
            .order_by(Organization.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    if user.role == UserRole.WORKER.value:
        result = await db.execute(
            select(Organization)
            .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
            .where(OrganizationMember.user_id == user.id)
            .order_by(OrganizationMember.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    return None


async def require_organization(
    user: User = Depends(require_user), db: AsyncSession = Depends(get_db)
) -> OrganizationContext:
    if user.role in TAILOR_ROLES and user.status != UserStatus.ACTIVE.value:
        raise ForbiddenError("Tailor account is not active")

    organization = await resolve_organization(db, user)
    if organization is None:
        raise ForbiddenError("No organization access")

    return OrganizationContext(
        user=user, organization_id=organization.id, tailor_id=organization.owner_id
    )


async def check_permission(
    db: AsyncSession,
    user: User,
    permission: Permission,
    organization_id: uuid.UUID,
) -> bool:
    """
    Evaluate the permission policy for one organization.

    Args:
        db: Database session
        user: Acting user
        permission: Required permission key
        organization_id: Organization the action targets

    Returns:
        True when the user may perform the action
    """
    if user.role == UserRole.ADMIN.value:
        return True

    if user.role in TAILOR_ROLES:
        result = await db.execute(
            select(Organization.id).where(
                Organization.id == organization_id, Organization.owner_id == user.id
            )
        )
        return result.first() is not None

    if user.role == UserRole.WORKER.value:
        result = await db.execute(
            select(OrganizationMember).where(
                OrganizationMember.organization_id == organization_id,
                OrganizationMember.user_id == user.id,
            )
        )
        membership = result.scalar_one_or_none()
        if membership is None:
            return False
        return permission in effective_permissions(membership.role, membership.permissions)

    return False


def require_permission(permission: Permission) -> Callable:
    """
    Dependency factory guarding a route with one permission key.

    Example:
        @router.get("/orders")
        async def list_orders(ctx = Depends(require_permission(Permission.ORDERS_READ))):
            ...
    """

    async def dependency(
        ctx: OrganizationContext = Depends(require_organization),
        db: AsyncSession = Depends(get_db),
    ) -> OrganizationContext:
        allowed = await check_permission(db, ctx.user, permission, ctx.organization_id)
        if not allowed:
            logger.info(
                "permission_denied",
                user_id=str(ctx.user.id),
                permission=permission.value,
                organization_id=str(ctx.organization_id),
            )
            raise ForbiddenError(f"Missing permission: {permission.value}")
        return ctx

    return dependency


def require_tailor_permission(permission: Permission) -> Callable:
    """Active tailor who also passes the permission check (exports)."""

    async def dependency(
        user: User = Depends(require_active_tailor),
        ctx: OrganizationContext = Depends(require_permission(permission)),
    ) -> OrganizationContext:
        return ctx

    return dependency


async def fetch_in_organization(
    db: AsyncSession, model: Type[ModelT], record_id: uuid.UUID, organization_id: uuid.UUID
) -> ModelT:
    """
    Load a tenant-owned record.

    Raises:
        NotFoundError: Absent, or owned by another organization
    """
    record = await db.get(model, record_id)
    if record is None or record.organization_id != organization_id:
        raise NotFoundError(model.__name__, str(record_id))
    return record
