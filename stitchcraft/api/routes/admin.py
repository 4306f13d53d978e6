"""
Platform administration.

Admins review tailor sign-ups: new tailors wait in PENDING until approved
here, and accounts can later be suspended or rejected.
"""
import uuid
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.api.dependencies import client_ip
from stitchcraft.api.schemas import AdminUserResponse, UserResponse, UserStats, UserStatusUpdate
from stitchcraft.core.audit import log_audit
from stitchcraft.core.auth import update_user_status
from stitchcraft.core.exceptions import NotFoundError
from stitchcraft.core.guards import require_admin
from stitchcraft.database.connection import get_db
from stitchcraft.database.models import Client, Order, Payment, User, UserRole, UserStatus

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


async def _get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", str(user_id))
    return user


@router.get("/users", response_model=List[AdminUserResponse], summary="List accounts")
async def list_users(
    status: Optional[UserStatus] = Query(default=None),
    role: Optional[UserRole] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> List[User]:
    """Newest first; filter by ``status=PENDING`` for the approval queue."""
    query = select(User)
    if status is not None:
        query = query.where(User.status == status.value)
    if role is not None:
        query = query.where(User.role == role.value)
    result = await db.execute(
        query.order_by(User.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all())


@router.get("/users/{user_id}", response_model=AdminUserResponse, summary="Account details")
async def get_user(
    user_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> AdminUserResponse:
    user = await _get_user(db, user_id)

    stats = UserStats(
        clients=await db.scalar(select(func.count(Client.id)).where(Client.tailor_id == user.id)),
        orders=await db.scalar(select(func.count(Order.id)).where(Order.tailor_id == user.id)),
        payments=await db.scalar(
            select(func.count(Payment.id)).where(Payment.tailor_id == user.id)
        ),
    )
    return AdminUserResponse(**UserResponse.model_validate(user).model_dump(), stats=stats)


@router.patch(
    "/users/{user_id}",
    response_model=AdminUserResponse,
    summary="Approve, suspend or reject an account",
)
async def update_user(
    user_id: uuid.UUID,
    body: UserStatusUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Change an account's status.

    APPROVED tailors become ACTIVE on their next login. Suspending or
    rejecting signs the account out everywhere.
    """
    user = await _get_user(db, user_id)
    previous = user.status

    await update_user_status(db, user, body.status.value)

    await log_audit(
        db,
        admin.id,
        "UPDATE_STATUS",
        "user",
        user.id,
        details={"from": previous, "to": user.status, "reason": body.reason},
        ip_address=client_ip(request),
    )
    logger.info(
        "admin_user_status_updated",
        admin_id=str(admin.id),
        user_id=str(user.id),
        status=user.status,
    )
    return user
