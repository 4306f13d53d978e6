"""
Session-based authentication.

Sessions are opaque random tokens stored server-side; the same token works
as the `sc_session` cookie or an `Authorization: Bearer` header.
"""
import re
import secrets
import uuid
from datetime import timedelta
from typing import Optional

import bcrypt
import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.config import get_settings
from stitchcraft.core.exceptions import ConflictError, UnauthorizedError, ValidationFailedError
from stitchcraft.database.models import (
    ClientTrackingToken,
    Organization,
    OrganizationMember,
    Session,
    User,
    UserRole,
    UserStatus,
    WorkerRole,
    as_aware,
    utcnow,
)

logger = structlog.get_logger(__name__)

TAILOR_ROLES = (UserRole.TAILOR.value, UserRole.SEAMSTRESS.value)


# ============================================================================
# PASSWORDS
# ============================================================================

def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(get_settings().bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# ============================================================================
# SESSIONS
# ============================================================================

async def create_session(
    db: AsyncSession,
    user_id,
    user_agent: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> Session:
    """Persist a new session for the user and return it."""
    settings = get_settings()
    session = Session(
        user_id=user_id,
        token=secrets.token_urlsafe(32),
        expires_at=utcnow() + timedelta(days=settings.session_ttl_days),
        user_agent=user_agent[:512] if user_agent else None,
        ip_address=ip_address,
    )
    db.add(session)
    await db.flush()
    logger.info("session_created", user_id=str(user_id))
    return session


async def resolve_session(db: AsyncSession, token: Optional[str]) -> Optional[User]:
    """
    Resolve a session token to its user.

    Expired sessions are deleted and treated as absent.
    """
    if not token:
        return None

    result = await db.execute(select(Session).where(Session.token == token))
    session = result.scalar_one_or_none()
    if session is None:
        return None

    if as_aware(session.expires_at) < utcnow():
        await db.execute(delete(Session).where(Session.id == session.id))
        await db.flush()
        logger.info("session_expired", user_id=str(session.user_id))
        return None

    return session.user


async def destroy_session(db: AsyncSession, token: Optional[str]) -> None:
    if token:
        await db.execute(delete(Session).where(Session.token == token))
        await db.flush()


async def destroy_all_user_sessions(db: AsyncSession, user_id) -> None:
    await db.execute(delete(Session).where(Session.user_id == user_id))
    await db.flush()


# ============================================================================
# AUTHENTICATION
# ============================================================================

_STATUS_ERRORS = {
    UserStatus.PENDING.value: "Your account is pending approval",
    UserStatus.SUSPENDED.value: "Your account has been suspended",
    UserStatus.REJECTED.value: "Your account application was rejected",
}


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
    """
    Check credentials and account status.

    APPROVED accounts are promoted to ACTIVE on their first login.

    Raises:
        UnauthorizedError: Bad credentials or an account that may not log in
    """
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(password, user.password_hash):
        raise UnauthorizedError("Invalid email or password")

    status_error = _STATUS_ERRORS.get(user.status)
    if status_error:
        logger.info("login_blocked_by_status", user_id=str(user.id), status=user.status)
        raise UnauthorizedError(status_error)

    if user.status == UserStatus.APPROVED.value:
        user.status = UserStatus.ACTIVE.value
        await db.flush()

    return user


async def update_user_status(db: AsyncSession, user: User, status: str) -> User:
    """
    Approve, activate, suspend or reject an account.

    Admin accounts cannot be changed here. Suspending or rejecting also ends
    every session of the account.
    """
    if user.role == UserRole.ADMIN.value:
        raise ValidationFailedError.for_field("status", "Cannot modify admin users")

    previous = user.status
    user.status = status
    await db.flush()

    if status in (UserStatus.SUSPENDED.value, UserStatus.REJECTED.value):
        await destroy_all_user_sessions(db, user.id)

    logger.info("user_status_changed", user_id=str(user.id), previous=previous, status=status)
    return user


# ============================================================================
# CLIENT ACCOUNTS
# ============================================================================

async def linkable_client_id(
    db: AsyncSession, tracking_token: str, account_id: Optional[uuid.UUID] = None
) -> uuid.UUID:
    """
    Client record a tracking token may link an account to.

    Raises:
        ValidationFailedError: Unknown, inactive or expired token
        ConflictError: The record is already linked to an account
    """
    result = await db.execute(
        select(ClientTrackingToken).where(ClientTrackingToken.token == tracking_token)
    )
    token_row = result.scalar_one_or_none()
    if token_row is None or not token_row.is_active or (
        token_row.expires_at is not None and as_aware(token_row.expires_at) < utcnow()
    ):
        raise ValidationFailedError.for_field("trackingToken", "Invalid or expired tracking token")
    already_linked = await db.execute(
        select(User.id).where(
            User.linked_client_id == token_row.client_id, User.id != account_id
        )
    )
    if already_linked.first() is not None:
        raise ConflictError("This client record is already linked to an account")
    return token_row.client_id


async def link_client_account(db: AsyncSession, user: User, tracking_token: str) -> User:
    """Attach a CLIENT account to the client record behind a tracking token."""
    if user.role != UserRole.CLIENT.value:
        raise ValidationFailedError.for_field("trackingToken", "Only client accounts can link")
    client_id = await linkable_client_id(db, tracking_token, account_id=user.id)
    if user.linked_client_id == client_id:
        return user
    user.linked_client_id = client_id
    await db.flush()
    logger.info("client_account_linked", user_id=str(user.id), client_id=str(client_id))
    return user


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "workshop"


async def _unique_slug(db: AsyncSession, name: str) -> str:
    base_slug = slugify(name)
    slug = base_slug
    counter = 1
    while (
        await db.execute(select(Organization.id).where(Organization.slug == slug))
    ).first() is not None:
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


async def register_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    name: str,
    role: str,
    phone: Optional[str] = None,
    business_name: Optional[str] = None,
    region: Optional[str] = None,
    city: Optional[str] = None,
    tracking_token: Optional[str] = None,
) -> User:
    """
    Create an account.

    Tailors start PENDING admin approval and get their own organization with
    a MANAGER membership. Clients may present a tracking token to link the
    new account to the tailor's client record.
    """
    email = email.strip().lower()
    if role == UserRole.ADMIN.value:
        raise ValidationFailedError.for_field("role", "Cannot self-register as admin")

    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.first() is not None:
        raise ConflictError("Email already registered")

    linked_client_id = None
    if role == UserRole.CLIENT.value and tracking_token:
        linked_client_id = await linkable_client_id(db, tracking_token)

    is_tailor = role in TAILOR_ROLES
    user = User(
        email=email,
        password_hash=hash_password(password),
        name=name,
        phone=phone,
        business_name=business_name,
        role=role,
        status=UserStatus.PENDING.value if is_tailor else UserStatus.ACTIVE.value,
        linked_client_id=linked_client_id,
        region=region,
        city=city,
    )
    db.add(user)
    await db.flush()

    if is_tailor:
        org_name = business_name or f"{name}'s Workshop"
        organization = Organization(
            name=org_name,
            slug=await _unique_slug(db, org_name),
            owner_id=user.id,
            region=region,
            city=city,
        )
        db.add(organization)
        await db.flush()
        db.add(
            OrganizationMember(
                organization_id=organization.id,
                user_id=user.id,
                role=WorkerRole.MANAGER.value,
                permissions=[],
            )
        )
        await db.flush()

    logger.info("user_registered", user_id=str(user.id), role=role)
    return user
