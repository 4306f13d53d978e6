"""Authentication routes: register, login, logout, current user."""
import structlog
from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.api.dependencies import client_ip, get_rate_limiter
from stitchcraft.api.schemas import AuthResponse, LoginRequest, RegisterRequest, UserResponse
from stitchcraft.config import get_settings
from stitchcraft.core.audit import log_audit
from stitchcraft.core.auth import (
    authenticate_user,
    create_session,
    destroy_session,
    register_user,
)
from stitchcraft.core.exceptions import RateLimitExceededError, UnauthorizedError
from stitchcraft.core.guards import require_user, session_token_from_request
from stitchcraft.core.rate_limit import RateLimiter
from stitchcraft.database.connection import get_db
from stitchcraft.database.models import User, UserStatus
from stitchcraft.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_ttl_days * 24 * 3600,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register an account",
)
async def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """
    Create an account.

    Tailors start PENDING and cannot log in until approved, so no session is
    issued for them; everyone else is logged in straight away.
    """
    user = await register_user(
        db,
        email=body.email,
        password=body.password,
        name=body.name,
        role=body.role.value,
        phone=body.phone,
        business_name=body.business_name,
        region=body.region,
        city=body.city,
        tracking_token=body.tracking_token,
    )
    await log_audit(db, user.id, "REGISTER", "user", user.id, ip_address=client_ip(request))

    if user.status != UserStatus.ACTIVE.value:
        return AuthResponse(user=UserResponse.model_validate(user))

    session = await create_session(
        db, user.id, user_agent=request.headers.get("user-agent"), ip_address=client_ip(request)
    )
    _set_session_cookie(response, session.token)
    return AuthResponse(
        user=UserResponse.model_validate(user), token=session.token, expires_at=session.expires_at
    )


@router.post("/login", response_model=AuthResponse, summary="Log in")
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> AuthResponse:
    """Check credentials and start a session. Rate limited per client IP."""
    ip_address = client_ip(request) or "unknown"
    try:
        await rate_limiter.check_login(ip_address)
    except RateLimitExceededError:
        metrics.record_login_attempt("rate_limited")
        raise

    try:
        user = await authenticate_user(db, body.email, body.password)
    except UnauthorizedError:
        metrics.record_login_attempt("failed")
        logger.info("login_failed", ip_address=ip_address)
        raise

    session = await create_session(
        db, user.id, user_agent=request.headers.get("user-agent"), ip_address=ip_address
    )
    await log_audit(db, user.id, "LOGIN", "session", session.id, ip_address=ip_address)
    await rate_limiter.reset("login", ip_address)

    metrics.record_login_attempt("success")
    logger.info("login_succeeded", user_id=str(user.id), role=user.role)

    _set_session_cookie(response, session.token)
    return AuthResponse(
        user=UserResponse.model_validate(user), token=session.token, expires_at=session.expires_at
    )


@router.post("/logout", summary="Log out")
async def logout(
    request: Request, response: Response, db: AsyncSession = Depends(get_db)
) -> dict:
    await destroy_session(db, session_token_from_request(request))
    response.delete_cookie(get_settings().session_cookie_name, path="/")
    return {"success": True}


@router.get("/me", response_model=UserResponse, summary="Current user")
async def me(user: User = Depends(require_user)) -> User:
    return user
