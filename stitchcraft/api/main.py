"""
Main FastAPI application.

StitchCraft Ghana API with:
- CORS configuration
- Error handling (platform errors mapped to JSON envelopes)
- Request ID tracking
- Structured logging
- Prometheus metrics
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stitchcraft import __version__
from stitchcraft.config import get_settings
from stitchcraft.core.exceptions import (
    RateLimitExceededError,
    StitchCraftError,
    ValidationFailedError,
)
from stitchcraft.database.connection import close_db, init_db
from stitchcraft.monitoring.logging import setup_logging
from stitchcraft.monitoring.metrics import metrics

from .dependencies import paystack_client, rate_limiter
from .routes import api_routers, monitoring_router

# Setup logging first
setup_logging()
logger = structlog.get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        env=settings.app_env,
        paystack_simulated=settings.is_paystack_simulated,
    )

    try:
        await init_db()
        logger.info("database_initialized")
    except Exception as e:
        logger.error("database_initialization_failed", error=str(e))
        raise

    yield

    logger.info("application_shutdown")
    await paystack_client.close()
    await rate_limiter.close()
    await close_db()
    logger.info("database_connections_closed")


app = FastAPI(
    title="StitchCraft Ghana API",
    description=(
        "Multi-tenant API for Ghanaian tailoring businesses: clients, measurements, "
        "orders, invoices with Ghana VAT/NHIL/GETFund, payments via mobile money and "
        "Paystack, and a public order-tracking portal."
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url=f"{settings.api_prefix}/openapi.json",
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
    """
    Add request ID to all requests for tracing.

    Also adds timing information and structured logging context.
    """
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    start_time = time.time()

    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )

    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        duration = time.time() - start_time
        metrics.record_request(request.method, response.status_code, duration)
        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_seconds=duration,
        )
        return response

    except Exception as e:
        duration = time.time() - start_time
        metrics.record_request(request.method, 500, duration)
        logger.error("request_failed", error=str(e), duration_seconds=duration)
        raise

    finally:
        structlog.contextvars.clear_contextvars()


@app.exception_handler(StitchCraftError)
async def stitchcraft_error_handler(request: Request, exc: StitchCraftError) -> JSONResponse:
    """Map platform errors to their status and the standard error envelope."""
    log = logger.warning if exc.http_status >= 500 else logger.info
    log(
        "request_rejected",
        error_code=exc.error_code,
        error=exc.message,
        status_code=exc.http_status,
    )

    headers = None
    if isinstance(exc, RateLimitExceededError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}

    return JSONResponse(status_code=exc.http_status, content=exc.to_dict(), headers=headers)


def _field_errors(errors: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    field_errors: Dict[str, List[str]] = {}
    for error in errors:
        location = [
            str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")
        ]
        field = ".".join(location) or "body"
        field_errors.setdefault(field, []).append(error.get("msg", "Invalid value"))
    return field_errors


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Reshape request-schema failures into the ValidationFailed envelope."""
    error = ValidationFailedError(_field_errors(exc.errors()))
    return JSONResponse(status_code=error.http_status, content=error.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.
    """
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": {
                "code": "internal_error",
                "message": "An unexpected error occurred. Please try again later.",
                "type": "InternalServerError",
            },
        },
    )


# Include routers
for router in api_routers:
    app.include_router(router, prefix=settings.api_prefix)
app.include_router(monitoring_router)


@app.get("/", tags=["root"])
async def root() -> Dict[str, Any]:
    """Root endpoint with API information."""
    return {
        "service": "stitchcraft",
        "version": __version__,
        "status": "operational",
        "environment": settings.app_env,
        "docs": "/api/docs",
        "health": "/health",
        "metrics": "/metrics",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "stitchcraft.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=settings.api_workers if not settings.debug else 1,
        log_level=settings.log_level.lower(),
    )
