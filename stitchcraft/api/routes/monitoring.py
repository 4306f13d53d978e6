"""Health checks and Prometheus metrics. Mounted at the root, not under /api/v1."""
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from stitchcraft.api.dependencies import get_health_check
from stitchcraft.api.schemas import HealthCheckResponse
from stitchcraft.monitoring.health import HealthCheck

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["monitoring"])


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check database, Redis and Paystack configuration",
)
async def health(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    return await health_check.check_all()


@router.get("/health/live", response_model=HealthCheckResponse, summary="Liveness check")
async def liveness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    return await health_check.liveness()


@router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness check",
    responses={503: {"model": HealthCheckResponse}},
)
async def readiness(health_check: HealthCheck = Depends(get_health_check)) -> Any:
    result = await health_check.readiness()
    if result["status"] != "healthy":
        logger.warning("readiness_check_failed", checks=result.get("checks"))
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=result)
    return result


@router.get("/metrics", summary="Prometheus metrics", include_in_schema=False)
async def prometheus_metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
