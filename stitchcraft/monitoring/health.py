"""
Dependency health for the /health endpoints.

The database is required: without it the service reports unhealthy and
readiness fails. Redis only backs login rate limiting, which fails open, so
a Redis outage is reported as degraded. Paystack is reported from
configuration alone; no request is sent to it.
"""
import time
from typing import Any, Awaitable, Callable, Dict

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from stitchcraft.config import get_settings
from stitchcraft.database.connection import get_session_factory

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """A dependency did not answer."""


class HealthCheck:
    def __init__(self) -> None:
        self.settings = get_settings()

    async def check_database(self) -> Dict[str, Any]:
        started = time.perf_counter()
        try:
            async with get_session_factory()() as db:
                await db.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database unreachable: {e}") from e
        return {
            "status": "healthy",
            "service": "database",
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        }

    async def check_redis(self) -> Dict[str, Any]:
        started = time.perf_counter()
        client = aioredis.from_url(self.settings.redis_url, socket_connect_timeout=1)
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            logger.warning("redis_health_check_failed", error=str(e))
            raise HealthCheckError(f"Redis unreachable: {e}") from e
        finally:
            await client.aclose()
        return {
            "status": "healthy",
            "service": "redis",
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        }

    def check_paystack(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "service": "paystack",
            "configured": not self.settings.is_paystack_simulated,
            "test_mode": self.settings.paystack_secret_key.startswith("sk_test_"),
        }

    @staticmethod
    async def _run_check(
        service: str, check: Callable[[], Awaitable[Dict[str, Any]]], failure_status: str
    ) -> Dict[str, Any]:
        try:
            return await check()
        except HealthCheckError as e:
            return {"status": failure_status, "service": service, "error": str(e)}

    async def check_all(self) -> Dict[str, Any]:
        """
        Run every check.

        Returns:
            Overall status (healthy/unhealthy) plus the per-service results
        """
        checks = {
            "database": await self._run_check("database", self.check_database, "unhealthy"),
            "redis": await self._run_check("redis", self.check_redis, "degraded"),
            "paystack": self.check_paystack(),
        }
        healthy = checks["database"]["status"] == "healthy"
        return {"status": "healthy" if healthy else "unhealthy", "checks": checks}

    async def liveness(self) -> Dict[str, Any]:
        """The process is up; dependencies are not consulted."""
        return {"status": "alive", "message": "Application is running"}

    async def readiness(self) -> Dict[str, Any]:
        return await self.check_all()
