"""
Fixed-window rate limiting backed by Redis.

Fails open: when Redis is unreachable the request is allowed and a warning
is logged.
"""
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from stitchcraft.config import get_settings
from stitchcraft.core.exceptions import RateLimitExceededError

logger = structlog.get_logger(__name__)


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after_seconds: int


class RateLimiter:
    """
    Counter per (scope, identifier) that resets every window.

    The first hit in a window sets its expiry.
    """

    def __init__(self, redis_client: Optional[aioredis.Redis] = None):
        """
        Initialize rate limiter.

        Args:
            redis_client: Optional Redis client; created lazily from settings
        """
        self.settings = get_settings()
        self.redis_client = redis_client

    def _ensure_redis(self) -> aioredis.Redis:
        if self.redis_client is None:
            self.redis_client = aioredis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=1,
                socket_timeout=1,
            )
        return self.redis_client

    @staticmethod
    def _key(scope: str, identifier: str) -> str:
        return f"ratelimit:{scope}:{identifier}"

    async def hit(
        self, scope: str, identifier: str, limit: int, window_seconds: int
    ) -> RateLimitResult:
        """Count one attempt and report whether it is within the limit."""
        key = self._key(scope, identifier)
        try:
            client = self._ensure_redis()
            count = await client.incr(key)
            if count == 1:
                await client.expire(key, window_seconds)
            ttl = await client.ttl(key)
        except (RedisError, OSError) as e:
            logger.warning("rate_limiter_unavailable", scope=scope, error=str(e))
            return RateLimitResult(allowed=True, remaining=limit, retry_after_seconds=0)

        count = int(count)
        retry_after = int(ttl) if ttl and int(ttl) > 0 else window_seconds
        return RateLimitResult(
            allowed=count <= limit,
            remaining=max(limit - count, 0),
            retry_after_seconds=retry_after if count > limit else 0,
        )

    async def reset(self, scope: str, identifier: str) -> None:
        try:
            await self._ensure_redis().delete(self._key(scope, identifier))
        except (RedisError, OSError) as e:
            logger.warning("rate_limiter_unavailable", scope=scope, error=str(e))

    async def check_login(self, identifier: str) -> None:
        """
        Enforce the login limit for a client IP.

        Raises:
            RateLimitExceededError: Too many attempts in the current window
        """
        limit = self.settings.login_rate_limit_attempts
        window = self.settings.login_rate_limit_window_seconds
        result = await self.hit("login", identifier, limit, window)
        if not result.allowed:
            logger.warning("login_rate_limited", identifier=identifier)
            raise RateLimitExceededError(
                limit=limit, window_seconds=window, retry_after_seconds=result.retry_after_seconds
            )

    async def close(self) -> None:
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None
