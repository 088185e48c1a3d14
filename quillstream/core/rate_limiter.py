"""Per-identity sliding window rate limiter backed by Redis.

Each key holds a sorted set of request timestamps. A hit trims entries
older than the window, adds the new one, and counts, all inside one
MULTI/EXEC so concurrent hits see a consistent count. Rejected hits remove
their own entry again so they do not extend the lockout.

Graceful degradation: if Redis is unavailable, requests are allowed
through with an error log (fail-open).

During tests an in-memory window is used instead of Redis so the limiting
logic is still exercised.
"""

import math
import time
import uuid
from collections import deque
from dataclasses import dataclass

import redis.asyncio as aioredis
from fastapi import HTTPException, status

from quillstream.config import settings
from quillstream.logging_config import get_logger

logger = get_logger(__name__)

_KEY_PREFIX = "ratelimit:"


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    remaining: int
    reset_in: int  # seconds until the oldest counted hit leaves the window


class SlidingWindowRateLimiter:
    """Counts hits per key over a rolling window."""

    def __init__(self, redis_client: aioredis.Redis | None = None, *, in_memory: bool = False):
        self._redis = redis_client
        self._in_memory = in_memory or redis_client is None
        self._windows: dict[str, deque[float]] = {}

    async def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        """Record one request for ``key`` and report whether it is allowed.

        Args:
            key: Identity-scoped key, e.g. "ai:chapter:<user id>".
            limit: Maximum requests per window.
            window_seconds: Window length in seconds.
        """
        if self._in_memory:
            return self._hit_memory(key, limit, window_seconds)

        now = time.time()
        redis_key = f"{_KEY_PREFIX}{key}"
        member = f"{now}:{uuid.uuid4().hex}"
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(redis_key, 0, now - window_seconds)
                pipe.zadd(redis_key, {member: now})
                pipe.zcard(redis_key)
                pipe.zrange(redis_key, 0, 0, withscores=True)
                pipe.expire(redis_key, window_seconds)
                _, _, count, oldest, _ = await pipe.execute()

            if count > limit:
                await self._redis.zrem(redis_key, member)
                oldest_ts = oldest[0][1] if oldest else now
                return RateLimitResult(
                    success=False,
                    remaining=0,
                    reset_in=max(1, math.ceil(oldest_ts + window_seconds - now)),
                )
            return RateLimitResult(success=True, remaining=limit - count, reset_in=0)
        except aioredis.RedisError as e:
            logger.error(
                "Redis unavailable for rate limiting; allowing (fail-open)",
                key=key,
                error=str(e),
            )
            return RateLimitResult(success=True, remaining=limit, reset_in=0)

    def _hit_memory(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = time.monotonic()
        window = self._windows.setdefault(key, deque())
        while window and window[0] <= now - window_seconds:
            window.popleft()

        if len(window) >= limit:
            return RateLimitResult(
                success=False,
                remaining=0,
                reset_in=max(1, math.ceil(window[0] + window_seconds - now)),
            )

        window.append(now)
        return RateLimitResult(success=True, remaining=limit - len(window), reset_in=0)

    def reset(self) -> None:
        """Forget in-memory windows."""
        self._windows.clear()

    async def aclose(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()


_rate_limiter: SlidingWindowRateLimiter | None = None


def get_rate_limiter() -> SlidingWindowRateLimiter:
    """Process-wide limiter (FastAPI dependency)."""
    global _rate_limiter
    if _rate_limiter is None:
        if settings.testing or not settings.redis_url:
            _rate_limiter = SlidingWindowRateLimiter(in_memory=True)
        else:
            _rate_limiter = SlidingWindowRateLimiter(
                aioredis.from_url(
                    settings.redis_url,
                    decode_responses=True,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                )
            )
    return _rate_limiter


async def close_rate_limiter() -> None:
    global _rate_limiter
    if _rate_limiter is not None:
        await _rate_limiter.aclose()
        _rate_limiter = None


async def enforce_rate_limit(
    rate_limiter: SlidingWindowRateLimiter, key: str, limit: int, window_seconds: int
) -> None:
    """Count a hit for ``key`` and raise 429 when the window is full."""
    result = await rate_limiter.hit(key, limit, window_seconds)
    if not result.success:
        logger.warning("Rate limit exceeded", key=key, retry_after=result.reset_in)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "message": f"Too many requests, retry in {result.reset_in} seconds",
                "retry_after": result.reset_in,
            },
            headers={"Retry-After": str(result.reset_in)},
        )
