"""
Fixed-window rate limiting keyed by caller (user id) or client IP.

Two backends:
- InMemoryRateLimiter: per-process counters. Limits hold within one process
  only; under horizontal scaling this backend is best effort.
- RedisRateLimiter: window-aligned INCR + EXPIRE in a MULTI pipeline, shared
  by every instance pointing at the same Redis.
"""
from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from callmaker.config import Settings
from callmaker.exceptions import RateLimitedError
from callmaker.http.context import RequestContext
from callmaker.logging import get_logger, log_security_event

logger = get_logger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_seconds: int

    def __post_init__(self) -> None:
        if self.max_requests <= 0 or self.window_seconds <= 0:
            raise ValueError("max_requests and window_seconds must be > 0")


# Default limits by route category
RATE_LIMITS: Dict[str, RateLimitConfig] = {
    "standard": RateLimitConfig(max_requests=60, window_seconds=60),
    "auth": RateLimitConfig(max_requests=10, window_seconds=60),
    "ai": RateLimitConfig(max_requests=20, window_seconds=60),
    "webhook": RateLimitConfig(max_requests=100, window_seconds=60),
    "admin": RateLimitConfig(max_requests=30, window_seconds=60),
    "chatbot": RateLimitConfig(max_requests=30, window_seconds=60),
}


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds
    retry_after_seconds: Optional[int] = None


class RateLimiter(Protocol):
    async def hit(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """Count one request against key and report whether it fits the budget."""
        ...


@dataclass
class _Window:
    count: int
    reset_at: float


class InMemoryRateLimiter:
    """
    Fixed-window counters in process memory.

    Increment-and-compare runs under one lock, so concurrent requests for the
    same key cannot undercount. Expired windows are dropped on access and by a
    periodic sweep.
    """

    def __init__(self, *, clock: Clock = time.time, sweep_interval_seconds: float = 300.0) -> None:
        self._clock = clock
        self._sweep_interval = sweep_interval_seconds
        self._windows: Dict[str, _Window] = {}
        # held only for sync bookkeeping; safe across threads and event loops
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._windows)

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < self._sweep_interval:
            return
        expired = [k for k, w in self._windows.items() if w.reset_at <= now]
        for k in expired:
            del self._windows[k]
        self._last_sweep = now

    async def hit(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        with self._lock:
            now = self._clock()
            self._sweep(now)

            window = self._windows.get(key)
            if window is None or window.reset_at <= now:
                window = _Window(count=0, reset_at=now + config.window_seconds)
                self._windows[key] = window

            if window.count >= config.max_requests:
                return RateLimitResult(
                    allowed=False,
                    limit=config.max_requests,
                    remaining=0,
                    reset_at=window.reset_at,
                    retry_after_seconds=max(1, math.ceil(window.reset_at - now)),
                )

            window.count += 1
            return RateLimitResult(
                allowed=True,
                limit=config.max_requests,
                remaining=config.max_requests - window.count,
                reset_at=window.reset_at,
            )


class RedisRateLimiter:
    """Window-aligned counters in Redis; fails open when Redis is unreachable."""

    def __init__(self, redis: Redis, *, namespace: str = "callmaker:rl", clock: Clock = time.time) -> None:
        self.redis = redis
        self.namespace = namespace
        self._clock = clock

    async def hit(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        now = self._clock()
        window = int(now // config.window_seconds)
        reset_at = float((window + 1) * config.window_seconds)
        redis_key = f"{self.namespace}:{key}:{config.window_seconds}:{window}"

        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(redis_key)
                # +1s so a window never expires before its last request is counted
                pipe.expire(redis_key, config.window_seconds + 1)
                count, _ = await pipe.execute()
        except RedisError as e:
            logger.error("rate_limit_backend_unavailable", key=key, error=type(e).__name__)
            return RateLimitResult(
                allowed=True,
                limit=config.max_requests,
                remaining=config.max_requests,
                reset_at=reset_at,
            )

        count = int(count)
        if count > config.max_requests:
            return RateLimitResult(
                allowed=False,
                limit=config.max_requests,
                remaining=0,
                reset_at=reset_at,
                retry_after_seconds=max(1, math.ceil(reset_at - now)),
            )
        return RateLimitResult(
            allowed=True,
            limit=config.max_requests,
            remaining=config.max_requests - count,
            reset_at=reset_at,
        )


def create_rate_limiter(settings: Settings, redis: Optional[Redis] = None) -> RateLimiter:
    if settings.rate_limit_backend == "redis":
        if redis is None:
            raise ValueError("redis rate limit backend needs a Redis client")
        return RedisRateLimiter(redis, namespace=settings.rate_limit_namespace)
    return InMemoryRateLimiter()


def rate_limit_key(ctx: RequestContext, prefix: str) -> str:
    """Authenticated callers are counted per user, everyone else per IP."""
    if ctx.session is not None:
        return f"{prefix}:user:{ctx.session.user_id}"
    return f"{prefix}:ip:{ctx.client_ip}"


def rate_limit_headers(result: RateLimitResult) -> Dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(math.ceil(result.reset_at)),
    }
    if result.retry_after_seconds is not None:
        headers["Retry-After"] = str(result.retry_after_seconds)
    return headers


async def enforce_rate_limit(
    limiter: RateLimiter,
    ctx: RequestContext,
    config: RateLimitConfig,
    *,
    prefix: str,
) -> RateLimitResult:
    """Rate stage: raises RateLimitedError once the caller is over budget."""
    key = rate_limit_key(ctx, prefix)
    result = await limiter.hit(key, config)
    if not result.allowed:
        log_security_event("rate_limited", user_id=ctx.user_id, key=key, limit=config.max_requests)
        raise RateLimitedError(
            "Too many requests",
            meta={"retryAfter": result.retry_after_seconds},
            headers=rate_limit_headers(result),
        )
    return result
