"""Per-client rate limiting for the RPC gate.

The gate calls ``RateLimiter.is_allowed`` with the key returned by
``get_client_key``. ``RateLimitSweeper`` runs in the application lifespan
and periodically drops expired in-memory entries so the counter map does
not grow with every distinct client ever seen.
"""

import asyncio
import hashlib
from typing import Optional

from fastapi import Request

from rpcproxy.app.core.config import Settings, settings
from rpcproxy.app.core.logging import get_logger
from rpcproxy.app.services.rate_limit.backends import (
    InMemoryRateLimiter,
    RateLimitBackend,
    RedisRateLimiter,
)
from rpcproxy.app.services.rate_limit.models import RateLimitEntry, RateLimitResult

logger = get_logger(__name__)

__all__ = [
    "RateLimitResult",
    "RateLimitEntry",
    "RateLimitBackend",
    "InMemoryRateLimiter",
    "RedisRateLimiter",
    "RateLimiter",
    "RateLimitSweeper",
    "get_client_key",
    "resolve_client_ip",
]

UNKNOWN_CLIENT = "unknown"


def resolve_client_ip(request: Request) -> str:
    """First X-Forwarded-For entry, else the socket peer, else ``unknown``."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()
        if client_ip:
            return client_ip
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def get_client_key(request: Request) -> str:
    """Get rate limit key for the request.

    The client address is hashed so raw IPs are never held in memory or
    written to Redis.
    """
    client_ip = resolve_client_ip(request)
    # 32 hex chars (128 bits) for collision resistance
    ip_hash = hashlib.sha256(client_ip.encode()).hexdigest()[:32]
    return f"ratelimit:ip:{ip_hash}"


class RateLimiter:
    """Main rate limiter that selects appropriate backend.

    Uses the Redis backend if Redis is enabled in settings, otherwise the
    in-memory backend.
    """

    def __init__(
        self,
        max_hits: int = 60,
        window_seconds: float = 10.0,
        max_entries: int = InMemoryRateLimiter.DEFAULT_MAX_ENTRIES,
        use_redis: Optional[bool] = None,
        redis_url: Optional[str] = None,
        fail_closed: Optional[bool] = None,
    ):
        should_use_redis = use_redis if use_redis is not None else settings.redis_enabled

        if should_use_redis:
            self._backend: RateLimitBackend = RedisRateLimiter(
                redis_url=redis_url,
                max_hits=max_hits,
                window_seconds=window_seconds,
                fail_closed=fail_closed,
            )
            logger.info("Using Redis rate limiter backend")
        else:
            self._backend = InMemoryRateLimiter(
                max_hits=max_hits,
                window_seconds=window_seconds,
                max_entries=max_entries,
            )
            logger.debug("Using in-memory rate limiter backend")

    @classmethod
    def from_settings(cls, app_settings: Optional[Settings] = None) -> "RateLimiter":
        app_settings = app_settings or settings
        return cls(
            max_hits=app_settings.rate_limit_max_hits,
            window_seconds=app_settings.rate_limit_window_seconds,
            max_entries=app_settings.rate_limit_max_entries,
            use_redis=app_settings.redis_enabled,
            redis_url=app_settings.redis_url,
            fail_closed=app_settings.rate_limit_fail_closed,
        )

    @property
    def backend(self) -> RateLimitBackend:
        return self._backend

    async def is_allowed(self, key: str) -> RateLimitResult:
        return await self._backend.is_allowed(key)

    async def cleanup(self) -> int:
        return await self._backend.cleanup()

    async def close(self) -> None:
        await self._backend.close()


class RateLimitSweeper:
    """Background task that periodically removes expired counters.

    Usage:
        sweeper = RateLimitSweeper(limiter, interval=60.0)
        await sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(self, limiter: RateLimiter, interval: float = 60.0):
        self._limiter = limiter
        self._interval = interval
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        if self._task is not None:
            logger.debug("Rate limit sweeper already running")
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Started rate limit sweeper (interval: {self._interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return

        self._stop_event.set()

        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Rate limit sweeper did not stop gracefully, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
            logger.info("Stopped rate limit sweeper")

    async def sweep(self) -> int:
        removed = await self._limiter.cleanup()
        if removed:
            logger.debug(f"Rate limit sweeper removed {removed} expired entries")
        return removed

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                # Normal case: interval elapsed
                pass
            if self._stop_event.is_set():
                break
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Error during rate limit sweep: {e}")
