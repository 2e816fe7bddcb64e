"""Rate limit backends.

Both backends implement the same fixed-window counter: the first request
from a key opens a window with count 1, later requests inside the window
increment the count, and a request is rejected once the incremented count
exceeds ``max_hits``. A fixed window admits up to twice the nominal rate
across a window boundary; that burst is accepted behaviour.
"""

import asyncio
import math
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Optional

import redis
import redis.asyncio as aioredis

from rpcproxy.app.core.config import settings
from rpcproxy.app.core.logging import get_logger
from rpcproxy.app.services.rate_limit.models import RateLimitEntry, RateLimitResult
from rpcproxy.app.services.rate_limit.redis_lua import FIXED_WINDOW_HIT_SCRIPT

logger = get_logger(__name__)


class RateLimitBackend(ABC):
    """Abstract base class for rate limit backends."""

    def __init__(self, max_hits: int, window_seconds: float):
        self.max_hits = max_hits
        self.window_seconds = window_seconds

    @abstractmethod
    async def is_allowed(self, key: str) -> RateLimitResult:
        """Record one hit for ``key`` and report whether it is admitted."""

    @abstractmethod
    async def cleanup(self) -> int:
        """Remove expired entries and return how many were removed."""

    async def close(self) -> None:
        """Release backend resources."""

    def _result(self, count: int, reset_at: float, now: float) -> RateLimitResult:
        if count > self.max_hits:
            return RateLimitResult(
                allowed=False,
                limit=self.max_hits,
                remaining=0,
                reset_time=int(reset_at),
                retry_after=max(1, math.ceil(reset_at - now)),
            )
        return RateLimitResult(
            allowed=True,
            limit=self.max_hits,
            remaining=self.max_hits - count,
            reset_time=int(reset_at),
        )


class InMemoryRateLimiter(RateLimitBackend):
    """Process-local fixed-window rate limiter.

    Suitable for single-instance deployments. In a horizontally scaled
    deployment each instance counts independently, so the effective
    ceiling per client is multiplied by the instance count.

    Memory bounds:
    - Uses OrderedDict for LRU order
    - Once ``max_entries`` is exceeded, drops expired windows and then, if
      still over the bound, evicts the least recently used 20%
    - ``cleanup`` drops every entry whose window has expired
    """

    DEFAULT_MAX_ENTRIES = 10000

    def __init__(
        self,
        max_hits: int = 60,
        window_seconds: float = 10.0,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(max_hits, window_seconds)
        self._max_entries = max_entries
        self._clock = clock
        self._storage: OrderedDict[str, RateLimitEntry] = OrderedDict()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._storage)

    def _remove_expired(self, now: float) -> int:
        expired = [
            key for key, entry in self._storage.items()
            if now - entry.window_start > self.window_seconds
        ]
        for key in expired:
            del self._storage[key]
        return len(expired)

    def _enforce_lru_limit(self, now: float) -> None:
        if len(self._storage) <= self._max_entries:
            return
        # Expired windows go first; live counters are evicted only if still over
        self._remove_expired(now)
        if len(self._storage) > self._max_entries:
            remove_count = max(1, int(self._max_entries * 0.2))
            for _ in range(min(remove_count, len(self._storage) - 1)):
                self._storage.popitem(last=False)

    async def is_allowed(self, key: str) -> RateLimitResult:
        async with self._lock:
            now = self._clock()
            entry = self._storage.get(key)

            if entry is None or now - entry.window_start > self.window_seconds:
                entry = RateLimitEntry(count=1, window_start=now)
                self._storage[key] = entry
                self._storage.move_to_end(key)
                self._enforce_lru_limit(now)
            else:
                self._storage.move_to_end(key)
                entry.count += 1

            return self._result(entry.count, entry.window_start + self.window_seconds, now)

    async def cleanup(self) -> int:
        async with self._lock:
            return self._remove_expired(self._clock())


class RedisRateLimiter(RateLimitBackend):
    """Redis-based distributed rate limiter.

    Shares one fixed-window counter per client across all instances via an
    atomic Lua script (INCR + PEXPIRE).
    """

    def __init__(
        self,
        redis_client: Optional[Any] = None,
        redis_url: Optional[str] = None,
        max_hits: int = 60,
        window_seconds: float = 10.0,
        fail_closed: Optional[bool] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(max_hits, window_seconds)
        self._redis_url = redis_url or settings.redis_url
        self._redis = redis_client
        self._fail_closed = (
            settings.rate_limit_fail_closed if fail_closed is None else fail_closed
        )
        self._clock = clock

    def _get_redis(self) -> Any:
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url)
        return self._redis

    async def is_allowed(self, key: str) -> RateLimitResult:
        window_ms = max(1, int(self.window_seconds * 1000))
        try:
            result = await self._get_redis().eval(
                FIXED_WINDOW_HIT_SCRIPT,
                1,  # Number of keys
                key,  # KEYS[1]
                window_ms,  # ARGV[1]
            )
        except redis.ConnectionError as e:
            logger.error(f"Redis connection failed: {type(e).__name__}")
            return self._handle_redis_failure("connection_error")
        except redis.TimeoutError as e:
            logger.warning(f"Redis timeout: {type(e).__name__}")
            return self._handle_redis_failure("timeout")
        except redis.RedisError as e:
            logger.error(f"Redis error: {e}")
            return self._handle_redis_failure("redis_error")
        except Exception:
            logger.exception("Unexpected rate limit error")
            return self._handle_redis_failure("unexpected")

        now = self._clock()
        count = int(result[0])
        ttl_ms = int(result[1])
        return self._result(count, now + ttl_ms / 1000.0, now)

    def _handle_redis_failure(self, error_type: str) -> RateLimitResult:
        """Apply the configured fail-open/fail-closed policy."""
        now = self._clock()
        if self._fail_closed:
            logger.warning(
                f"Rate limiting fail-closed triggered due to {error_type}. "
                "Request denied."
            )
            return RateLimitResult(
                allowed=False,
                limit=self.max_hits,
                remaining=0,
                reset_time=int(now + self.window_seconds),
                retry_after=max(1, math.ceil(self.window_seconds)),
            )

        logger.warning(
            f"Rate limiting fail-open triggered due to {error_type}. "
            "Request allowed without rate limit check."
        )
        return RateLimitResult(
            allowed=True,
            limit=self.max_hits,
            remaining=self.max_hits,
            reset_time=int(now + self.window_seconds),
        )

    async def cleanup(self) -> int:
        """No-op for Redis (keys expire automatically)."""
        return 0

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
