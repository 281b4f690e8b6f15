"""
Rate Limiter Service

Fixed-window rate limiting for audit requests, keyed on client identity.
Implements:
- In-process limiter (default): identity -> RateRecord map behind a lock
- Redis limiter: same window semantics shared across worker processes
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

import redis.asyncio as redis

from site_audit.config import settings

logger = logging.getLogger(__name__)

UNKNOWN_IDENTITY = "unknown"

# Tracked identities before expired in-memory records are swept
SWEEP_THRESHOLD = 10_000


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # Unix timestamp
    retry_after: Optional[int] = None  # Seconds until retry


@dataclass
class RateRecord:
    """Request count for one identity within its current window."""
    count: int
    window_reset_time: float  # milliseconds, limiter clock


def _now_ms() -> float:
    return time.monotonic() * 1000


class RateLimiter(ABC):
    """
    Fixed-window limiter: at most `max_requests` per identity per window.

    The window starts on the first request from an identity and is not
    slid forward by later requests.
    """

    def __init__(self, max_requests: int | None = None, window_ms: int | None = None):
        self.max_requests = max_requests or settings.RATE_LIMIT_MAX_REQUESTS
        self.window_ms = window_ms or settings.RATE_LIMIT_WINDOW_MS

    @abstractmethod
    async def check(self, identity: str) -> RateLimitResult:
        """Record a request for `identity` and report whether it is allowed."""

    async def is_limited(self, identity: str) -> bool:
        result = await self.check(identity)
        return not result.allowed

    async def close(self):
        """Release backing resources."""

    def _denied(self, retry_after_ms: float) -> RateLimitResult:
        retry_after = max(1, int(retry_after_ms / 1000 + 0.999))
        return RateLimitResult(
            allowed=False,
            limit=self.max_requests,
            remaining=0,
            reset_at=int(time.time()) + retry_after,
            retry_after=retry_after,
        )

    def _allowed(self, count: int, reset_in_ms: float) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_at=int(time.time() + reset_in_ms / 1000),
        )


class InMemoryRateLimiter(RateLimiter):
    """
    Process-local limiter.

    Records live for the lifetime of the process; a restart or a second
    worker process starts from empty counters. Once `sweep_threshold`
    identities are tracked, expired records are dropped before a new
    one is added.
    """

    def __init__(
        self,
        max_requests: int | None = None,
        window_ms: int | None = None,
        clock: Callable[[], float] = _now_ms,
        sweep_threshold: int = SWEEP_THRESHOLD,
    ):
        super().__init__(max_requests, window_ms)
        self._clock = clock
        self.sweep_threshold = sweep_threshold
        self._records: dict[str, RateRecord] = {}
        self._lock = asyncio.Lock()

    async def check(self, identity: str) -> RateLimitResult:
        async with self._lock:
            now = self._clock()
            record = self._records.get(identity)

            if record is None or now > record.window_reset_time:
                if record is None and len(self._records) >= self.sweep_threshold:
                    self._sweep(now)
                record = RateRecord(count=1, window_reset_time=now + self.window_ms)
                self._records[identity] = record
                return self._allowed(record.count, self.window_ms)

            if record.count >= self.max_requests:
                return self._denied(record.window_reset_time - now)

            record.count += 1
            return self._allowed(record.count, record.window_reset_time - now)

    def _sweep(self, now: float):
        expired = [key for key, rec in self._records.items() if now > rec.window_reset_time]
        for key in expired:
            del self._records[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired rate limit records")

    def get_record(self, identity: str) -> RateRecord | None:
        return self._records.get(identity)

    async def close(self):
        self._records.clear()


class RedisRateLimiter(RateLimiter):
    """
    Redis-based limiter with the same fixed-window semantics.

    The window is a key created with a PX expiry on the first request;
    the key expiring is the window reset.
    """

    def __init__(
        self,
        redis_url: str = None,
        max_requests: int | None = None,
        window_ms: int | None = None,
    ):
        super().__init__(max_requests, window_ms)
        self.redis_url = redis_url or settings.REDIS_URL
        self._redis: Optional[redis.Redis] = None

    async def get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.close()
            self._redis = None

    def _rate_limit_key(self, identity: str) -> str:
        """Generate Redis key for rate limiting."""
        return f"ratelimit:audit:{identity}"

    async def check(self, identity: str) -> RateLimitResult:
        r = await self.get_redis()
        key = self._rate_limit_key(identity)

        pipe = r.pipeline()

        # Open a window if none is running
        pipe.set(key, 0, nx=True, px=self.window_ms)

        # Count this request
        pipe.incr(key)

        # Time left in the window
        pipe.pttl(key)

        results = await pipe.execute()
        count = int(results[1])
        ttl_ms = results[2] if results[2] and results[2] > 0 else self.window_ms

        if count > self.max_requests:
            # Over limit - denied requests do not count
            await r.decr(key)
            return self._denied(ttl_ms)

        return self._allowed(count, ttl_ms)


def create_rate_limiter() -> RateLimiter:
    """Build the limiter selected by RATE_LIMIT_BACKEND."""
    if settings.RATE_LIMIT_BACKEND == "redis":
        return RedisRateLimiter()
    return InMemoryRateLimiter()


# Global rate limiter instance
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get the global rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = create_rate_limiter()
        logger.info(f"Rate limiter initialized: {type(_rate_limiter).__name__}")
    return _rate_limiter


async def close_rate_limiter():
    """Close the global rate limiter."""
    global _rate_limiter
    if _rate_limiter:
        await _rate_limiter.close()
        _rate_limiter = None
