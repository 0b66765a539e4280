"""Fixed-window request limiter for the OAuth endpoints.

Requests are counted per client key in windows of ``window_seconds``. The
counter is either process-local or shared through Redis, which a deployment
with more than one instance needs for the limit to hold globally.
"""

import asyncio
import logging
import math
import time
from collections.abc import Callable
from typing import Protocol

import redis.asyncio as redis
from starlette.requests import Request

from ledgerauth.core.settings import RateLimitSettings

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"
KEY_PREFIX = "oauth:ratelimit"


class WindowCounter(Protocol):
    async def incr(self, key: str, ttl_seconds: int) -> int:
        """Increment the counter for ``key`` and return the new value."""
        ...

    async def close(self) -> None: ...


class MemoryWindowCounter:
    """Process-local counter.

    Expired windows are swept only once the earliest expiry has passed, so a
    request costs a scan of all keys at most once per window.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._counts: dict[str, tuple[int, float]] = {}
        self._next_expiry = math.inf
        self._lock = asyncio.Lock()

    async def incr(self, key: str, ttl_seconds: int) -> int:
        async with self._lock:
            now = self._clock()
            if now >= self._next_expiry:
                self._prune(now)
            count, expires = self._counts.get(key, (0, now + ttl_seconds))
            count += 1
            self._counts[key] = (count, expires)
            self._next_expiry = min(self._next_expiry, expires)
            return count

    def _prune(self, now: float) -> None:
        stale = [k for k, (_, expires) in self._counts.items() if expires <= now]
        for k in stale:
            del self._counts[k]
        self._next_expiry = min(
            (expires for _, expires in self._counts.values()), default=math.inf
        )

    async def close(self) -> None:
        self._counts.clear()
        self._next_expiry = math.inf


class RedisWindowCounter:
    """Counter shared across instances through Redis INCR + EXPIRE NX."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisWindowCounter":
        return cls(redis.from_url(url))

    async def incr(self, key: str, ttl_seconds: int) -> int:
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, ttl_seconds, nx=True)
            count, _ = await pipe.execute()
        return int(count)

    async def close(self) -> None:
        await self._client.aclose()


class RateLimitDecision:
    """Outcome of one limiter check, with the headers to send."""

    __slots__ = ("allowed", "limit", "remaining", "reset_after")

    def __init__(self, allowed: bool, limit: int, remaining: int, reset_after: float):
        self.allowed = allowed
        self.limit = limit
        self.remaining = remaining
        self.reset_after = reset_after

    def headers(self) -> dict[str, str]:
        h = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_after)),
        }
        if not self.allowed:
            h["Retry-After"] = str(math.ceil(self.reset_after))
        return h


class FixedWindowRateLimiter:
    """Allows ``max_requests`` per key in each ``window_seconds`` window."""

    def __init__(
        self,
        counter: WindowCounter,
        *,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.counter = counter
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

    async def check(self, client: str) -> RateLimitDecision:
        now = self._clock()
        window = int(now // self.window_seconds)
        reset_after = (window + 1) * self.window_seconds - now
        key = f"{KEY_PREFIX}:{client}:{window}"
        count = await self.counter.incr(key, self.window_seconds)
        allowed = count <= self.max_requests
        if not allowed:
            logger.info("Rate limit exceeded for %s", client)
        return RateLimitDecision(
            allowed, self.max_requests, max(0, self.max_requests - count), reset_after
        )

    async def close(self) -> None:
        await self.counter.close()


def client_key(request: Request, trust_proxy_headers: bool = True) -> str:
    """Identify the caller: forwarded-for, then real-ip, then the peer."""
    if trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
        real_ip = request.headers.get("x-real-ip", "").strip()
        if real_ip:
            return real_ip
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def build_rate_limiter(settings: RateLimitSettings) -> FixedWindowRateLimiter:
    """Pick the Redis counter when a URL is configured, else the local one."""
    counter: WindowCounter
    if settings.redis_url:
        counter = RedisWindowCounter.from_url(settings.redis_url)
    else:
        counter = MemoryWindowCounter()
    return FixedWindowRateLimiter(
        counter,
        max_requests=settings.max_requests,
        window_seconds=settings.window_seconds,
    )
