"""
Sliding-window rate limiter.

Counts requests per key (client IP) over a trailing window. Two backends:
- RedisSlidingWindowLimiter: atomic Lua over a sorted set, shared by every
  process talking to the same Redis
- InMemorySlidingWindowLimiter: process-local, for single instances and tests
"""
import math
import time
import uuid
import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

import redis
from django.conf import settings
from django.http import JsonResponse

from apps.store import keys

logger = logging.getLogger(__name__)

# Default policy: 10 requests per trailing 60 seconds
DEFAULT_MAX_REQUESTS = 10
DEFAULT_WINDOW_SECONDS = 60


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    retry_after: Optional[int] = None  # seconds to wait if blocked


def is_rate_limiting_disabled() -> bool:
    """Check if rate limiting is disabled (dev mode only)."""
    import os
    return os.getenv('DISABLE_RATE_LIMITING', '').lower() in ('true', '1', 'yes')


class RateLimiter(ABC):
    """Decides whether a request for a key should be rejected."""

    @abstractmethod
    def check(self, key: str) -> RateLimitResult:
        """
        Check the limit for key and record the request if it is allowed.

        Rejected requests are not recorded.
        """
        pass

    def should_limit(self, key: str) -> bool:
        return not self.check(key).allowed


class InMemorySlidingWindowLimiter(RateLimiter):
    """Per-process sliding window kept in memory."""

    def __init__(
        self,
        limit: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def check(self, key: str) -> RateLimitResult:
        now = self._clock()
        window_start = now - self.window_seconds

        with self._lock:
            timestamps = self._requests.setdefault(key, deque())
            while timestamps and timestamps[0] <= window_start:
                timestamps.popleft()

            if len(timestamps) >= self.limit:
                retry_after = math.ceil(timestamps[0] + self.window_seconds - now)
                return RateLimitResult(
                    allowed=False,
                    limit=self.limit,
                    remaining=0,
                    retry_after=max(1, retry_after),
                )

            timestamps.append(now)
            return RateLimitResult(
                allowed=True,
                limit=self.limit,
                remaining=self.limit - len(timestamps),
            )


# Lua script for atomic sliding window rate limiting
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local now_ms = tonumber(ARGV[3])
local member = ARGV[4]

-- Drop requests at or before the window start
redis.call('ZREMRANGEBYSCORE', key, '-inf', now_ms - window_ms)

local current = redis.call('ZCARD', key)

if current >= limit then
    local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
    local retry_after = math.ceil((tonumber(oldest[2]) + window_ms - now_ms) / 1000)
    return {0, limit, 0, retry_after}
end

redis.call('ZADD', key, now_ms, member)
redis.call('PEXPIRE', key, window_ms + 1000)

return {1, limit, limit - current - 1, 0}
"""


class RedisSlidingWindowLimiter(RateLimiter):
    """Redis-backed sliding window shared across process instances."""

    def __init__(
        self,
        limit: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        client: Optional[redis.Redis] = None,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._redis = client
        self._script = None

    @property
    def redis(self) -> redis.Redis:
        if self._redis is None:
            redis_url = getattr(settings, 'REDIS_URL', 'redis://redis:6379/0')
            self._redis = redis.from_url(redis_url, decode_responses=True)
        return self._redis

    def check(self, key: str) -> RateLimitResult:
        if self._script is None:
            self._script = self.redis.register_script(SLIDING_WINDOW_SCRIPT)

        now_ms = int(time.time() * 1000)
        try:
            allowed, limit, remaining, retry_after = self._script(
                keys=[keys.ratelimit_key(key)],
                args=[self.limit, int(self.window_seconds * 1000), now_ms, f"{now_ms}:{uuid.uuid4().hex[:8]}"]
            )
        except redis.RedisError as e:
            logger.error(f"Redis error in rate limiting: {e}")
            # Fail open - allow request if Redis is down
            return RateLimitResult(allowed=True, limit=self.limit, remaining=0)

        return RateLimitResult(
            allowed=bool(allowed),
            limit=int(limit),
            remaining=int(remaining),
            retry_after=int(retry_after) if retry_after > 0 else None
        )


class DisabledRateLimiter(RateLimiter):
    """Allows everything (DISABLE_RATE_LIMITING in development)."""

    def check(self, key: str) -> RateLimitResult:
        return RateLimitResult(allowed=True, limit=999, remaining=999)


# Singleton instance
_limiter: Optional[RateLimiter] = None


def get_limiter() -> RateLimiter:
    """
    Get the configured rate limiter.

    RATE_LIMIT_BACKEND selects "redis" or "memory" and defaults to the
    store backend.
    """
    global _limiter
    if _limiter is None:
        if is_rate_limiting_disabled():
            logger.warning("Rate limiting is disabled")
            _limiter = DisabledRateLimiter()
            return _limiter

        limit = int(getattr(settings, 'RATE_LIMIT_MAX_REQUESTS', DEFAULT_MAX_REQUESTS))
        window = float(getattr(settings, 'RATE_LIMIT_WINDOW_SECONDS', DEFAULT_WINDOW_SECONDS))
        backend = getattr(
            settings, 'RATE_LIMIT_BACKEND', getattr(settings, 'STORE_BACKEND', 'redis')
        ).lower()

        if backend == 'memory':
            _limiter = InMemorySlidingWindowLimiter(limit=limit, window_seconds=window)
        else:
            _limiter = RedisSlidingWindowLimiter(limit=limit, window_seconds=window)
    return _limiter


def reset_limiter():
    """Reset the cached limiter instance. Useful for testing."""
    global _limiter
    _limiter = None


def add_rate_limit_headers(response, result: RateLimitResult):
    """Add standard rate limit headers to a response."""
    response['X-RateLimit-Limit'] = str(result.limit)
    response['X-RateLimit-Remaining'] = str(result.remaining)
    return response


def rate_limit_response(result: RateLimitResult) -> JsonResponse:
    """Generate a 429 rate limit exceeded response."""
    retry_after = result.retry_after or 60
    response = JsonResponse(
        {
            'error': 'Rate limit exceeded. Please try again later.',
            'code': 'RATE_LIMITED',
            'retryAfter': retry_after
        },
        status=429
    )
    response['Retry-After'] = str(retry_after)
    add_rate_limit_headers(response, result)
    return response
