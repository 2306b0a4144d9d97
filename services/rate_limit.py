"""
Fixed-window request throttling.

The first call for a key opens a window of window_ms milliseconds; calls
inside the window are counted and rejected once the count passes the limit.
The window is not extended by rejected calls.

InMemoryRateLimiter keeps its counters in this process only and is meant for
single-instance deployments. CacheRateLimiter stores them in the Django cache
so several processes can share one budget when the cache backend is shared.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

from django.conf import settings
from django.core.cache import cache as default_cache

logger = logging.getLogger(__name__)


def now_ms() -> float:
    return time.time() * 1000


@dataclass(frozen=True)
class RateLimitDecision:
    success: bool
    remaining: int
    reset_time: float  # epoch milliseconds


class RateLimiter(Protocol):
    def check(self, key: str, limit: int, window_ms: int) -> RateLimitDecision:
        ...


@dataclass
class _Window:
    count: int
    reset_time: float


class InMemoryRateLimiter:
    """Process-local counters guarded by a lock"""

    def __init__(self, clock: Callable[[], float] = now_ms):
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def check(self, key: str, limit: int, window_ms: int) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now > window.reset_time:
                self._drop_expired(now)
                window = _Window(count=1, reset_time=now + window_ms)
                self._windows[key] = window
                return RateLimitDecision(True, limit - 1, window.reset_time)

            window.count += 1
            if window.count > limit:
                return RateLimitDecision(False, 0, window.reset_time)
            return RateLimitDecision(True, limit - window.count, window.reset_time)

    def _drop_expired(self, now: float) -> None:
        # caller holds the lock
        expired = [key for key, window in self._windows.items() if now > window.reset_time]
        for key in expired:
            del self._windows[key]

    @property
    def active_windows(self) -> int:
        return len(self._windows)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


class CacheRateLimiter:
    """
    Counters kept in a Django cache.

    Window expiry is decided against the stored reset time using the
    limiter's clock; cache entries also carry a TTL so idle keys go away.
    """

    def __init__(self, cache=None, prefix: str = "ratelimit", clock: Callable[[], float] = now_ms):
        self.cache = cache or default_cache
        self.prefix = prefix
        self._clock = clock

    def check(self, key: str, limit: int, window_ms: int) -> RateLimitDecision:
        count_key = f"{self.prefix}:{key}:count"
        reset_key = f"{self.prefix}:{key}:reset"
        timeout = max(window_ms / 1000, 1)

        now = self._clock()
        reset_time = self.cache.get(reset_key)
        if reset_time is None or now > reset_time:
            reset_time = now + window_ms
            self.cache.set_many({reset_key: reset_time, count_key: 1}, timeout)
            return RateLimitDecision(True, limit - 1, reset_time)

        try:
            count = self.cache.incr(count_key)
        except ValueError:
            # count evicted inside a live window: restart the count
            self.cache.set(count_key, 1, timeout)
            count = 1

        if count > limit:
            return RateLimitDecision(False, 0, reset_time)
        return RateLimitDecision(True, limit - count, reset_time)


# Global instance (lazy initialization so settings are read at first use)
_rate_limiter_instance: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get or create the rate limiter selected by RATE_LIMIT_BACKEND"""
    global _rate_limiter_instance
    if _rate_limiter_instance is None:
        backend = getattr(settings, "RATE_LIMIT_BACKEND", "memory")
        if backend == "cache":
            _rate_limiter_instance = CacheRateLimiter()
        elif backend == "memory":
            _rate_limiter_instance = InMemoryRateLimiter()
        else:
            raise ValueError(f"Unknown RATE_LIMIT_BACKEND: {backend}")
    return _rate_limiter_instance


def rate_limit(identifier: str, limit: int = 10, window_ms: int = 60_000) -> RateLimitDecision:
    decision = get_rate_limiter().check(identifier, limit, window_ms)
    if not decision.success:
        logger.warning(f"Rate limit exceeded for {identifier}")
    return decision


def check_action_limit(action: str, user_id) -> RateLimitDecision:
    """Apply the configured BUYER_RATE_LIMITS entry for an action and user"""
    limit, window_ms = settings.BUYER_RATE_LIMITS[action]
    return rate_limit(f"{action}_{user_id}", limit, window_ms)
