"""
Tests for the fixed-window rate limiter
"""
import pytest
from django.core.cache.backends.locmem import LocMemCache
from django.test import override_settings

from services import rate_limit
from services.rate_limit import (
    CacheRateLimiter,
    InMemoryRateLimiter,
    check_action_limit,
    get_rate_limiter,
)


class FakeClock:
    def __init__(self, start=1_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


class TestInMemoryRateLimiter:
    """Window accounting with an injected clock"""

    def test_limit_then_new_window(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock)

        first = limiter.check('k', 2, 1000)
        second = limiter.check('k', 2, 1000)
        third = limiter.check('k', 2, 1000)

        assert (first.success, first.remaining) == (True, 1)
        assert (second.success, second.remaining) == (True, 0)
        assert (third.success, third.remaining) == (False, 0)
        assert first.reset_time == second.reset_time == third.reset_time == clock.now + 1000

        clock.advance(1001)
        fourth = limiter.check('k', 2, 1000)
        assert fourth.success
        assert fourth.remaining == 1
        assert fourth.reset_time == clock.now + 1000

    def test_window_boundary_is_inclusive(self):
        """A call exactly at reset_time still counts against the old window"""
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock)
        limiter.check('k', 1, 1000)

        clock.advance(1000)
        assert not limiter.check('k', 1, 1000).success

    def test_keys_are_independent(self):
        limiter = InMemoryRateLimiter(clock=FakeClock())
        limiter.check('a', 1, 1000)

        assert not limiter.check('a', 1, 1000).success
        assert limiter.check('b', 1, 1000).success

    def test_expired_windows_are_dropped(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock)
        for key in ('a', 'b', 'c'):
            limiter.check(key, 5, 1000)
        assert limiter.active_windows == 3

        clock.advance(1001)
        limiter.check('d', 5, 1000)

        assert limiter.active_windows == 1

    def test_live_windows_survive_a_sweep(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock)
        limiter.check('short', 5, 100)
        limiter.check('long', 1, 10_000)

        clock.advance(101)
        limiter.check('other', 5, 100)

        assert limiter.active_windows == 2
        assert not limiter.check('long', 1, 10_000).success

    def test_reset(self):
        limiter = InMemoryRateLimiter(clock=FakeClock())
        limiter.check('k', 1, 1000)
        limiter.reset()

        assert limiter.check('k', 1, 1000).success


class TestCacheRateLimiter:
    """Same accounting stored in a Django cache"""

    @pytest.fixture
    def cache(self):
        cache = LocMemCache('rate-limit-tests', {})
        yield cache
        cache.clear()

    def test_limit(self, cache):
        clock = FakeClock()
        limiter = CacheRateLimiter(cache=cache, clock=clock)

        decisions = [limiter.check('k', 2, 60_000) for _ in range(3)]

        assert [d.success for d in decisions] == [True, True, False]
        assert [d.remaining for d in decisions] == [1, 0, 0]
        assert {d.reset_time for d in decisions} == {clock.now + 60_000}

    def test_new_window_after_clock_passes_reset_time(self, cache):
        clock = FakeClock()
        limiter = CacheRateLimiter(cache=cache, clock=clock)
        limiter.check('k', 1, 60_000)
        assert not limiter.check('k', 1, 60_000).success

        clock.advance(60_001)
        decision = limiter.check('k', 1, 60_000)

        assert decision.success
        assert decision.remaining == 0
        assert decision.reset_time == clock.now + 60_000

    def test_expired_window_starts_over(self, cache):
        limiter = CacheRateLimiter(cache=cache, clock=FakeClock())
        limiter.check('k', 1, 60_000)
        assert not limiter.check('k', 1, 60_000).success

        cache.clear()
        assert limiter.check('k', 1, 60_000).success


class TestRateLimiterSelection:

    @override_settings(RATE_LIMIT_BACKEND='memory')
    def test_memory_backend(self):
        limiter = get_rate_limiter()

        assert isinstance(limiter, InMemoryRateLimiter)
        assert get_rate_limiter() is limiter

    @override_settings(RATE_LIMIT_BACKEND='cache')
    def test_cache_backend(self):
        assert isinstance(get_rate_limiter(), CacheRateLimiter)

    @override_settings(RATE_LIMIT_BACKEND='redis')
    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            get_rate_limiter()

    @override_settings(BUYER_RATE_LIMITS={'create': (2, 60_000)})
    def test_action_limit_is_per_user(self):
        rate_limit._rate_limiter_instance = InMemoryRateLimiter(clock=FakeClock())

        assert check_action_limit('create', 1).success
        assert check_action_limit('create', 1).success
        assert not check_action_limit('create', 1).success
        assert check_action_limit('create', 2).success
