"""Unit tests for the fixed-window RateLimiter."""

import asyncio
import threading

import pytest

from stockgate.managers.config.config_models import SecurityPolicy
from stockgate.middleware.rate_limiter import (
    InMemoryRateLimitStore,
    RateLimitRecord,
    RateLimiter,
)


@pytest.fixture
def limiter(clock):
    return RateLimiter(max_requests=3, window_seconds=60, clock=clock, rng=lambda: 1.0)


class TestRateLimiter:
    """Test cases for RateLimiter."""

    def test_default_policy_allows_quota_then_limits(self, clock):
        """With 500 per 15 minutes the 501st request in the window is rejected."""
        limiter = RateLimiter.from_policy(SecurityPolicy(), clock=clock, rng=lambda: 1.0)

        results = [limiter.check_and_increment("10.0.0.1:GET:/api/portfolio") for _ in range(501)]

        assert results[:500] == [False] * 500
        assert results[500] is True

    def test_first_request_opens_window(self, limiter, clock):
        decision = limiter.hit("a")

        assert not decision.limited
        assert decision.remaining == 2
        assert decision.reset_at == clock.now + 60
        assert limiter.store.get("a").count == 1

    def test_limited_request_does_not_increment(self, limiter):
        for _ in range(3):
            limiter.hit("a")

        decision = limiter.hit("a")
        limiter.hit("a")

        assert decision.limited
        assert decision.remaining == 0
        assert limiter.store.get("a").count == 3

    def test_retry_after_reflects_remaining_window(self, limiter, clock):
        for _ in range(3):
            limiter.hit("a")
        clock.advance(45.5)

        decision = limiter.hit("a")

        assert decision.limited
        assert decision.retry_after == 15

    def test_retry_after_is_at_least_one_second(self, limiter, clock):
        for _ in range(3):
            limiter.hit("a")
        clock.advance(59.9)

        assert limiter.hit("a").retry_after == 1

    def test_window_resets_after_expiry(self, limiter, clock):
        for _ in range(4):
            limiter.hit("a")
        clock.advance(61)

        decision = limiter.hit("a")

        assert not decision.limited
        assert limiter.store.get("a").count == 1

    def test_reset_instant_opens_fresh_window(self, limiter, clock):
        """A request exactly at window_reset_at starts a new window even when the old one was full."""
        for _ in range(3):
            limiter.hit("a")
        clock.now = limiter.store.get("a").window_reset_at

        assert not limiter.hit("a").limited
        assert limiter.store.get("a").count == 1

    def test_identities_are_independent(self, limiter):
        for _ in range(3):
            limiter.hit("a")

        assert limiter.check_and_increment("a") is True
        assert limiter.check_and_increment("b") is False

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            RateLimiter(max_requests=0)
        with pytest.raises(ValueError):
            RateLimiter(window_seconds=0)
        with pytest.raises(ValueError):
            InMemoryRateLimitStore(lock_stripes=0)


class TestSweep:
    """Test cases for expired-record eviction."""

    def test_sweep_removes_only_expired(self, clock):
        store = InMemoryRateLimitStore()
        store.set(RateLimitRecord("old", 3, clock.now - 1))
        store.set(RateLimitRecord("edge", 1, clock.now))
        store.set(RateLimitRecord("live", 1, clock.now + 10))
        limiter = RateLimiter(store=store, clock=clock)

        assert limiter.sweep() == 2
        assert "old" not in store
        assert "edge" not in store
        assert "live" in store
        assert len(store) == 1

    def test_maybe_sweep_runs_when_roll_is_below_probability(self, clock):
        store = InMemoryRateLimitStore()
        store.set(RateLimitRecord("old", 1, clock.now - 1))
        limiter = RateLimiter(store=store, sweep_probability=0.01, clock=clock, rng=lambda: 0.005)

        assert limiter.maybe_sweep() == 1
        assert len(store) == 0

    def test_maybe_sweep_skips_when_roll_is_above_probability(self, clock):
        store = InMemoryRateLimitStore()
        store.set(RateLimitRecord("old", 1, clock.now - 1))
        limiter = RateLimiter(store=store, sweep_probability=0.01, clock=clock, rng=lambda: 0.5)

        assert limiter.maybe_sweep() == 0
        assert len(store) == 1

    def test_sweep_does_not_change_decisions(self, limiter, clock):
        for _ in range(3):
            limiter.hit("a")
        limiter.sweep()

        assert limiter.hit("a").limited


class TestConcurrency:
    """Concurrent hits on one identity never admit more than the quota."""

    def test_threads_admit_exactly_quota(self):
        limiter = RateLimiter(max_requests=50, window_seconds=60, rng=lambda: 1.0)
        admitted = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                if not limiter.check_and_increment("shared"):
                    with lock:
                        admitted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(admitted) == 50
        assert limiter.store.get("shared").count == 50

    @pytest.mark.asyncio
    async def test_concurrent_tasks_admit_exactly_quota(self):
        limiter = RateLimiter(max_requests=5, window_seconds=60, rng=lambda: 1.0)

        async def attempt():
            await asyncio.sleep(0)
            return limiter.check_and_increment("shared")

        results = await asyncio.gather(*(attempt() for _ in range(20)))

        assert results.count(False) == 5
        assert results.count(True) == 15
