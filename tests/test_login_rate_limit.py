"""Tests for the fixed-window login rate limiter."""

import asyncio

import pytest

from tokenvault.middleware.rate_limit import LoginRateLimiter, RateLimitDecision
from tokenvault.middleware.rate_limit_cleanup import rate_limit_cleanup_loop


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock) -> LoginRateLimiter:
    return LoginRateLimiter(max_attempts=5, window_seconds=900, clock=clock)


@pytest.mark.asyncio
class TestLoginRateLimiter:
    async def test_allows_up_to_max_attempts(self, limiter):
        decisions = [await limiter.hit("10.0.0.1") for _ in range(5)]

        assert all(d.allowed for d in decisions)
        assert [d.remaining for d in decisions] == [4, 3, 2, 1, 0]

    async def test_rejects_attempt_after_max(self, limiter):
        for _ in range(5):
            await limiter.hit("10.0.0.1")

        decision = await limiter.hit("10.0.0.1")

        assert decision.allowed is False
        assert decision.remaining == 0
        assert decision.retry_after == 900

    async def test_retry_after_counts_down_from_window_start(self, limiter, clock):
        for _ in range(5):
            await limiter.hit("10.0.0.1")
        clock.advance(600.4)

        decision = await limiter.hit("10.0.0.1")

        assert decision.allowed is False
        assert decision.retry_after == 300

    async def test_window_does_not_slide(self, limiter, clock):
        """Attempts late in a window do not extend it."""
        await limiter.hit("10.0.0.1")
        clock.advance(899)
        for _ in range(4):
            assert (await limiter.hit("10.0.0.1")).allowed
        assert not (await limiter.hit("10.0.0.1")).allowed

        clock.advance(1)

        assert (await limiter.hit("10.0.0.1")).allowed

    async def test_new_window_after_expiry(self, limiter, clock):
        for _ in range(6):
            await limiter.hit("10.0.0.1")
        clock.advance(900)

        decision = await limiter.hit("10.0.0.1")

        assert decision.allowed is True
        assert decision.remaining == 4

    async def test_keys_are_independent(self, limiter):
        for _ in range(6):
            await limiter.hit("10.0.0.1")

        assert (await limiter.hit("10.0.0.2")).allowed is True

    async def test_retry_after_is_at_least_one_second(self, limiter, clock):
        for _ in range(5):
            await limiter.hit("10.0.0.1")
        clock.advance(899.9)

        assert (await limiter.hit("10.0.0.1")).retry_after == 1

    async def test_cleanup_expired_windows(self, limiter, clock):
        await limiter.hit("old")
        clock.advance(500)
        await limiter.hit("recent")
        clock.advance(400)

        removed = await limiter.cleanup_expired_windows()

        assert removed == 1
        assert await limiter.get_stats() == {"recent": 1}

    async def test_reset(self, limiter):
        await limiter.hit("10.0.0.1")
        limiter.reset()

        assert await limiter.get_stats() == {}


class TestRateLimitDecision:
    def test_headers_when_allowed(self):
        decision = RateLimitDecision(allowed=True, limit=5, remaining=3, retry_after=900)

        assert decision.headers() == {"X-RateLimit-Limit": "5", "X-RateLimit-Remaining": "3"}

    def test_headers_when_blocked(self):
        decision = RateLimitDecision(allowed=False, limit=5, remaining=0, retry_after=42)

        assert decision.headers()["Retry-After"] == "42"


@pytest.mark.asyncio
async def test_cleanup_loop_drops_ended_windows(clock):
    limiter = LoginRateLimiter(max_attempts=5, window_seconds=60, clock=clock)
    await limiter.hit("10.0.0.1")
    clock.advance(60)

    task = asyncio.create_task(rate_limit_cleanup_loop(limiter, interval_seconds=0.01))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert await limiter.get_stats() == {}
