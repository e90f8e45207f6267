"""Tests for the judge rate limiter."""

import pytest

from studyeval.ratelimit import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.mark.asyncio
async def test_first_call_does_not_wait():
    clock = FakeClock()
    limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)
    await limiter.acquire()
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_back_to_back_calls_are_spaced():
    clock = FakeClock()
    limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)
    await limiter.acquire()
    await limiter.acquire()
    await limiter.acquire()
    assert clock.sleeps == [pytest.approx(1.0), pytest.approx(1.0)]


@pytest.mark.asyncio
async def test_no_wait_after_interval_elapsed():
    clock = FakeClock()
    limiter = RateLimiter(0.5, clock=clock, sleep=clock.sleep)
    await limiter.acquire()
    clock.now += 2.0
    await limiter.acquire()
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_context_manager():
    clock = FakeClock()
    limiter = RateLimiter(2.0, clock=clock, sleep=clock.sleep)
    async with limiter:
        pass
    async with limiter:
        pass
    assert clock.sleeps == [pytest.approx(2.0)]


@pytest.mark.asyncio
async def test_zero_interval_never_waits():
    clock = FakeClock()
    limiter = RateLimiter(0, clock=clock, sleep=clock.sleep)
    for _ in range(5):
        await limiter.acquire()
    assert clock.sleeps == []


def test_negative_interval_rejected():
    with pytest.raises(ValueError):
        RateLimiter(-1)
