"""
Unit tests for the per-session rate limiter
"""
import asyncio

from car_listing_tracker.rate_limiter import RateLimiter


class FakeTime:
    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def clock(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def _limiter(delay=3.0):
    t = FakeTime()
    return RateLimiter(delay, clock=t.clock, sleep=t.sleep), t


class TestRateLimiter:
    """Minimum spacing between permitted calls"""

    def test_first_call_never_waits(self):
        limiter, t = _limiter()
        assert asyncio.run(limiter.wait_if_needed()) == 0.0
        assert t.sleeps == []
        assert limiter.last_request_time == 100.0

    def test_immediate_second_call_waits_full_delay(self):
        limiter, t = _limiter()
        asyncio.run(limiter.wait_if_needed())
        assert asyncio.run(limiter.wait_if_needed()) == 3.0
        assert t.sleeps == [3.0]

    def test_waits_only_the_remainder(self):
        limiter, t = _limiter()
        asyncio.run(limiter.wait_if_needed())
        t.now += 1.0
        assert asyncio.run(limiter.wait_if_needed()) == 2.0
        assert limiter.last_request_time == 103.0

    def test_no_wait_after_delay_elapsed(self):
        limiter, t = _limiter()
        asyncio.run(limiter.wait_if_needed())
        t.now += 5.0
        assert asyncio.run(limiter.wait_if_needed()) == 0.0
        assert t.sleeps == []

    def test_zero_delay_never_sleeps(self):
        limiter, t = _limiter(delay=0)
        for _ in range(3):
            asyncio.run(limiter.wait_if_needed())
        assert t.sleeps == []
