"""Minimum-delay rate limiting for a single scraping session."""

from __future__ import annotations

import asyncio
import time


class RateLimiter:
    """Suspend the caller until *delay* seconds have passed since the last call.

    During a run one limiter serves every session of a source entry;
    it is not meant to be shared between concurrent callers.
    """

    def __init__(self, delay: float, *, clock=time.monotonic, sleep=asyncio.sleep):
        self.delay = delay
        self._clock = clock
        self._sleep = sleep
        self.last_request_time: float | None = None

    async def wait_if_needed(self) -> float:
        """Wait out the remainder of the delay; return the seconds slept."""
        waited = 0.0
        if self.last_request_time is not None:
            elapsed = self._clock() - self.last_request_time
            if elapsed < self.delay:
                waited = self.delay - elapsed
                await self._sleep(waited)
        self.last_request_time = self._clock()
        return waited
