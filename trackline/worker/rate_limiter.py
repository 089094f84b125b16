"""Fixed-window limiter on job starts, shared by every worker in a process."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable


class RateLimiter:
    """Allow at most ``max_jobs`` acquisitions per ``window_seconds`` window.

    Windows are aligned to the first acquisition and advance in whole steps,
    so a burst at the end of one window and the start of the next can reach
    ``2 * max_jobs`` within one window length. That matches queue-level
    limiters that reset a counter per window.
    """

    def __init__(
        self,
        max_jobs: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_jobs <= 0:
            raise ValueError(f"max_jobs must be positive, got {max_jobs}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {window_seconds}")
        self.max_jobs = max_jobs
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._window_start: float | None = None
        self._count = 0

    def _roll(self, now: float) -> None:
        if self._window_start is None:
            self._window_start = now
            self._count = 0
            return
        elapsed = now - self._window_start
        if elapsed >= self.window_seconds:
            steps = int(elapsed // self.window_seconds)
            self._window_start += steps * self.window_seconds
            self._count = 0

    async def acquire(self) -> float:
        """Wait for a slot in the current or a later window.

        Returns:
            Seconds spent waiting.
        """
        waited = 0.0
        while True:
            async with self._lock:
                now = self._clock()
                self._roll(now)
                if self._count < self.max_jobs:
                    self._count += 1
                    return waited
                wait = self._window_start + self.window_seconds - now
            await self._sleep(wait)
            waited += wait
