"""Bounded retry with exponential backoff, for sync and async callables."""

import asyncio
import random
import time
from typing import Awaitable, Callable, Iterable, Iterator, Optional, TypeVar

T = TypeVar("T")

OnRetry = Callable[[int, BaseException, float], Optional[Awaitable[None]]]


def backoff_delays(
    retries: int,
    base_delay: float,
    max_delay: float,
    jitter: float,
) -> Iterator[float]:
    """Yield the sleep before each retry: base, 2*base, 4*base... capped, jittered."""
    delay = base_delay
    for _ in range(max(retries - 1, 0)):
        yield min(delay, max_delay) + random.uniform(0, delay * jitter)
        delay = min(delay * 2, max_delay)


def retry(
    func: Callable[[], T],
    retries: int = 5,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    jitter: float = 0.1,
    retry_on: Iterable[type[BaseException]] = (Exception,),
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    retry_on = tuple(retry_on)
    delays = backoff_delays(retries, base_delay, max_delay, jitter)
    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except retry_on as exc:  # type: ignore[misc]
            sleep_for = next(delays, None)
            if sleep_for is None:
                raise
            if on_retry:
                on_retry(attempt, exc, sleep_for)
            time.sleep(sleep_for)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    retries: int = 5,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    jitter: float = 0.1,
    retry_on: Iterable[type[BaseException]] = (Exception,),
    on_retry: Optional[OnRetry] = None,
) -> T:
    retry_on = tuple(retry_on)
    delays = backoff_delays(retries, base_delay, max_delay, jitter)
    attempt = 0
    while True:
        attempt += 1
        try:
            return await func()
        except retry_on as exc:  # type: ignore[misc]
            sleep_for = next(delays, None)
            if sleep_for is None:
                raise
            if on_retry:
                result = on_retry(attempt, exc, sleep_for)
                if result is not None:
                    await result
            await asyncio.sleep(sleep_for)
