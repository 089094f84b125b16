import pytest

from trackline.worker.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.mark.asyncio
async def test_allows_max_jobs_per_window_then_waits():
    clock = FakeClock()
    limiter = RateLimiter(3, 1.0, clock=clock, sleep=clock.sleep)

    waits = [await limiter.acquire() for _ in range(4)]

    assert waits == [0.0, 0.0, 0.0, 1.0]
    assert clock.now == 101.0


@pytest.mark.asyncio
async def test_window_resets_after_it_elapses():
    clock = FakeClock()
    limiter = RateLimiter(2, 1.0, clock=clock, sleep=clock.sleep)
    await limiter.acquire()
    await limiter.acquire()

    clock.now += 2.5

    assert await limiter.acquire() == 0.0
    assert await limiter.acquire() == 0.0
    assert await limiter.acquire() == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_limit_holds_over_many_windows():
    clock = FakeClock(0.0)
    limiter = RateLimiter(50, 1.0, clock=clock, sleep=clock.sleep)

    for _ in range(500):
        await limiter.acquire()

    assert clock.now == pytest.approx(9.0)


@pytest.mark.parametrize("max_jobs, window", [(0, 1.0), (5, 0)])
def test_rejects_invalid_configuration(max_jobs, window):
    with pytest.raises(ValueError):
        RateLimiter(max_jobs, window)
