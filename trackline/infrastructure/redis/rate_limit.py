from __future__ import annotations

import time

from redis.asyncio import Redis

from shared.constants import RedisKeys


class RequestRateLimiter:
    """Per-client fixed-window request counter (INCR + EXPIRE)."""

    def __init__(self, redis: Redis, limit: int, window_seconds: int):
        self.r = redis
        self.limit = limit
        self.window_seconds = window_seconds

    async def hit(self, client: str, now: float | None = None) -> bool:
        """Count one request for ``client``; False once the window is exhausted."""
        now = time.time() if now is None else now
        window = int(now // self.window_seconds)
        key = RedisKeys.rate_limit_key(client, window)
        pipe = self.r.pipeline(transaction=True)
        pipe.incr(key)
        pipe.expire(key, self.window_seconds + 1)
        count, _ = await pipe.execute()
        return int(count) <= self.limit
