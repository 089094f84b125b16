import redis.asyncio as redis

from shared.utils.retry import retry_async
from trackline.core.logger import get_logger

logger = get_logger("redis.client")


async def connect_with_retry(
    url: str,
    name: str,
    socket_timeout: float = 2.0,
    retries: int = 6,
) -> redis.Redis:
    """Open a decoded ``redis.asyncio`` client and wait until it answers PING."""

    async def _connect():
        r = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        try:
            await r.ping()
        except Exception:
            await r.aclose()
            raise
        return r

    async def _on_retry(attempt: int, exc: BaseException, sleep_for: float):
        logger.warning(
            "redis_connect_retry",
            extra={
                "redis": name,
                "attempt": attempt,
                "error": str(exc),
                "sleep_for": round(sleep_for, 2),
            },
        )

    r = await retry_async(
        _connect,
        retries=retries,
        base_delay=0.5,
        max_delay=8.0,
        jitter=0.2,
        on_retry=_on_retry,
    )
    logger.info("redis_connected", extra={"redis": name})
    return r
