from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status
from redis.exceptions import RedisError

from trackline.api.v1.dependencies import get_queue
from trackline.infrastructure.redis.job_queue import JobQueue

router = APIRouter()


@router.get("/queue/stats", summary="Durable queue counts")
async def queue_stats(queue: JobQueue = Depends(get_queue)):
    try:
        stats = await queue.stats()
    except (RedisError, OSError):
        raise HTTPException(
            status.HTTP_503_SERVICE_UNAVAILABLE, "Queue unavailable"
        ) from None
    return {"queue": queue.name, **asdict(stats)}
