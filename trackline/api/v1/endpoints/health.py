from fastapi import APIRouter, Depends

from trackline.api.v1.dependencies import get_container
from trackline.core.logger import get_logger
from trackline.startup import ServiceContainer

router = APIRouter()
logger = get_logger("api.health")


@router.get("/healthz")
async def healthz(container: ServiceContainer = Depends(get_container)):
    """Liveness; reports the queue as down instead of failing."""
    try:
        queue_up = await container.queue.ping()
    except Exception as exc:  # noqa: BLE001
        logger.warning("healthz_queue_unreachable", extra={"error": str(exc)})
        queue_up = False
    return {
        "status": "ok" if queue_up else "degraded",
        "queue": "up" if queue_up else "down",
        "fallback_depth": len(container.fallback),
    }
