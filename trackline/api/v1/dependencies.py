from fastapi import Depends, HTTPException, Request, status
from redis.exceptions import RedisError

from trackline.core.config import Settings
from trackline.core.logger import get_logger
from trackline.core.metrics import RATE_LIMITED
from trackline.infrastructure.redis.job_queue import JobQueue
from trackline.infrastructure.redis.tenants import TenantDirectory
from trackline.services.dispatcher import Dispatcher
from trackline.services.enricher import Enricher
from trackline.startup import ServiceContainer

logger = get_logger("api.dependencies")


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container  # type: ignore[return-value]


def get_settings(container: ServiceContainer = Depends(get_container)) -> Settings:
    return container.settings


def get_enricher(container: ServiceContainer = Depends(get_container)) -> Enricher:
    return container.enricher


def get_dispatcher(container: ServiceContainer = Depends(get_container)) -> Dispatcher:
    return container.dispatcher


def get_queue(container: ServiceContainer = Depends(get_container)) -> JobQueue:
    return container.queue


def get_tenants(container: ServiceContainer = Depends(get_container)) -> TenantDirectory:
    return container.tenants


def client_ip(request: Request, settings: Settings = Depends(get_settings)) -> str | None:
    if settings.ingest_trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
    return request.client.host if request.client else None


async def enforce_rate_limit(
    ip: str | None = Depends(client_ip),
    container: ServiceContainer = Depends(get_container),
) -> None:
    """Per-IP limit on track requests; lets traffic through if Redis is down."""
    try:
        allowed = await container.ingest_limiter.hit(ip or "unknown")
    except (RedisError, OSError) as exc:
        logger.warning("rate_limit_unavailable", extra={"error": str(exc)})
        return
    if not allowed:
        RATE_LIMITED.inc()
        logger.warning("track_rate_limited", extra={"client_ip": ip})
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many tracking requests, please try again later.",
        )
