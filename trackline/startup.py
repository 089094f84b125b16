"""Build the service container shared by the ingestion API and the worker.

Everything is constructed once from ``Settings`` and handed down by
reference; there are no module-level queue or store singletons.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx
from redis.asyncio import Redis

from shared.constants import Environment
from shared.utils.concurrency import run_blocking
from trackline.core.config import Settings
from trackline.core.logger import get_logger
from trackline.infrastructure.clickhouse.client import EventStore
from trackline.infrastructure.lookups.geo import GeoLookup
from trackline.infrastructure.redis.client import connect_with_retry
from trackline.infrastructure.redis.job_queue import JobOptions, JobQueue
from trackline.infrastructure.redis.rate_limit import RequestRateLimiter
from trackline.infrastructure.redis.sessions import SessionRepository
from trackline.infrastructure.redis.tenants import TenantDirectory
from trackline.services.aggregator import Aggregator
from trackline.services.dispatcher import Dispatcher
from trackline.services.enricher import Enricher
from trackline.services.fallback import FallbackBuffer
from trackline.services.processor import EventProcessor
from trackline.services.retention import RetentionPolicy
from trackline.worker.pool import WorkerPool
from trackline.worker.rate_limiter import RateLimiter

logger = get_logger("startup")


@dataclass
class ServiceContainer:
    settings: Settings
    queue_redis: Redis
    sessions_redis: Redis
    tenants_redis: Redis
    http: httpx.AsyncClient
    store: EventStore
    queue: JobQueue
    tenants: TenantDirectory
    sessions: SessionRepository
    enricher: Enricher
    processor: EventProcessor
    fallback: FallbackBuffer
    dispatcher: Dispatcher
    ingest_limiter: RequestRateLimiter
    pool: WorkerPool | None = None
    _closed: bool = field(default=False, repr=False)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.fallback.stop()
        await self.http.aclose()
        for client in {id(c): c for c in self._redis_clients()}.values():
            await client.aclose()
        await run_blocking(self.store.close)

    def _redis_clients(self) -> list[Redis]:
        return [self.queue_redis, self.sessions_redis, self.tenants_redis]


def job_options(settings: Settings) -> JobOptions:
    return JobOptions(
        attempts=settings.queue_job_attempts,
        backoff_delay_ms=settings.queue_backoff_delay_ms,
        remove_on_complete=settings.queue_remove_on_complete,
        remove_on_fail=settings.queue_remove_on_fail,
    )


def assemble(
    settings: Settings,
    *,
    queue_redis: Redis,
    sessions_redis: Redis,
    tenants_redis: Redis,
    http: httpx.AsyncClient,
    store: EventStore,
    with_worker: bool = False,
) -> ServiceContainer:
    """Wire components around already-open connections."""
    retention = RetentionPolicy.from_settings(settings)
    queue = JobQueue(queue_redis, settings.queue_name, job_options(settings))
    tenants = TenantDirectory(tenants_redis)
    sessions = SessionRepository(sessions_redis)
    enricher = Enricher(
        tenants,
        GeoLookup(http, settings.geo_api_url, settings.geo_timeout_seconds),
    )
    aggregator = Aggregator(sessions, retention, settings.aggregator_dedupe_enabled)
    processor = EventProcessor(store, aggregator)
    fallback = FallbackBuffer(
        processor,
        capacity=settings.fallback_capacity,
        drain_batch_size=settings.fallback_drain_batch_size,
        drain_interval_seconds=settings.fallback_drain_interval_seconds,
    )
    dispatcher = Dispatcher(
        queue,
        fallback,
        retries=settings.dispatch_retries,
        base_delay=settings.dispatch_retry_base_delay_seconds,
        max_delay=settings.dispatch_retry_max_delay_seconds,
        cooldown_seconds=settings.dispatch_unavailable_cooldown_seconds,
    )
    pool = None
    if with_worker:
        poll_interval = settings.worker_poll_interval_seconds
        if Environment.is_testing(settings.app_environment):
            poll_interval = min(poll_interval, 0.2)
        pool = WorkerPool(
            queue,
            processor,
            RateLimiter(
                settings.worker_rate_limit_max_jobs,
                settings.worker_rate_limit_window_seconds,
            ),
            concurrency=settings.worker_concurrency,
            lease_seconds=settings.queue_lease_seconds,
            poll_interval_seconds=poll_interval,
            promote_interval_seconds=settings.worker_promote_interval_seconds,
        )
    return ServiceContainer(
        settings=settings,
        queue_redis=queue_redis,
        sessions_redis=sessions_redis,
        tenants_redis=tenants_redis,
        http=http,
        store=store,
        queue=queue,
        tenants=tenants,
        sessions=sessions,
        enricher=enricher,
        processor=processor,
        fallback=fallback,
        dispatcher=dispatcher,
        ingest_limiter=RequestRateLimiter(
            queue_redis,
            settings.ingest_rate_limit_requests,
            settings.ingest_rate_limit_window_seconds,
        ),
        pool=pool,
    )


async def build_container(
    settings: Settings, with_worker: bool = False
) -> ServiceContainer:
    logger.info(
        "service_container_building",
        extra={"queue": settings.queue_name, "worker": with_worker},
    )
    timeout = settings.redis_socket_timeout_seconds
    queue_redis = await connect_with_retry(settings.redis_queue_url, "queue", timeout)
    sessions_redis = await connect_with_retry(
        settings.redis_sessions_url, "sessions", timeout
    )
    tenants_redis = await connect_with_retry(
        settings.redis_tenants_url, "tenants", timeout
    )

    store = EventStore.from_settings(settings, RetentionPolicy.from_settings(settings))
    await run_blocking(store.ensure_schema)

    http = httpx.AsyncClient(timeout=settings.geo_timeout_seconds)
    return assemble(
        settings,
        queue_redis=queue_redis,
        sessions_redis=sessions_redis,
        tenants_redis=tenants_redis,
        http=http,
        store=store,
        with_worker=with_worker,
    )
