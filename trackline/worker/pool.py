"""Asynchronous worker pool consuming the tracking queue.

Each worker reserves a job, waits on the shared rate limiter, runs the
``EventProcessor`` and settles the job. A started job always runs to the end;
shutdown only stops workers from reserving more.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import ValidationError

from trackline.core.logger import get_logger
from trackline.core.metrics import JOB_LATENCY, JOBS, JOBS_IN_FLIGHT, RATE_LIMIT_WAIT
from trackline.infrastructure.redis.job_queue import Job, JobQueue
from trackline.schemas.events import EnrichedEvent
from trackline.services.processor import EventProcessor
from trackline.worker.rate_limiter import RateLimiter

logger = get_logger("worker.pool")

JobStatus = Literal["completed", "retrying", "failed"]


@dataclass(frozen=True)
class JobOutcome:
    job_id: str
    status: JobStatus
    attempts: int
    error: str | None = None
    result: dict[str, Any] = field(default_factory=dict)


class WorkerPool:
    def __init__(
        self,
        queue: JobQueue,
        processor: EventProcessor,
        limiter: RateLimiter,
        concurrency: int = 5,
        lease_seconds: float = 60,
        poll_interval_seconds: float = 0.5,
        promote_interval_seconds: float = 1.0,
    ):
        if concurrency <= 0:
            raise ValueError("concurrency must be positive")
        self.queue = queue
        self.processor = processor
        self.limiter = limiter
        self.concurrency = concurrency
        self.lease_seconds = lease_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.promote_interval_seconds = promote_interval_seconds
        self._subscribers: list[asyncio.Queue[JobOutcome]] = []

    def subscribe(self, maxsize: int = 1000) -> asyncio.Queue[JobOutcome]:
        """Receive every ``JobOutcome``; outcomes are dropped for a full subscriber."""
        channel: asyncio.Queue[JobOutcome] = asyncio.Queue(maxsize=maxsize)
        self._subscribers.append(channel)
        return channel

    def unsubscribe(self, channel: asyncio.Queue[JobOutcome]) -> None:
        if channel in self._subscribers:
            self._subscribers.remove(channel)

    def _publish(self, outcome: JobOutcome) -> None:
        for channel in self._subscribers:
            try:
                channel.put_nowait(outcome)
            except asyncio.QueueFull:
                logger.debug("outcome_subscriber_full", extra={"job_id": outcome.job_id})

    async def process_job(self, job: Job) -> JobOutcome:
        attempts = job.attempts_made + 1
        start = time.perf_counter()
        JOBS_IN_FLIGHT.inc()
        try:
            try:
                event = EnrichedEvent.from_job_payload(job.data)
            except ValidationError as exc:
                # A payload that does not parse will never parse
                await self.queue.fail(job, f"invalid payload: {exc}", retryable=False)
                outcome = JobOutcome(job.id, "failed", attempts, error="invalid payload")
            else:
                outcome = await self._run_processor(job, event, attempts)
        finally:
            JOBS_IN_FLIGHT.dec()
            JOB_LATENCY.observe(time.perf_counter() - start)

        JOBS.labels(status=outcome.status).inc()
        if outcome.status == "failed":
            logger.error(
                "job_failed",
                extra={
                    "job_id": job.id,
                    "attempts": outcome.attempts,
                    "error": outcome.error,
                },
            )
        self._publish(outcome)
        return outcome

    async def _run_processor(
        self, job: Job, event: EnrichedEvent, attempts: int
    ) -> JobOutcome:
        try:
            result = await self.processor.process(event)
        except Exception as exc:  # noqa: BLE001
            error = str(exc)
            status = await self.queue.fail(job, error)
            if status == "retry":
                logger.warning(
                    "job_retry_scheduled",
                    extra={"job_id": job.id, "attempts": attempts, "error": error},
                )
                return JobOutcome(job.id, "retrying", attempts, error=error)
            return JobOutcome(job.id, "failed", attempts, error=error)

        await self.queue.complete(job, result.as_dict())
        return JobOutcome(job.id, "completed", attempts, result=result.as_dict())

    async def _idle(self, shutdown_event: asyncio.Event, seconds: float) -> None:
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _worker(self, index: int, shutdown_event: asyncio.Event) -> None:
        logger.debug("worker_started", extra={"worker": index})
        while not shutdown_event.is_set():
            try:
                job = await self.queue.reserve(self.lease_seconds)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "job_reserve_failed", extra={"worker": index, "error": str(exc)}
                )
                await self._idle(shutdown_event, self.poll_interval_seconds)
                continue
            if job is None:
                await self._idle(shutdown_event, self.poll_interval_seconds)
                continue

            RATE_LIMIT_WAIT.observe(await self.limiter.acquire())
            try:
                await self.process_job(job)
            except Exception:  # noqa: BLE001
                # Settling failed (queue unreachable); the lease expires and the
                # job is redelivered.
                logger.exception(
                    "job_settle_failed", extra={"worker": index, "job_id": job.id}
                )
        logger.debug("worker_stopped", extra={"worker": index})

    async def _promoter(self, shutdown_event: asyncio.Event) -> None:
        while not shutdown_event.is_set():
            try:
                moved = await self.queue.promote()
                if moved:
                    logger.debug("jobs_promoted", extra={"count": moved})
            except Exception as exc:  # noqa: BLE001
                logger.warning("job_promote_failed", extra={"error": str(exc)})
            await self._idle(shutdown_event, self.promote_interval_seconds)

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Run until ``shutdown_event`` is set and in-flight jobs have finished."""
        logger.info(
            "worker_pool_starting",
            extra={"concurrency": self.concurrency, "queue": self.queue.name},
        )
        tasks = [
            asyncio.create_task(self._worker(i, shutdown_event), name=f"worker-{i}")
            for i in range(self.concurrency)
        ]
        tasks.append(
            asyncio.create_task(self._promoter(shutdown_event), name="promoter")
        )
        await asyncio.gather(*tasks)
        logger.info("worker_pool_stopped")
