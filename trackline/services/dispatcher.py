"""Hand enriched events to the durable queue, or to the fallback buffer."""

from __future__ import annotations

import time
from typing import Callable, Literal

from shared.constants import Queues
from shared.utils.retry import retry_async
from trackline.core.errors import QueueUnavailable
from trackline.core.logger import get_logger
from trackline.core.metrics import DISPATCHED
from trackline.infrastructure.redis.job_queue import JobQueue
from trackline.schemas.events import EnrichedEvent, EventType
from trackline.services.fallback import FallbackBuffer

logger = get_logger("dispatcher")

DispatchPath = Literal["queue", "fallback", "dropped"]

HIGH_PRIORITY_TYPES = frozenset({EventType.PAGEVIEW, EventType.UNLOAD})


def priority_for(event: EnrichedEvent) -> int:
    if event.type in HIGH_PRIORITY_TYPES:
        return Queues.PRIORITY_HIGH
    return Queues.PRIORITY_NORMAL


class Dispatcher:
    """Queue-first handoff with a cooldown once the queue is known to be down.

    After one event exhausts its retries, events skip the queue and go
    straight to the fallback until ``cooldown_seconds`` have passed; the next
    event after that probes the queue again.
    """

    def __init__(
        self,
        queue: JobQueue,
        fallback: FallbackBuffer,
        retries: int = 3,
        base_delay: float = 0.05,
        max_delay: float = 0.5,
        cooldown_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.queue = queue
        self.fallback = fallback
        self.retries = retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._unavailable_until: float | None = None

    @property
    def queue_available(self) -> bool:
        """False while the cooldown after an exhausted handoff is running."""
        until = self._unavailable_until
        return until is None or self._clock() >= until

    async def _enqueue(self, event: EnrichedEvent) -> str:
        payload = event.to_job_payload()
        priority = priority_for(event)

        async def _add() -> str:
            return await self.queue.add(Queues.PROCESS_EVENT, payload, priority)

        def _on_retry(attempt: int, exc: BaseException, sleep_for: float):
            logger.warning(
                "queue_add_retry",
                extra={
                    "event_id": str(event.event_id),
                    "attempt": attempt,
                    "error": str(exc),
                    "sleep_for": round(sleep_for, 3),
                },
            )

        try:
            return await retry_async(
                _add,
                retries=self.retries,
                base_delay=self.base_delay,
                max_delay=self.max_delay,
                jitter=0.1,
                on_retry=_on_retry,
            )
        except Exception as exc:
            raise QueueUnavailable(str(exc)) from exc

    def _buffer(self, event: EnrichedEvent) -> DispatchPath:
        return "fallback" if self.fallback.append(event) else "dropped"

    async def route(self, event: EnrichedEvent) -> DispatchPath:
        """Dispatch ``event`` and report which path took it. Never raises."""
        if not self.queue_available:
            path = self._buffer(event)
            DISPATCHED.labels(path=path).inc()
            return path
        try:
            job_id = await self._enqueue(event)
        except QueueUnavailable as exc:
            self._unavailable_until = self._clock() + self.cooldown_seconds
            logger.error(
                "queue_unavailable_using_fallback",
                extra={
                    "event_id": str(event.event_id),
                    "error": str(exc),
                    "cooldown_seconds": self.cooldown_seconds,
                },
            )
            path = self._buffer(event)
        else:
            if self._unavailable_until is not None:
                logger.info("queue_available_again")
                self._unavailable_until = None
            logger.debug(
                "event_queued",
                extra={"event_id": str(event.event_id), "job_id": job_id},
            )
            path = "queue"
        DISPATCHED.labels(path=path).inc()
        return path

    async def dispatch(self, event: EnrichedEvent) -> bool:
        """True on durable handoff, False when the event went to the fallback."""
        return await self.route(event) == "queue"
