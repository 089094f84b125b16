"""In-process buffer for events the durable queue could not take.

Bounded and owned by the Dispatcher. A background task drains a slice on a
fixed interval through the same ``EventProcessor`` the workers use. Contents
are lost on restart.
"""

from __future__ import annotations

import asyncio
from collections import deque

from trackline.core.logger import get_logger
from trackline.core.metrics import FALLBACK_DEPTH, FALLBACK_DROPPED, FALLBACK_PROCESSED
from trackline.schemas.events import EnrichedEvent
from trackline.services.processor import EventProcessor

logger = get_logger("fallback")


class FallbackBuffer:
    def __init__(
        self,
        processor: EventProcessor,
        capacity: int = 10_000,
        drain_batch_size: int = 10,
        drain_interval_seconds: float = 1.0,
    ):
        if capacity <= 0 or drain_batch_size <= 0:
            raise ValueError("capacity and drain_batch_size must be positive")
        self.processor = processor
        self.capacity = capacity
        self.drain_batch_size = drain_batch_size
        self.drain_interval_seconds = drain_interval_seconds
        self._events: deque[EnrichedEvent] = deque()
        self._drain_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._events)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def append(self, event: EnrichedEvent) -> bool:
        """Buffer ``event``; returns False (and counts a drop) when full."""
        if len(self._events) >= self.capacity:
            FALLBACK_DROPPED.inc()
            logger.warning(
                "fallback_full_event_dropped",
                extra={"event_id": str(event.event_id), "capacity": self.capacity},
            )
            return False
        self._events.append(event)
        FALLBACK_DEPTH.set(len(self._events))
        return True

    async def drain_once(self) -> int:
        """Process up to one slice in order; stop at the first failure."""
        async with self._drain_lock:
            count = min(self.drain_batch_size, len(self._events))
            batch = [self._events.popleft() for _ in range(count)]
            processed = 0
            for index, event in enumerate(batch):
                try:
                    await self.processor.process(event)
                except Exception as exc:  # noqa: BLE001
                    # Put the unprocessed tail back at the front, order intact
                    self._events.extendleft(reversed(batch[index:]))
                    logger.warning(
                        "fallback_drain_failed",
                        extra={
                            "event_id": str(event.event_id),
                            "remaining": len(self._events),
                            "error": str(exc),
                        },
                    )
                    break
                processed += 1
            if processed:
                FALLBACK_PROCESSED.inc(processed)
            FALLBACK_DEPTH.set(len(self._events))
            return processed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.drain_interval_seconds)
            if self._events:
                await self.drain_once()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="fallback-drain")
        logger.info(
            "fallback_drain_started",
            extra={
                "capacity": self.capacity,
                "interval_seconds": self.drain_interval_seconds,
            },
        )

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:  # expected during shutdown
                logger.debug("fallback_drain_cancelled")
            self._task = None
        if self._events:
            await self.drain_once()
        if self._events:
            logger.warning(
                "fallback_events_lost_on_stop", extra={"remaining": len(self._events)}
            )
