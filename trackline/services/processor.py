from __future__ import annotations

from dataclasses import dataclass

from trackline.core.errors import ProcessingError
from trackline.infrastructure.clickhouse.client import EventStore
from trackline.infrastructure.redis.sessions import ApplyResult
from trackline.schemas.events import EnrichedEvent
from trackline.services.aggregator import Aggregator


@dataclass(frozen=True)
class ProcessResult:
    event_id: str
    session: ApplyResult

    def as_dict(self) -> dict[str, str]:
        return {"event_id": self.event_id, "session": self.session}


class EventProcessor:
    """Persist the raw event, then fold it into its session.

    Used by both the worker pool and the fallback drain so an event has the
    same effect whichever path delivered it.
    """

    def __init__(self, store: EventStore, aggregator: Aggregator):
        self.store = store
        self.aggregator = aggregator

    async def process(self, event: EnrichedEvent) -> ProcessResult:
        try:
            await self.store.insert(event)
        except Exception as exc:
            raise ProcessingError("persist", exc) from exc
        try:
            session = await self.aggregator.apply(event)
        except Exception as exc:
            raise ProcessingError("aggregate", exc) from exc
        return ProcessResult(event_id=str(event.event_id), session=session)
