"""Fold enriched events into per-session rollups.

``build_delta`` decides what an event does to its session; the repository's
Lua script applies that decision atomically. Aggregation only increments and
overwrites, it never recomputes from raw events.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from shared.utils.clock import now_ms
from trackline.core.logger import get_logger
from trackline.core.metrics import SESSION_UPDATES
from trackline.infrastructure.redis.sessions import ApplyResult, SessionRepository
from trackline.schemas.events import EnrichedEvent, EventType, PageInfo
from trackline.services.retention import RetentionPolicy

logger = get_logger("aggregator")


class BounceEffect(str, Enum):
    NONE = "none"
    CLEAR = "clear"
    CLEAR_ON_REPEAT_PAGEVIEW = "clear_on_repeat_pageview"


COUNTERS = {
    EventType.PAGEVIEW: "page_views",
    EventType.CLICK: "clicks",
    EventType.SCROLL: "scrolls",
    EventType.FORM: "forms",
    EventType.ROUTE: "routes",
}

BOUNCE_EFFECTS = {
    EventType.PAGEVIEW: BounceEffect.CLEAR_ON_REPEAT_PAGEVIEW,
    EventType.CLICK: BounceEffect.CLEAR,
    EventType.FORM: BounceEffect.CLEAR,
}


@dataclass(frozen=True)
class SessionDelta:
    event_type: EventType
    timestamp: int
    counter: str | None
    bounce: BounceEffect
    page: PageInfo | None
    is_unload: bool


def build_delta(event: EnrichedEvent) -> SessionDelta:
    event_type = event.type
    page = event.data.page if event_type == EventType.PAGEVIEW else None
    return SessionDelta(
        event_type=event_type,
        timestamp=event.timestamp,
        counter=COUNTERS.get(event_type),
        bounce=BOUNCE_EFFECTS.get(event_type, BounceEffect.NONE),
        page=page,
        is_unload=event_type == EventType.UNLOAD,
    )


class Aggregator:
    def __init__(
        self,
        sessions: SessionRepository,
        retention: RetentionPolicy,
        dedupe: bool = True,
    ):
        self.sessions = sessions
        self.retention = retention
        self.dedupe = dedupe

    async def apply(self, event: EnrichedEvent) -> ApplyResult:
        delta = build_delta(event)
        now = now_ms()
        result = await self.sessions.apply(
            event.tenant_id,
            event.session_id,
            event_id=str(event.event_id) if self.dedupe else "",
            event_type=delta.event_type.value,
            timestamp=delta.timestamp,
            counter=delta.counter,
            bounce=delta.bounce.value,
            page_json=delta.page.model_dump_json() if delta.page else None,
            is_unload=delta.is_unload,
            user_json=event.user.model_dump_json(),
            expire_at_ms=self.retention.session_expiry_ms(delta.timestamp, now),
            now_ms=now,
        )
        SESSION_UPDATES.labels(result=result).inc()
        if result == "duplicate":
            logger.info(
                "session_event_already_applied",
                extra={
                    "event_id": str(event.event_id),
                    "tenant_id": event.tenant_id,
                    "session_id": event.session_id,
                },
            )
        return result
