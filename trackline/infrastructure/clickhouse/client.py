"""Raw event store on ClickHouse."""

from __future__ import annotations

import threading
from datetime import datetime, timezone

from clickhouse_driver import Client

from shared.utils.concurrency import run_blocking
from shared.utils.retry import retry
from trackline.core.logger import get_logger
from trackline.infrastructure.clickhouse.ddl import EVENT_COLUMNS, events_ddl
from trackline.schemas.events import EnrichedEvent
from trackline.services.retention import RetentionPolicy

logger = get_logger("clickhouse")

INSERT_SETTINGS = {"async_insert": 1, "wait_for_async_insert": 1}


def _ms_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def event_row(event: EnrichedEvent) -> tuple:
    """Positional row in ``EVENT_COLUMNS`` order."""
    user = event.user
    return (
        event.event_id,
        event.tenant_id,
        event.tracking_id,
        event.session_id,
        event.type.value,
        _ms_to_datetime(event.timestamp),
        _ms_to_datetime(event.received_at),
        event.data.model_dump_json(by_alias=True),
        user.ip or "",
        user.user_agent or "",
        user.browser,
        user.os,
        user.device,
        int(user.is_bot),
        user.country,
        user.city,
        user.region,
    )


class EventStore:
    def __init__(
        self,
        client: Client,
        table: str = "events",
        retention: RetentionPolicy | None = None,
    ):
        self.client = client
        self.table = table
        self.retention = retention or RetentionPolicy()
        # clickhouse-driver raises PartiallyConsumedQueryError when two threads
        # share one connection, so every call goes through this lock.
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, settings, retention: RetentionPolicy) -> "EventStore":
        client = Client(
            host=settings.clickhouse_host,
            port=settings.clickhouse_port,
            user=settings.clickhouse_user,
            password=settings.clickhouse_password,
            database=settings.clickhouse_db,
        )
        return cls(client, settings.clickhouse_events_table, retention)

    def ensure_schema(self, retries: int = 6) -> None:
        def _on_retry(attempt: int, exc: BaseException, sleep_for: float):
            logger.warning(
                "clickhouse_schema_retry",
                extra={
                    "attempt": attempt,
                    "error": str(exc),
                    "sleep_for": round(sleep_for, 2),
                },
            )

        ddl = events_ddl(self.table, self.retention)

        def _create():
            with self._lock:
                self.client.execute(ddl)

        retry(_create, retries=retries, on_retry=_on_retry)
        logger.info("clickhouse_schema_ready", extra={"table": self.table})

    def insert_event(self, event: EnrichedEvent) -> None:
        query = f"INSERT INTO {self.table} ({', '.join(EVENT_COLUMNS)}) VALUES"
        with self._lock:
            self.client.execute(query, [event_row(event)], settings=INSERT_SETTINGS)

    async def insert(self, event: EnrichedEvent) -> None:
        await run_blocking(self.insert_event, event)

    def close(self) -> None:
        with self._lock:
            self.client.disconnect()
