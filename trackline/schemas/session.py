from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field

from .events import PageInfo, UserSnapshot


class Session(BaseModel):
    """Per-visit rollup keyed by (tenant_id, session_id)."""

    tenant_id: str
    session_id: str
    start_time: int = Field(..., description="Epoch-ms of the first applied event")
    end_time: int | None = None
    duration: int | None = Field(None, description="max(0, end_time - start_time)")
    page_views: int = 0
    clicks: int = 0
    scrolls: int = 0
    forms: int = 0
    routes: int = 0
    events: int = 0
    first_page: PageInfo | None = None
    last_page: PageInfo | None = None
    last_event: str | None = None
    last_activity: int | None = None
    is_bounce: bool = True
    user: UserSnapshot | None = None

    @classmethod
    def from_redis_hash(
        cls, tenant_id: str, session_id: str, raw: dict[str, str]
    ) -> "Session":
        def _int(name: str) -> int | None:
            value = raw.get(name)
            return int(value) if value not in (None, "") else None

        def _json(name: str) -> Any:
            value = raw.get(name)
            return json.loads(value) if value else None

        return cls(
            tenant_id=tenant_id,
            session_id=session_id,
            start_time=_int("start_time") or 0,
            end_time=_int("end_time"),
            duration=_int("duration"),
            page_views=_int("page_views") or 0,
            clicks=_int("clicks") or 0,
            scrolls=_int("scrolls") or 0,
            forms=_int("forms") or 0,
            routes=_int("routes") or 0,
            events=_int("events") or 0,
            first_page=_json("first_page"),
            last_page=_json("last_page"),
            last_event=raw.get("last_event"),
            last_activity=_int("last_activity"),
            is_bounce=raw.get("is_bounce", "1") == "1",
            user=_json("user"),
        )
