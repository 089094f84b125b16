"""Canonicalise and bound one raw tracker record.

``validate_event`` is pure: it either returns a ``CanonicalEvent`` or raises
``EventRejected``. A bad timestamp is never a reason to reject.
"""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import ValidationError

from trackline.core.errors import EventRejected
from trackline.schemas.events import CanonicalEvent, EventType
from trackline.schemas.wire import RECORD_ADAPTER

TYPE_ALIASES = {"event": EventType.CUSTOM.value}

_ID_FIELDS = frozenset({"tenantId", "projectId", "sessionId"})


def parse_type(value: Any) -> EventType:
    if not isinstance(value, str) or not value.strip():
        raise EventRejected("missing type")
    name = value.strip().lower()
    name = TYPE_ALIASES.get(name, name)
    try:
        return EventType(name)
    except ValueError:
        raise EventRejected(f"unknown type {name[:32]!r}") from None


def _reason(exc: ValidationError) -> str:
    loc = exc.errors()[0]["loc"]
    field = str(loc[-1]) if loc else "record"
    return f"missing {field}" if field in _ID_FIELDS else f"invalid {field}"


def validate_event(raw: Any, now: int | None = None) -> CanonicalEvent:
    """Validate and sanitise one record from an ingestion batch."""
    if not isinstance(raw, Mapping):
        raise EventRejected("not an object")

    record = {**raw, "type": parse_type(raw.get("type")).value}
    try:
        parsed = RECORD_ADAPTER.validate_python(record, context={"now": now})
    except ValidationError as exc:
        raise EventRejected(_reason(exc)) from None
    return parsed.to_canonical()
