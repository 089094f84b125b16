"""Raw tracker records as they arrive on ``POST /v1/track``.

One pydantic model per event variant, selected by ``type``. Field
annotations carry the coercion: strings are clipped, numbers clamped, maps
capped. The only failures are missing identifiers; a bad timestamp or an
oversized field is replaced or trimmed instead.
"""

import json
import math
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationInfo,
    field_validator,
    model_validator,
)

from shared.utils.clock import now_ms

from .events import (
    CanonicalEvent,
    ClickData,
    CustomData,
    ElementInfo,
    FormData,
    PageInfo,
    PageviewData,
    Position,
    RouteData,
    RouteInfo,
    ScrollData,
    UnloadData,
)

MAX_ID_LENGTH = 128
MAX_URL_LENGTH = 2048
MAX_TITLE_LENGTH = 512
MAX_CLICK_TEXT_LENGTH = 100
MAX_ELEMENT_ATTR_LENGTH = 256
MAX_NAME_LENGTH = 128
MAX_COORDINATE = 100_000
MAX_MAP_KEYS = 50
MAX_MAP_BYTES = 8 * 1024

# Epoch numbers in [1e9, 1e11) are seconds (2001..5138); everything else is ms.
SECONDS_LOWER_BOUND = 1_000_000_000
SECONDS_UPPER_BOUND = 100_000_000_000
# Last instant a ClickHouse DateTime (and so the TTL expression) can hold:
# 2106-02-07T06:28:15Z.
MAX_TIMESTAMP_MS = (2**32 - 1) * 1000


def normalize_timestamp(value: Any, now: int) -> int:
    """Return epoch milliseconds for ``value``, or ``now`` if it cannot be used."""
    if value is None or isinstance(value, bool):
        return now
    if isinstance(value, datetime):
        return _from_datetime(value, now)
    if isinstance(value, (int, float)):
        return _from_number(value, now)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return now
        try:
            return _from_number(float(text), now)
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return now
        return _from_datetime(parsed, now)
    return now


def _bounded(millis: int, now: int) -> int:
    return millis if 0 <= millis <= MAX_TIMESTAMP_MS else now


def _from_number(value: int | float, now: int) -> int:
    try:
        number = float(value)
    except OverflowError:
        return now
    if not math.isfinite(number):
        return now
    if SECONDS_LOWER_BOUND <= number < SECONDS_UPPER_BOUND:
        number *= 1000
    return _bounded(int(number), now)


def _from_datetime(value: datetime, now: int) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    try:
        millis = int(value.timestamp() * 1000)
    except (OverflowError, ValueError, OSError):
        return now
    return _bounded(millis, now)


def clip(value: Any, limit: int) -> str | None:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = value if isinstance(value, str) else str(value)
    return text[:limit]


def clamp_int(value: Any, low: int, high: int, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return max(low, min(high, number))


def cap_map(value: Any, max_keys: int = MAX_MAP_KEYS, max_bytes: int = MAX_MAP_BYTES):
    """Keep the first ``max_keys`` entries, then drop from the end until it fits."""
    if not isinstance(value, Mapping):
        return {}
    out: dict[str, Any] = {}
    for key, item in value.items():
        if len(out) >= max_keys:
            break
        out[str(key)[:MAX_NAME_LENGTH]] = item
    while out and len(json.dumps(out, default=str)) > max_bytes:
        out.popitem()
    return out


def _required_id(value: Any) -> str:
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        text = str(value).strip()
        if text:
            return text[:MAX_ID_LENGTH]
    raise ValueError("identifier must be a non-blank string")


def _clipped(limit: int):
    return Annotated[Optional[str], BeforeValidator(lambda v: clip(v, limit))]


def _clamped(high: int):
    return Annotated[int, BeforeValidator(lambda v: clamp_int(v, 0, high, 0))]


Identifier = Annotated[str, BeforeValidator(_required_id)]
Url = _clipped(MAX_URL_LENGTH)
Title = _clipped(MAX_TITLE_LENGTH)
Attribute = _clipped(MAX_ELEMENT_ATTR_LENGTH)
ClickText = _clipped(MAX_CLICK_TEXT_LENGTH)
Name = _clipped(MAX_NAME_LENGTH)
Coordinate = _clamped(MAX_COORDINATE)
Percent = _clamped(100)
CappedMap = Annotated[dict[str, Any], BeforeValidator(cap_map)]


def _lift(data: Any, key: str, fields: tuple[str, ...]) -> Any:
    """Read ``fields`` from ``data[key]`` when the client nested them there."""
    if not isinstance(data, Mapping) or not isinstance(data.get(key), Mapping):
        return data
    nested = data[key]
    lifted = {k: v for k, v in data.items() if k not in fields}
    lifted.update({k: nested[k] for k in fields if k in nested})
    return lifted


class WireRecord(BaseModel):
    """Envelope shared by every variant."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    tracking_id: Identifier = Field(
        ..., validation_alias=AliasChoices("tenantId", "projectId")
    )
    session_id: Identifier = Field(..., validation_alias="sessionId")
    timestamp: int = Field(None, validate_default=True)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _normalize_timestamp(cls, value: Any, info: ValidationInfo) -> int:
        now = (info.context or {}).get("now")
        return normalize_timestamp(value, now_ms() if now is None else now)

    def to_data(self):
        raise NotImplementedError

    def to_canonical(self) -> CanonicalEvent:
        return CanonicalEvent(
            tracking_id=self.tracking_id,
            session_id=self.session_id,
            timestamp=self.timestamp,
            data=self.to_data(),
        )


class PageviewRecord(WireRecord):
    type: Literal["pageview"]
    url: Url = None
    title: Title = None
    referrer: Url = None

    @model_validator(mode="before")
    @classmethod
    def _nested_page(cls, data: Any) -> Any:
        return _lift(data, "page", ("url", "title", "referrer"))

    def to_data(self) -> PageviewData:
        return PageviewData(
            page=PageInfo(url=self.url, title=self.title, referrer=self.referrer)
        )


class ElementRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tag: Attribute = None
    id: Attribute = None
    class_name: Attribute = Field(None, validation_alias="class")
    text: ClickText = None


class PositionRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    x: Coordinate = 0
    y: Coordinate = 0


class ClickRecord(WireRecord):
    type: Literal["click"]
    element: ElementRecord = Field(default_factory=ElementRecord)
    position: Optional[PositionRecord] = None

    @field_validator("element", mode="before")
    @classmethod
    def _element_text(cls, value: Any) -> Any:
        # Older trackers send the element's text instead of an object
        return value if isinstance(value, Mapping) else {"text": value}

    @field_validator("position", mode="before")
    @classmethod
    def _position_object(cls, value: Any) -> Any:
        return value if isinstance(value, Mapping) else None

    def to_data(self) -> ClickData:
        element = self.element
        return ClickData(
            element=ElementInfo(
                tag=element.tag,
                id=element.id,
                class_name=element.class_name,
                text=element.text,
            ),
            position=(
                Position(x=self.position.x, y=self.position.y)
                if self.position
                else None
            ),
        )


class ScrollRecord(WireRecord):
    type: Literal["scroll"]
    depth: Percent = 0

    def to_data(self) -> ScrollData:
        return ScrollData(depth=self.depth)


class FormRecord(WireRecord):
    type: Literal["form"]
    form_id: Attribute = Field(None, validation_alias=AliasChoices("formId", "id"))
    action: Url = None

    def to_data(self) -> FormData:
        return FormData(form_id=self.form_id, action=self.action)


class RouteRecord(WireRecord):
    type: Literal["route"]
    from_url: Url = Field(None, validation_alias="from")
    to_url: Url = Field(None, validation_alias="to")

    @model_validator(mode="before")
    @classmethod
    def _nested_route(cls, data: Any) -> Any:
        return _lift(data, "route", ("from", "to"))

    def to_data(self) -> RouteData:
        return RouteData(route=RouteInfo(from_url=self.from_url, to_url=self.to_url))


class UnloadRecord(WireRecord):
    type: Literal["unload"]

    def to_data(self) -> UnloadData:
        return UnloadData()


CUSTOM_KEYS = frozenset(
    {"tenantId", "projectId", "sessionId", "type", "timestamp", "name", "properties", "url"}
)


class CustomRecord(WireRecord):
    type: Literal["custom"]
    name: Name = None
    url: Url = None
    properties: CappedMap = Field(default_factory=dict)
    payload: CappedMap = Field(
        default_factory=dict, description="Unrecognised top-level keys"
    )

    @model_validator(mode="before")
    @classmethod
    def _collect_payload(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        extras = {k: v for k, v in data.items() if k not in CUSTOM_KEYS}
        return {**data, "payload": extras}

    def to_data(self) -> CustomData:
        return CustomData(
            name=self.name,
            url=self.url,
            properties=self.properties,
            payload=self.payload,
        )


AnyRecord = Annotated[
    Union[
        PageviewRecord,
        ClickRecord,
        ScrollRecord,
        FormRecord,
        RouteRecord,
        UnloadRecord,
        CustomRecord,
    ],
    Field(discriminator="type"),
]

RECORD_ADAPTER: TypeAdapter[AnyRecord] = TypeAdapter(AnyRecord)
