"""Event schemas: canonical (validated) and enriched (ready to queue).

``EventData`` is a tagged union over the event type; every variant is
strongly typed except ``custom``, which carries opaque maps.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from uuid6 import uuid7


class EventType(str, Enum):
    PAGEVIEW = "pageview"
    CLICK = "click"
    SCROLL = "scroll"
    FORM = "form"
    ROUTE = "route"
    UNLOAD = "unload"
    CUSTOM = "custom"


class PageInfo(BaseModel):
    url: str | None = None
    title: str | None = None
    referrer: str | None = None


class ElementInfo(BaseModel):
    tag: str | None = None
    id: str | None = None
    class_name: str | None = Field(None, alias="class")
    text: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class Position(BaseModel):
    x: int = 0
    y: int = 0


class RouteInfo(BaseModel):
    from_url: str | None = Field(None, alias="from")
    to_url: str | None = Field(None, alias="to")

    model_config = ConfigDict(populate_by_name=True)


class PageviewData(BaseModel):
    type: Literal["pageview"] = "pageview"
    page: PageInfo = Field(default_factory=PageInfo)


class ClickData(BaseModel):
    type: Literal["click"] = "click"
    element: ElementInfo = Field(default_factory=ElementInfo)
    position: Position | None = None


class ScrollData(BaseModel):
    type: Literal["scroll"] = "scroll"
    depth: int = Field(0, ge=0, le=100, description="Percent of page scrolled")


class FormData(BaseModel):
    type: Literal["form"] = "form"
    form_id: str | None = None
    action: str | None = None


class RouteData(BaseModel):
    type: Literal["route"] = "route"
    route: RouteInfo = Field(default_factory=RouteInfo)


class UnloadData(BaseModel):
    type: Literal["unload"] = "unload"


class CustomData(BaseModel):
    type: Literal["custom"] = "custom"
    name: str | None = None
    url: str | None = None
    properties: dict[str, Any] = Field(
        default_factory=dict, description="Client properties, capped, not interpreted"
    )
    payload: dict[str, Any] = Field(
        default_factory=dict, description="Unrecognised top-level keys, capped"
    )


EventData = Annotated[
    Union[
        PageviewData,
        ClickData,
        ScrollData,
        FormData,
        RouteData,
        UnloadData,
        CustomData,
    ],
    Field(discriminator="type"),
]


class CanonicalEvent(BaseModel):
    tracking_id: str = Field(..., description="Tenant's public tracking id")
    session_id: str
    timestamp: int = Field(..., description="Epoch-ms when the event occurred")
    data: EventData

    model_config = ConfigDict(frozen=True)

    @property
    def type(self) -> EventType:
        return EventType(self.data.type)


class UserSnapshot(BaseModel):
    ip: str | None = None
    user_agent: str | None = None
    browser: str = "Unknown"
    os: str = "Unknown"
    device: str = "Unknown"
    is_bot: bool = False
    country: str = "Unknown"
    city: str = "Unknown"
    region: str = "Unknown"

    model_config = ConfigDict(frozen=True)


class EnrichedEvent(CanonicalEvent):
    event_id: UUID = Field(default_factory=uuid7, description="UUID v7 (time-based)")
    tenant_id: str = Field(..., description="Internal tenant id")
    user: UserSnapshot
    received_at: int = Field(..., description="Epoch-ms at ingestion")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_canonical(
        cls,
        event: CanonicalEvent,
        tenant_id: str,
        user: UserSnapshot,
        received_at: int,
    ) -> "EnrichedEvent":
        return cls(
            tracking_id=event.tracking_id,
            session_id=event.session_id,
            timestamp=event.timestamp,
            data=event.data,
            tenant_id=tenant_id,
            user=user,
            received_at=received_at,
        )

    def to_job_payload(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_job_payload(cls, payload: str | bytes) -> "EnrichedEvent":
        return cls.model_validate_json(payload)
