"""Attach tenant identity, device classification and coarse geo to events.

Only tenant resolution can reject an event. Device and geo lookups degrade
to fixed "Unknown" values and never raise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from shared.utils.clock import now_ms
from trackline.core.errors import TenantRejected
from trackline.infrastructure.lookups.device import DeviceInfo, parse_user_agent
from trackline.infrastructure.lookups.geo import GeoLookup
from trackline.infrastructure.redis.tenants import Tenant, TenantDirectory
from trackline.schemas.events import CanonicalEvent, EnrichedEvent, UserSnapshot


@dataclass
class EnrichmentContext:
    """Per-request state: one client snapshot and a tenant cache for the batch."""

    user: UserSnapshot
    received_at: int
    tenants: dict[str, Tenant | None] = field(default_factory=dict)


class Enricher:
    def __init__(
        self,
        tenants: TenantDirectory,
        geo: GeoLookup,
        device_parser: Callable[[str | None], DeviceInfo] = parse_user_agent,
    ):
        self.tenants = tenants
        self.geo = geo
        self.device_parser = device_parser

    async def context_for(
        self, ip: str | None, user_agent: str | None
    ) -> EnrichmentContext:
        device = self.device_parser(user_agent)
        location = await self.geo.lookup(ip)
        user = UserSnapshot(
            ip=ip,
            user_agent=user_agent,
            browser=device.browser,
            os=device.os,
            device=device.device,
            is_bot=device.is_bot,
            country=location.country,
            city=location.city,
            region=location.region,
        )
        return EnrichmentContext(user=user, received_at=now_ms())

    async def _tenant(
        self, tracking_id: str, context: EnrichmentContext
    ) -> Tenant | None:
        if tracking_id not in context.tenants:
            context.tenants[tracking_id] = await self.tenants.get_active(tracking_id)
        return context.tenants[tracking_id]

    async def enrich(
        self, event: CanonicalEvent, context: EnrichmentContext
    ) -> EnrichedEvent:
        tenant = await self._tenant(event.tracking_id, context)
        if tenant is None:
            raise TenantRejected("unknown or inactive tenant")
        if tenant.exclude_bots and context.user.is_bot:
            raise TenantRejected("bot traffic")
        return EnrichedEvent.from_canonical(
            event,
            tenant_id=tenant.id,
            user=context.user,
            received_at=context.received_at,
        )
