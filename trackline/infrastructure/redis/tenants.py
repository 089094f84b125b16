"""Read-only tenant (project) lookup by public tracking id.

Tenant records are written by the project service as Redis hashes:
``tenant:{tracking_id}`` -> ``{"id": ..., "active": "1", "exclude_bots": "1"}``.
"""

from __future__ import annotations

from dataclasses import dataclass

from redis.asyncio import Redis

from shared.constants import RedisKeys

_TRUE = {"1", "true", "yes"}


@dataclass(frozen=True)
class Tenant:
    id: str
    tracking_id: str
    active: bool
    exclude_bots: bool = True


class TenantDirectory:
    def __init__(self, redis: Redis):
        self.r = redis

    async def get(self, tracking_id: str) -> Tenant | None:
        data = await self.r.hgetall(RedisKeys.tenant_key(tracking_id))
        if not data or not data.get("id"):
            return None
        return Tenant(
            id=data["id"],
            tracking_id=tracking_id,
            active=data.get("active", "1").lower() in _TRUE,
            exclude_bots=data.get("exclude_bots", "1").lower() in _TRUE,
        )

    async def get_active(self, tracking_id: str) -> Tenant | None:
        """Return the tenant only if it exists and is active."""
        tenant = await self.get(tracking_id)
        if tenant is None or not tenant.active:
            return None
        return tenant
