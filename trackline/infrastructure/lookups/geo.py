"""Coarse IP geolocation over HTTP with a bounded timeout."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass

import httpx

from trackline.core.logger import get_logger
from trackline.core.metrics import LOOKUP_FAILURES

logger = get_logger("lookups.geo")


@dataclass(frozen=True)
class GeoInfo:
    country: str
    city: str
    region: str
    latitude: float | None = None
    longitude: float | None = None


LOCAL_GEO = GeoInfo(country="Local", city="Local", region="Local")
UNKNOWN_GEO = GeoInfo(country="Unknown", city="Unknown", region="Unknown")


def is_local_address(ip: str | None) -> bool:
    if not ip or ip == "localhost":
        return True
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return (
        address.is_loopback
        or address.is_private
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
    )


class GeoLookup:
    """Resolve an IP to country/city/region; never raises.

    ``client`` is owned by the caller so one connection pool is shared by all
    requests of the ingestion process.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str, timeout: float):
        self.client = client
        self.base_url = base_url
        self.timeout = timeout

    async def lookup(self, ip: str | None) -> GeoInfo:
        if is_local_address(ip):
            return LOCAL_GEO
        try:
            response = await self.client.get(
                f"{self.base_url}{ip}", timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
            if not isinstance(data, dict) or data.get("success") is False:
                raise ValueError("geo service returned no result")
        except (httpx.HTTPError, ValueError) as exc:
            LOOKUP_FAILURES.labels(lookup="geo").inc()
            logger.warning(
                "geo_lookup_failed",
                extra={"ip": ip, "error_type": type(exc).__name__, "error": str(exc)},
            )
            return UNKNOWN_GEO

        return GeoInfo(
            country=data.get("country") or "Unknown",
            city=data.get("city") or "Unknown",
            region=data.get("region") or "Unknown",
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
        )
