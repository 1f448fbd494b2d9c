"""
Best-effort IP geolocation over a chain of providers.

Lookup order for a single IP:
  1. Non-public address → localhost sentinel, no cache, no call.
  2. Cached answer (positive or negative) → returned as-is.
  3. Global per-minute outbound budget exhausted → unknown, cached briefly.
  4. Providers tried in configured order, one attempt each, first valid wins.
  5. Every provider failed → unknown, cached for geo_failure_ttl.

resolve() never raises: geolocation is optional enrichment and a failure
must not lose the view it belongs to.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Optional, Sequence

from config import GeoSettings
from infrastructure.cache.protocol import CacheBackend
from infrastructure.geo.protocol import GeoLookupError, GeoProvider
from schemas.models.click import Location
from shared.crypto import fingerprint
from shared.ip_utils import is_public_ip
from shared.logging import get_logger, hash_ip

log = get_logger(__name__)

API_CALLS_KEY = "geo:api_calls"
API_CALLS_WINDOW_SECONDS = 60


def _cache_key(ip: str) -> str:
    return f"geo:{fingerprint(ip)}"


def _decode(cached: Any) -> Optional[Location]:
    if not isinstance(cached, dict):
        return None
    return Location(
        country_code=str(cached.get("country_code", "")),
        country_name=str(cached.get("country_name", "")),
        city_name=str(cached.get("city_name", "")),
    )


class GeoResolver:
    def __init__(
        self,
        providers: Sequence[GeoProvider],
        cache: CacheBackend,
        settings: GeoSettings,
    ) -> None:
        self._providers = list(providers)
        self._cache = cache
        self._settings = settings

    @property
    def providers(self) -> list[GeoProvider]:
        return list(self._providers)

    async def resolve(self, ip: str) -> Location:
        if not is_public_ip(ip):
            return Location.localhost()

        key = _cache_key(ip)
        cached = _decode(await self._cache.get(key))
        if cached is not None:
            return cached

        for provider in self._providers:
            if provider.remote and not await self._take_api_call():
                log.warning(
                    "geo_rate_limited",
                    provider=provider.name,
                    limit=self._settings.geo_max_calls_per_minute,
                )
                return await self._remember(
                    key, Location.unknown(), self._settings.geo_rate_limited_ttl
                )

            try:
                location = await provider.resolve(ip)
            except GeoLookupError as e:
                log.warning(
                    "geo_provider_failed",
                    provider=provider.name,
                    reason=e.reason,
                    ip_hash=hash_ip(ip),
                )
                continue

            log.debug(
                "geo_resolved",
                provider=provider.name,
                country_code=location.country_code,
            )
            return await self._remember(key, location, self._settings.geo_cache_ttl)

        log.info("geo_unresolved", ip_hash=hash_ip(ip), providers=len(self._providers))
        return await self._remember(
            key, Location.unknown(), self._settings.geo_failure_ttl
        )

    async def _take_api_call(self) -> bool:
        """Count one outbound call against the shared per-minute budget."""
        calls = await self._cache.incr(API_CALLS_KEY, API_CALLS_WINDOW_SECONDS)
        return calls <= self._settings.geo_max_calls_per_minute

    async def _remember(self, key: str, location: Location, ttl: int) -> Location:
        await self._cache.set(key, asdict(location), ttl)
        return location

    async def aclose(self) -> None:
        for provider in self._providers:
            close = getattr(provider, "close", None)
            if close is not None:
                close()
