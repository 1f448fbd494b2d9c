"""Local GeoLite2 City lookups as a GeoProvider.

geoip2 reads from a local .mmdb file and is sync, so calls are wrapped in
asyncio.to_thread() to avoid blocking the event loop. The reader is loaded
lazily on first use (double-checked locking with asyncio.Lock); a missing or
corrupt database makes every lookup fail over to the next provider.
"""

import asyncio
from typing import Optional

import geoip2.database
import geoip2.errors
import maxminddb

from infrastructure.geo.protocol import GeoLookupError
from schemas.models.click import Location
from shared.logging import get_logger
from shared.validators import validate_location

log = get_logger(__name__)


class MaxMindProvider:
    name = "maxmind"
    remote = False

    def __init__(self, city_db_path: str) -> None:
        self._city_db_path = city_db_path
        self._reader: Optional[geoip2.database.Reader] = None
        self._loaded = False
        self._lock = asyncio.Lock()

    async def _get_reader(self) -> Optional[geoip2.database.Reader]:
        if not self._loaded:
            async with self._lock:
                if not self._loaded:
                    try:
                        self._reader = await asyncio.to_thread(
                            geoip2.database.Reader, self._city_db_path
                        )
                    except (OSError, maxminddb.InvalidDatabaseError) as e:
                        log.warning(
                            "geoip_city_db_unavailable",
                            path=self._city_db_path,
                            error=str(e),
                            error_type=type(e).__name__,
                        )
                        self._reader = None
                    self._loaded = True
        return self._reader

    async def resolve(self, ip: str) -> Location:
        reader = await self._get_reader()
        if reader is None:
            raise GeoLookupError(self.name, "database unavailable")
        try:
            result = await asyncio.to_thread(reader.city, ip)
        except geoip2.errors.AddressNotFoundError as e:
            raise GeoLookupError(self.name, "address not found") from e
        except (ValueError, maxminddb.InvalidDatabaseError) as e:
            raise GeoLookupError(self.name, str(e)) from e

        location = validate_location(
            {
                "country_code": result.country.iso_code,
                "country_name": result.country.name,
                "city_name": result.city.name,
            }
        )
        if location is None:
            raise GeoLookupError(self.name, "invalid location data")
        return location

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
