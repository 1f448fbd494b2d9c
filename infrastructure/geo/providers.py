"""HTTP IP-geolocation providers.

Each provider knows its endpoint and how to read its JSON; everything else
(timeouts, transport errors, validation) is shared in JsonGeoProvider.
Free-tier limits at the time of writing:

- ip-api.com   45 requests/minute
- ipapi.co     1000 requests/day
- ipwhois.app  10000 requests/month
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from infrastructure.geo.protocol import GeoLookupError
from infrastructure.http_client import HttpClient
from schemas.models.click import Location
from shared.validators import validate_location


class JsonGeoProvider(ABC):
    name: str = "json"
    remote: bool = True

    def __init__(self, http_client: HttpClient) -> None:
        self._http = http_client

    @abstractmethod
    def url_for(self, ip: str) -> str: ...

    @abstractmethod
    def parse(self, data: dict[str, Any]) -> Optional[dict[str, Any]]:
        """Map the provider payload to country_code/country_name/city_name.

        Returns None when the payload reports a failed lookup.
        """

    async def resolve(self, ip: str) -> Location:
        try:
            response = await self._http.get(self.url_for(ip))
        except httpx.TimeoutException as e:
            raise GeoLookupError(self.name, "timeout") from e
        except httpx.HTTPError as e:
            raise GeoLookupError(self.name, f"transport error: {e}") from e

        if response.status_code != 200:
            raise GeoLookupError(self.name, f"status {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise GeoLookupError(self.name, "invalid json") from e
        if not isinstance(data, dict):
            raise GeoLookupError(self.name, "unexpected payload")

        raw = self.parse(data)
        if raw is None:
            raise GeoLookupError(self.name, "lookup failed")

        location = validate_location(raw)
        if location is None:
            raise GeoLookupError(self.name, "invalid location data")
        return location


class IpApiProvider(JsonGeoProvider):
    """ip-api.com — no API key required. The free tier is served over plain HTTP only."""

    name = "ip-api"

    def url_for(self, ip: str) -> str:
        return f"http://ip-api.com/json/{ip}?fields=status,countryCode,country,city"

    def parse(self, data: dict[str, Any]) -> Optional[dict[str, Any]]:
        if data.get("status") != "success":
            return None
        return {
            "country_code": data.get("countryCode"),
            "country_name": data.get("country"),
            "city_name": data.get("city"),
        }


class IpapiCoProvider(JsonGeoProvider):
    """ipapi.co — reports errors with an ``error`` flag in a 200 body."""

    name = "ipapi"

    def url_for(self, ip: str) -> str:
        return f"https://ipapi.co/{ip}/json/"

    def parse(self, data: dict[str, Any]) -> Optional[dict[str, Any]]:
        if data.get("error") or "country_code" not in data:
            return None
        return {
            "country_code": data.get("country_code"),
            "country_name": data.get("country_name"),
            "city_name": data.get("city"),
        }


class IpWhoisProvider(JsonGeoProvider):
    """ipwhois.app — boolean ``success`` flag."""

    name = "ipwhois"

    def url_for(self, ip: str) -> str:
        return f"https://ipwhois.app/json/{ip}"

    def parse(self, data: dict[str, Any]) -> Optional[dict[str, Any]]:
        if data.get("success") is not True:
            return None
        return {
            "country_code": data.get("country_code"),
            "country_name": data.get("country"),
            "city_name": data.get("city"),
        }


HTTP_PROVIDERS: dict[str, type[JsonGeoProvider]] = {
    IpApiProvider.name: IpApiProvider,
    IpapiCoProvider.name: IpapiCoProvider,
    IpWhoisProvider.name: IpWhoisProvider,
}
