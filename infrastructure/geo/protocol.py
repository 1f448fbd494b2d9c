"""GeoProvider protocol — the geolocation resolver iterates over these."""

from typing import Protocol

from schemas.models.click import Location


class GeoLookupError(Exception):
    """A provider could not produce a valid location for an IP."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class GeoProvider(Protocol):
    name: str
    # True when resolve() calls out over the network (counts against the quota)
    remote: bool

    async def resolve(self, ip: str) -> Location:
        """Return a validated Location or raise GeoLookupError. Never retries."""
        ...
