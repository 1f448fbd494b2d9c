"""
Click record document model and the value types flowing into it.

Maps to the `post_clicks` MongoDB collection: one document per post per UTC
day. The `_id` is "<post_id>:<YYYY-MM-DD>", so the (post, day) uniqueness
invariant is enforced by the primary key itself and a racing second insert
fails with DuplicateKeyError instead of creating a twin row.

`version` is bumped on every write and used as the compare-and-swap token
by the Mongo repository.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional

from pydantic import ConfigDict

from schemas.models.base import MongoBaseModel


class BotStatus(IntEnum):
    HUMAN = 0
    BOT = 1
    SUSPICIOUS = 2


class TrafficSource(str, Enum):
    SEARCH = "search"
    SOCIAL = "social"
    DIRECT = "direct"


# Counter field incremented for each bucket / classification
BUCKET_FIELDS: dict[TrafficSource, str] = {
    TrafficSource.SEARCH: "google_clicks",
    TrafficSource.SOCIAL: "social_clicks",
    TrafficSource.DIRECT: "direct_clicks",
}

STATUS_FIELDS: dict[BotStatus, str] = {
    BotStatus.HUMAN: "human_clicks",
    BotStatus.BOT: "bot_clicks",
    BotStatus.SUSPICIOUS: "suspicious_clicks",
}

# Country codes that mean "no real location" in stored records
PLACEHOLDER_COUNTRY_CODES = ("XX", "LO", "ZZ")


@dataclass(frozen=True)
class Location:
    country_code: str = ""
    country_name: str = ""
    city_name: str = ""

    @classmethod
    def unknown(cls) -> "Location":
        return cls()

    @classmethod
    def localhost(cls) -> "Location":
        return cls("LO", "Localhost", "Localhost")

    @property
    def is_known(self) -> bool:
        return bool(self.country_code)


@dataclass(frozen=True)
class ClassifiedView:
    """A view that passed classification and dedup, ready to aggregate."""

    post_id: int
    timestamp: datetime
    bot_status: BotStatus
    bucket: Optional[TrafficSource]
    location: Location
    user_agent: str = ""
    referrer_url: str = ""
    post_language: str = ""


class ClickRecord(MongoBaseModel):
    """Document model for the `post_clicks` collection."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    post_id: int
    date: str  # UTC day, YYYY-MM-DD

    clicks: int = 0
    google_clicks: int = 0
    social_clicks: int = 0
    direct_clicks: int = 0

    # Classification of the most recent view merged into this record
    is_bot: BotStatus = BotStatus.HUMAN
    human_clicks: int = 0
    bot_clicks: int = 0
    suspicious_clicks: int = 0

    # First non-empty value wins
    country_code: str = ""
    country_name: str = ""
    city_name: str = ""
    post_language: str = ""

    # Last writer wins
    user_agent: str = ""
    referrer_url: str = ""

    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    version: int = 0

    @property
    def bucket_total(self) -> int:
        return self.google_clicks + self.social_clicks + self.direct_clicks
