"""ClickRepository protocol and the row types its queries return.

Day arguments are inclusive ``date`` bounds in UTC; ``None`` leaves that side
of the range open. ``human_only`` queries count ``human_clicks`` instead of
``clicks`` so mixed-traffic days still contribute their human share.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Protocol

from schemas.models.click import ClassifiedView, ClickRecord


@dataclass(frozen=True)
class CounterTotals:
    clicks: int = 0
    google_clicks: int = 0
    social_clicks: int = 0
    direct_clicks: int = 0
    human_clicks: int = 0
    bot_clicks: int = 0
    suspicious_clicks: int = 0
    posts: int = 0  # distinct post ids in range


@dataclass(frozen=True)
class DailyTotals:
    date: str
    clicks: int = 0
    google_clicks: int = 0
    social_clicks: int = 0
    direct_clicks: int = 0
    posts: int = 0


@dataclass(frozen=True)
class PostTotals:
    post_id: int
    clicks: int = 0
    google_clicks: int = 0
    social_clicks: int = 0
    direct_clicks: int = 0


@dataclass(frozen=True)
class LocationTotals:
    country_code: str
    country_name: str = ""
    city_name: str = ""
    clicks: int = 0


@dataclass(frozen=True)
class UserAgentTotals:
    user_agent: str
    visits: int = 0
    last_seen: Optional[datetime] = None


class ClickRepository(Protocol):
    async def upsert_view(self, view: ClassifiedView) -> ClickRecord:
        """Atomically create or update the (post, day) record for *view*."""
        ...

    async def get(self, post_id: int, day: date) -> Optional[ClickRecord]: ...

    async def sum_counters(
        self,
        post_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> CounterTotals: ...

    async def daily_totals(
        self, start: date, end: date, post_id: Optional[int] = None
    ) -> list[DailyTotals]: ...

    async def top_posts(
        self, start: date, end: date, limit: int, offset: int, human_only: bool
    ) -> list[PostTotals]: ...

    async def count_posts(self, start: date, end: date, human_only: bool) -> int: ...

    async def top_countries(
        self, start: date, end: date, limit: int, human_only: bool
    ) -> list[LocationTotals]: ...

    async def top_cities(
        self, start: date, end: date, limit: int, human_only: bool
    ) -> list[LocationTotals]: ...

    async def bot_user_agents(
        self, start: date, end: date, limit: int
    ) -> list[UserAgentTotals]: ...
