"""Process-local ClickRepository used when MONGODB_URI is not configured.

Each (post, day) record has its own asyncio.Lock, so concurrent views of the
same record serialise while unrelated records never contend. Query results
match MongoClickRepository row for row, including sort order.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import date, datetime
from typing import Callable, Iterable, Optional

from repositories.protocol import (
    CounterTotals,
    DailyTotals,
    LocationTotals,
    PostTotals,
    UserAgentTotals,
)
from schemas.models.click import (
    PLACEHOLDER_COUNTRY_CODES,
    BotStatus,
    ClassifiedView,
    ClickRecord,
)
from services.aggregation import merge_view, new_record, record_id
from shared.datetime_utils import utc_day


def _in_range(record: ClickRecord, start: Optional[date], end: Optional[date]) -> bool:
    if start is not None and record.date < start.isoformat():
        return False
    if end is not None and record.date > end.isoformat():
        return False
    return True


def _count(record: ClickRecord, human_only: bool) -> int:
    return record.human_clicks if human_only else record.clicks


class InMemoryClickRepository:
    def __init__(self) -> None:
        self._records: dict[str, ClickRecord] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def __len__(self) -> int:
        return len(self._records)

    async def upsert_view(self, view: ClassifiedView) -> ClickRecord:
        _id = record_id(view.post_id, utc_day(view.timestamp))
        async with self._locks[_id]:
            current = self._records.get(_id) or new_record(view)
            record = merge_view(current, view)
            self._records[_id] = record
            return record

    async def get(self, post_id: int, day: date) -> Optional[ClickRecord]:
        return self._records.get(record_id(post_id, day))

    def _select(
        self,
        start: Optional[date],
        end: Optional[date],
        post_id: Optional[int] = None,
        where: Optional[Callable[[ClickRecord], bool]] = None,
    ) -> Iterable[ClickRecord]:
        for record in list(self._records.values()):
            if post_id is not None and record.post_id != post_id:
                continue
            if not _in_range(record, start, end):
                continue
            if where is not None and not where(record):
                continue
            yield record

    async def sum_counters(
        self,
        post_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> CounterTotals:
        totals: dict[str, int] = defaultdict(int)
        posts: set[int] = set()
        for record in self._select(start, end, post_id):
            for field in (
                "clicks",
                "google_clicks",
                "social_clicks",
                "direct_clicks",
                "human_clicks",
                "bot_clicks",
                "suspicious_clicks",
            ):
                totals[field] += getattr(record, field)
            posts.add(record.post_id)
        return CounterTotals(**totals, posts=len(posts))

    async def daily_totals(
        self, start: date, end: date, post_id: Optional[int] = None
    ) -> list[DailyTotals]:
        days: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        posts: dict[str, set[int]] = defaultdict(set)
        for record in self._select(start, end, post_id):
            row = days[record.date]
            row["clicks"] += record.clicks
            row["google_clicks"] += record.google_clicks
            row["social_clicks"] += record.social_clicks
            row["direct_clicks"] += record.direct_clicks
            posts[record.date].add(record.post_id)
        return [
            DailyTotals(date=day, **days[day], posts=len(posts[day]))
            for day in sorted(days)
        ]

    async def _post_totals(
        self, start: date, end: date, human_only: bool
    ) -> list[PostTotals]:
        rows: dict[int, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        for record in self._select(start, end):
            row = rows[record.post_id]
            row["clicks"] += _count(record, human_only)
            row["google_clicks"] += record.google_clicks
            row["social_clicks"] += record.social_clicks
            row["direct_clicks"] += record.direct_clicks
        totals = [
            PostTotals(post_id=post_id, **row)
            for post_id, row in rows.items()
            if row["clicks"] > 0
        ]
        totals.sort(key=lambda t: (-t.clicks, t.post_id))
        return totals

    async def top_posts(
        self, start: date, end: date, limit: int, offset: int, human_only: bool
    ) -> list[PostTotals]:
        totals = await self._post_totals(start, end, human_only)
        return totals[offset : offset + limit]

    async def count_posts(self, start: date, end: date, human_only: bool) -> int:
        return len(await self._post_totals(start, end, human_only))

    def _has_real_location(self, record: ClickRecord) -> bool:
        return bool(record.country_code) and record.country_code not in PLACEHOLDER_COUNTRY_CODES

    async def top_countries(
        self, start: date, end: date, limit: int, human_only: bool
    ) -> list[LocationTotals]:
        clicks: dict[str, int] = defaultdict(int)
        names: dict[str, str] = {}
        for record in self._select(start, end, where=self._has_real_location):
            clicks[record.country_code] += _count(record, human_only)
            names.setdefault(record.country_code, record.country_name)
        rows = [
            LocationTotals(
                country_code=code,
                country_name=names[code] or code,
                clicks=count,
            )
            for code, count in clicks.items()
            if count > 0
        ]
        rows.sort(key=lambda r: (-r.clicks, r.country_code))
        return rows[:limit]

    async def top_cities(
        self, start: date, end: date, limit: int, human_only: bool
    ) -> list[LocationTotals]:
        clicks: dict[tuple[str, str], int] = defaultdict(int)
        names: dict[tuple[str, str], str] = {}
        for record in self._select(
            start,
            end,
            where=lambda r: self._has_real_location(r) and bool(r.city_name),
        ):
            key = (record.city_name, record.country_code)
            clicks[key] += _count(record, human_only)
            names.setdefault(key, record.country_name)
        rows = [
            LocationTotals(
                country_code=country,
                country_name=names[(city, country)] or country,
                city_name=city,
                clicks=count,
            )
            for (city, country), count in clicks.items()
            if count > 0
        ]
        rows.sort(key=lambda r: (-r.clicks, r.city_name))
        return rows[:limit]

    async def bot_user_agents(
        self, start: date, end: date, limit: int
    ) -> list[UserAgentTotals]:
        visits: dict[str, int] = defaultdict(int)
        last_seen: dict[str, Optional[datetime]] = {}
        for record in self._select(
            start,
            end,
            where=lambda r: r.is_bot == BotStatus.BOT and bool(r.user_agent),
        ):
            visits[record.user_agent] += record.bot_clicks
            seen = last_seen.get(record.user_agent)
            if record.last_seen is not None and (seen is None or record.last_seen > seen):
                last_seen[record.user_agent] = record.last_seen
            else:
                last_seen.setdefault(record.user_agent, seen)
        rows = [
            UserAgentTotals(user_agent=ua, visits=count, last_seen=last_seen.get(ua))
            for ua, count in visits.items()
        ]
        rows.sort(key=lambda r: (-r.visits, r.user_agent))
        return rows[:limit]
