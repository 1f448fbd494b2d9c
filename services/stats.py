"""
Read side: per-post queries and site-wide reports over click records.

Every method is a thin shaping layer over ClickRepository queries, so the
numbers are the same whichever store backs the repository. Percentages are
rounded to one decimal; ranges are inclusive UTC days.
"""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Optional

from repositories.protocol import ClickRepository, CounterTotals
from schemas.dto.responses.common import PaginationMeta
from schemas.dto.responses.stats import (
    BotActivity,
    BotActivityItem,
    BucketBreakdown,
    CityStat,
    CountryStat,
    DailyTrendPoint,
    DailyTrends,
    GeographicBreakdown,
    Overview,
    PeriodSummary,
    TopContent,
    TopContentItem,
    TrafficQuality,
    Trend,
)
from shared.bot_detection import describe_bot
from shared.datetime_utils import comparison_range, percent_change, utc_day
from shared.logging import get_logger, should_sample

log = get_logger(__name__)

TOP_COUNTRIES = 10
TOP_CITIES = 15
QUALITY_GOOD = 80.0
QUALITY_WARNING = 60.0


def _percentage(part: int, total: int) -> float:
    return round(part / total * 100, 1) if total else 0.0


def _quality_class(human_percentage: float) -> str:
    if human_percentage >= QUALITY_GOOD:
        return "good"
    if human_percentage >= QUALITY_WARNING:
        return "warning"
    return "bad"


def _summary(start: date, end: date, totals: CounterTotals) -> PeriodSummary:
    return PeriodSummary(
        start_date=start.isoformat(),
        end_date=end.isoformat(),
        total_clicks=totals.clicks,
        google=totals.google_clicks,
        social=totals.social_clicks,
        direct=totals.direct_clicks,
        human=totals.human_clicks,
        unique_posts=totals.posts,
        avg_clicks_per_post=round(totals.clicks / totals.posts, 1) if totals.posts else 0.0,
    )


class StatsService:
    def __init__(self, repository: ClickRepository) -> None:
        self._repository = repository

    # ── per-post queries ─────────────────────────────────────────────────────

    async def get_total_clicks(
        self,
        post_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> int:
        totals = await self._repository.sum_counters(post_id=post_id, start=start, end=end)
        if should_sample("stats_query"):
            log.debug("stats_query", query="total_clicks", post_id=post_id)
        return totals.clicks

    async def get_clicks_by_bucket(
        self,
        post_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> BucketBreakdown:
        totals = await self._repository.sum_counters(post_id=post_id, start=start, end=end)
        return BucketBreakdown(
            google=totals.google_clicks,
            social=totals.social_clicks,
            direct=totals.direct_clicks,
        )

    async def get_trend(self, post_id: int, today: Optional[date] = None) -> Trend:
        """Clicks today vs. yesterday (UTC) for one post."""
        if today is None:
            today = utc_day()
        yesterday = today - timedelta(days=1)
        current = await self._repository.get(post_id, today)
        previous = await self._repository.get(post_id, yesterday)
        today_clicks = current.clicks if current else 0
        yesterday_clicks = previous.clicks if previous else 0
        return Trend(
            today=today_clicks,
            yesterday=yesterday_clicks,
            change=percent_change(today_clicks, yesterday_clicks),
        )

    # ── reports ──────────────────────────────────────────────────────────────

    async def get_traffic_quality(self, start: date, end: date) -> TrafficQuality:
        totals = await self._repository.sum_counters(start=start, end=end)
        classified = totals.human_clicks + totals.bot_clicks + totals.suspicious_clicks
        human_percentage = _percentage(totals.human_clicks, classified)
        return TrafficQuality(
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            total=classified,
            human=totals.human_clicks,
            bot=totals.bot_clicks,
            suspicious=totals.suspicious_clicks,
            human_percentage=human_percentage,
            bot_percentage=_percentage(totals.bot_clicks, classified),
            suspicious_percentage=_percentage(totals.suspicious_clicks, classified),
            # No traffic at all is not bad traffic
            quality=_quality_class(human_percentage) if classified else "good",
        )

    async def get_geographic_breakdown(
        self, start: date, end: date, human_only: bool = True
    ) -> GeographicBreakdown:
        countries = await self._repository.top_countries(start, end, TOP_COUNTRIES, human_only)
        cities = await self._repository.top_cities(start, end, TOP_CITIES, human_only)
        total = sum(row.clicks for row in countries)
        return GeographicBreakdown(
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            human_only=human_only,
            total_clicks=total,
            countries=[
                CountryStat(
                    country_code=row.country_code,
                    country_name=row.country_name,
                    clicks=row.clicks,
                    percentage=_percentage(row.clicks, total),
                )
                for row in countries
            ],
            cities=[
                CityStat(
                    city_name=row.city_name,
                    country_code=row.country_code,
                    country_name=row.country_name,
                    clicks=row.clicks,
                )
                for row in cities
            ],
        )

    async def get_daily_trends(
        self, start: date, end: date, post_id: Optional[int] = None
    ) -> DailyTrends:
        """One point per day in range; days without records are zero-filled."""
        rows = {row.date: row for row in await self._repository.daily_totals(start, end, post_id)}
        days: list[DailyTrendPoint] = []
        day = start
        while day <= end:
            row = rows.get(day.isoformat())
            if row is None:
                days.append(DailyTrendPoint(date=day.isoformat()))
            else:
                days.append(
                    DailyTrendPoint(
                        date=row.date,
                        total=row.clicks,
                        google=row.google_clicks,
                        social=row.social_clicks,
                        direct=row.direct_clicks,
                        unique_posts=row.posts,
                        avg=round(row.clicks / row.posts, 1) if row.posts else 0.0,
                    )
                )
            day += timedelta(days=1)
        return DailyTrends(
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            post_id=post_id,
            days=days,
        )

    async def get_overview(self, start: date, end: date, compare: bool = True) -> Overview:
        current = _summary(start, end, await self._repository.sum_counters(start=start, end=end))
        if not compare:
            return Overview(current=current)

        prev_start, prev_end = comparison_range(start, end)
        previous = _summary(
            prev_start,
            prev_end,
            await self._repository.sum_counters(start=prev_start, end=prev_end),
        )
        changes = {
            metric: percent_change(getattr(current, metric), getattr(previous, metric))
            for metric in (
                "total_clicks",
                "google",
                "social",
                "direct",
                "human",
                "unique_posts",
                "avg_clicks_per_post",
            )
        }
        return Overview(current=current, previous=previous, changes=changes)

    async def get_top_content(
        self,
        start: date,
        end: date,
        limit: int = 20,
        page: int = 1,
        human_only: bool = True,
    ) -> TopContent:
        offset = (page - 1) * limit
        total = await self._repository.count_posts(start, end, human_only)
        rows = await self._repository.top_posts(start, end, limit, offset, human_only)
        pages = math.ceil(total / limit) if total else 0
        return TopContent(
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            human_only=human_only,
            items=[
                TopContentItem(
                    rank=offset + index,
                    post_id=row.post_id,
                    clicks=row.clicks,
                    google=row.google_clicks,
                    social=row.social_clicks,
                    direct=row.direct_clicks,
                )
                for index, row in enumerate(rows, start=1)
            ],
            pagination=PaginationMeta(
                page=page,
                page_size=limit,
                total=total,
                pages=pages,
                has_next=page < pages,
            ),
        )

    async def get_bot_activity(self, start: date, end: date, limit: int = 10) -> BotActivity:
        rows = await self._repository.bot_user_agents(start, end, limit)
        bots = []
        for row in rows:
            profile = describe_bot(row.user_agent)
            bots.append(
                BotActivityItem(
                    user_agent=row.user_agent,
                    visits=row.visits,
                    last_seen=row.last_seen.isoformat() if row.last_seen else None,
                    name=profile.name,
                    type=profile.type,
                    purpose=profile.purpose,
                )
            )
        return BotActivity(
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            total_visits=sum(bot.visits for bot in bots),
            bots=bots,
        )
