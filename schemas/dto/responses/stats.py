"""
Response DTOs for the per-post query endpoints and the report endpoints.

Per post:
    ClicksResponse   — GET /api/v1/posts/{post_id}/clicks
    SourcesResponse  — GET /api/v1/posts/{post_id}/sources
    TrendResponse    — GET /api/v1/posts/{post_id}/trend

Reports (site-wide, over a date range):
    TrafficQuality       — GET /api/v1/reports/quality
    GeographicBreakdown  — GET /api/v1/reports/geography
    DailyTrends          — GET /api/v1/reports/daily
    Overview             — GET /api/v1/reports/overview
    TopContent           — GET /api/v1/reports/top-content
    BotActivity          — GET /api/v1/reports/bots

Dates are ISO ``YYYY-MM-DD`` strings (UTC days).
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.dto.responses.common import PaginationMeta


class BucketBreakdown(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    google: int = 0
    social: int = 0
    direct: int = 0


class Trend(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    today: int = 0
    yesterday: int = 0
    change: float = 0.0  # percent, one decimal


class ClicksResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    post_id: int
    clicks: int
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class SourcesResponse(BucketBreakdown):
    post_id: int
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class TrendResponse(Trend):
    post_id: int


class TrafficQuality(BaseModel):
    """Human / bot / suspicious split for the whole site.

    ``quality`` is ``good`` at 80% human or more, ``warning`` from 60%,
    ``bad`` below that.
    """

    model_config = ConfigDict(populate_by_name=True)

    start_date: str
    end_date: str
    total: int
    human: int
    bot: int
    suspicious: int
    human_percentage: float
    bot_percentage: float
    suspicious_percentage: float
    quality: str


class CountryStat(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    country_code: str
    country_name: str
    clicks: int
    percentage: float


class CityStat(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    city_name: str
    country_code: str
    country_name: str
    clicks: int


class GeographicBreakdown(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: str
    end_date: str
    human_only: bool
    total_clicks: int  # across the listed countries
    countries: list[CountryStat]
    cities: list[CityStat]


class DailyTrendPoint(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: str
    total: int = 0
    google: int = 0
    social: int = 0
    direct: int = 0
    unique_posts: int = 0
    avg: float = 0.0  # clicks per post that day


class DailyTrends(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: str
    end_date: str
    post_id: Optional[int] = None
    days: list[DailyTrendPoint]


class PeriodSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: str
    end_date: str
    total_clicks: int = 0
    google: int = 0
    social: int = 0
    direct: int = 0
    human: int = 0
    unique_posts: int = 0
    avg_clicks_per_post: float = 0.0


class Overview(BaseModel):
    """Totals for a range, optionally against the preceding period of equal length."""

    model_config = ConfigDict(populate_by_name=True)

    current: PeriodSummary
    previous: Optional[PeriodSummary] = None
    # Percent change per metric; only present with a comparison period
    changes: Optional[dict[str, float]] = None


class TopContentItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rank: int
    post_id: int
    clicks: int
    google: int = 0
    social: int = 0
    direct: int = 0


class TopContent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: str
    end_date: str
    human_only: bool
    items: list[TopContentItem]
    pagination: PaginationMeta


class BotActivityItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_agent: str
    visits: int
    last_seen: Optional[str] = None  # ISO 8601
    name: str
    type: str
    purpose: str


class BotActivity(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: str
    end_date: str
    total_visits: int
    bots: list[BotActivityItem]
