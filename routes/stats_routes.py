"""
Query and report endpoints (read-only).

Per post:
    GET /api/v1/posts/{post_id}/clicks   ?start_date&end_date
    GET /api/v1/posts/{post_id}/sources  ?start_date&end_date
    GET /api/v1/posts/{post_id}/trend

Site-wide reports, all taking start_date/end_date or a named preset:
    GET /api/v1/reports/quality
    GET /api/v1/reports/geography     ?human_only
    GET /api/v1/reports/daily         ?post_id
    GET /api/v1/reports/overview      ?compare
    GET /api/v1/reports/top-content   ?limit&page&human_only
    GET /api/v1/reports/bots          ?limit
"""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Path, Query

from dependencies import get_stats_service
from schemas.dto.requests.stats import DateRangeQuery, ReportQuery, TopContentQuery
from schemas.dto.responses.stats import (
    BotActivity,
    ClicksResponse,
    DailyTrends,
    GeographicBreakdown,
    Overview,
    SourcesResponse,
    TopContent,
    TrafficQuality,
    TrendResponse,
)
from services.stats import StatsService

router = APIRouter(prefix="/api/v1", tags=["stats"])

PostId = Annotated[int, Path(gt=0)]


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


# ── per post ─────────────────────────────────────────────────────────────────


@router.get("/posts/{post_id}/clicks", response_model=ClicksResponse)
async def get_total_clicks(
    post_id: PostId,
    query: Annotated[DateRangeQuery, Query()],
    stats: StatsService = Depends(get_stats_service),
) -> ClicksResponse:
    clicks = await stats.get_total_clicks(post_id, query.start_date, query.end_date)
    return ClicksResponse(
        post_id=post_id,
        clicks=clicks,
        start_date=_iso(query.start_date),
        end_date=_iso(query.end_date),
    )


@router.get("/posts/{post_id}/sources", response_model=SourcesResponse)
async def get_clicks_by_bucket(
    post_id: PostId,
    query: Annotated[DateRangeQuery, Query()],
    stats: StatsService = Depends(get_stats_service),
) -> SourcesResponse:
    breakdown = await stats.get_clicks_by_bucket(post_id, query.start_date, query.end_date)
    return SourcesResponse(
        post_id=post_id,
        start_date=_iso(query.start_date),
        end_date=_iso(query.end_date),
        **breakdown.model_dump(),
    )


@router.get("/posts/{post_id}/trend", response_model=TrendResponse)
async def get_trend(
    post_id: PostId,
    stats: StatsService = Depends(get_stats_service),
) -> TrendResponse:
    trend = await stats.get_trend(post_id)
    return TrendResponse(post_id=post_id, **trend.model_dump())


# ── reports ──────────────────────────────────────────────────────────────────


@router.get("/reports/quality", response_model=TrafficQuality)
async def get_traffic_quality(
    query: Annotated[ReportQuery, Query()],
    stats: StatsService = Depends(get_stats_service),
) -> TrafficQuality:
    return await stats.get_traffic_quality(query.start_date, query.end_date)


@router.get("/reports/geography", response_model=GeographicBreakdown)
async def get_geographic_breakdown(
    query: Annotated[ReportQuery, Query()],
    human_only: bool = True,
    stats: StatsService = Depends(get_stats_service),
) -> GeographicBreakdown:
    return await stats.get_geographic_breakdown(query.start_date, query.end_date, human_only)


@router.get("/reports/daily", response_model=DailyTrends)
async def get_daily_trends(
    query: Annotated[ReportQuery, Query()],
    post_id: Annotated[Optional[int], Query(gt=0)] = None,
    stats: StatsService = Depends(get_stats_service),
) -> DailyTrends:
    return await stats.get_daily_trends(query.start_date, query.end_date, post_id)


@router.get("/reports/overview", response_model=Overview)
async def get_overview(
    query: Annotated[ReportQuery, Query()],
    compare: bool = True,
    stats: StatsService = Depends(get_stats_service),
) -> Overview:
    return await stats.get_overview(query.start_date, query.end_date, compare)


@router.get("/reports/top-content", response_model=TopContent)
async def get_top_content(
    query: Annotated[TopContentQuery, Query()],
    stats: StatsService = Depends(get_stats_service),
) -> TopContent:
    return await stats.get_top_content(
        query.start_date,
        query.end_date,
        limit=query.limit,
        page=query.page,
        human_only=query.human_only,
    )


@router.get("/reports/bots", response_model=BotActivity)
async def get_bot_activity(
    query: Annotated[ReportQuery, Query()],
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    stats: StatsService = Depends(get_stats_service),
) -> BotActivity:
    return await stats.get_bot_activity(query.start_date, query.end_date, limit)
