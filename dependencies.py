"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. The service graph itself is built once in the
app lifespan and stored on app.state.
"""

from __future__ import annotations

from fastapi import Request

from config import AppSettings
from services.stats import StatsService
from services.tracker import ClickTracker


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


def get_tracker(request: Request) -> ClickTracker:
    return request.app.state.tracker


def get_stats_service(request: Request) -> StatsService:
    return request.app.state.stats
