"""
Request DTOs for the query and report endpoints.

DateRangeQuery   — optional start_date/end_date for per-post queries
ReportQuery      — GET /api/v1/reports/*  (explicit range or a named preset)
TopContentQuery  — GET /api/v1/reports/top-content (adds pagination)

Dates are accepted as ISO 8601 dates or datetimes and reduced to UTC days.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shared.datetime_utils import (
    DATE_PRESETS,
    parse_datetime,
    resolve_date_range,
    utc_day,
)

DEFAULT_PRESET = "last_30_days"


def _parse_day(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError("must be an ISO 8601 date")
    return utc_day(parsed)


class DateRangeQuery(BaseModel):
    """Optional inclusive day bounds; either side may be open."""

    model_config = ConfigDict(populate_by_name=True)

    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _validate_day(cls, v: Any) -> Optional[date]:
        return _parse_day(v)

    @model_validator(mode="after")
    def _check_order(self) -> "DateRangeQuery":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class ReportQuery(BaseModel):
    """Report range: explicit start/end dates win over ``preset``.

    With neither, the last 30 days are used. A single explicit bound is
    completed from the preset range.
    """

    model_config = ConfigDict(populate_by_name=True)

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    preset: Optional[str] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _validate_day(cls, v: Any) -> Optional[date]:
        return _parse_day(v)

    @field_validator("preset", mode="after")
    @classmethod
    def _validate_preset(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if v not in DATE_PRESETS:
            raise ValueError(f"preset must be one of: {', '.join(sorted(DATE_PRESETS))}")
        return v

    @model_validator(mode="after")
    def _resolve_range(self) -> "ReportQuery":
        preset_start, preset_end = resolve_date_range(self.preset or DEFAULT_PRESET)
        if self.start_date is None:
            self.start_date = preset_start
        if self.end_date is None:
            self.end_date = preset_end
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class TopContentQuery(ReportQuery):
    limit: int = Field(default=20, ge=1, le=100)
    page: int = Field(default=1, ge=1)
    human_only: bool = True
