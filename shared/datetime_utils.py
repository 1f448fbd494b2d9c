"""
Date/time parsing and day-bucket utilities — framework-agnostic.

Click records roll up by UTC calendar day. Every conversion from a view
timestamp to a record day goes through ``utc_day`` so ingest and the report
queries agree on where a day starts.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

DATE_PRESETS = frozenset(
    {
        "today",
        "yesterday",
        "last_7_days",
        "last_30_days",
        "last_90_days",
        "this_month",
        "last_month",
    }
)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a date/time value into a timezone-aware UTC datetime.

    Accepts:
    - ``None`` → ``None``
    - ``int`` / ``float`` → treated as Unix epoch seconds
    - ``str`` ending in ``"Z"`` → converted to ``+00:00`` before parsing
    - Any ISO 8601 string (``datetime.fromisoformat``)

    Naive datetimes (no ``tzinfo``) are assumed to be UTC.

    Returns:
        A timezone-aware ``datetime`` in UTC, or ``None`` if *value* is ``None``
        or cannot be parsed.
    """
    if value is None:
        return None
    try:
        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, (int, float)):
            return datetime.fromtimestamp(int(value), tz=timezone.utc)
        else:
            raw = str(value)
            if raw.endswith("Z"):
                raw = raw[:-1] + "+00:00"
            dt = datetime.fromisoformat(raw)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, OSError, OverflowError):
        return None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_day(ts: Optional[datetime] = None) -> date:
    """Calendar day (UTC) that *ts* belongs to; today when *ts* is None."""
    if ts is None:
        ts = utc_now()
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).date()


def resolve_date_range(preset: str, today: Optional[date] = None) -> tuple[date, date]:
    """Turn a named preset into an inclusive ``(start, end)`` day range.

    Raises:
        ValueError: for an unknown preset name.
    """
    if today is None:
        today = utc_day()

    if preset == "today":
        return today, today
    if preset == "yesterday":
        yesterday = today - timedelta(days=1)
        return yesterday, yesterday
    if preset == "last_7_days":
        return today - timedelta(days=6), today
    if preset == "last_30_days":
        return today - timedelta(days=29), today
    if preset == "last_90_days":
        return today - timedelta(days=89), today
    if preset == "this_month":
        return today.replace(day=1), today
    if preset == "last_month":
        last_day = today.replace(day=1) - timedelta(days=1)
        return last_day.replace(day=1), last_day
    raise ValueError(f"unknown date preset: {preset!r}")


def comparison_range(start: date, end: date) -> tuple[date, date]:
    """The period of equal length that ends the day before *start*."""
    length = end - start
    compare_end = start - timedelta(days=1)
    return compare_end - length, compare_end


def percent_change(current: float, previous: float) -> float:
    """Relative change in percent, rounded to one decimal.

    Growth from zero is reported as 100%, zero to zero as 0%.
    """
    if previous > 0:
        return round((current - previous) / previous * 100, 1)
    return 100.0 if current > 0 else 0.0

