"""
Pure merge rules for folding a classified view into its daily record.

Both repositories call merge_view() so the in-memory store and MongoDB
apply exactly the same field semantics:

- clicks, the bucket counter and the classification counter add one
- is_bot, user_agent, referrer_url and last_seen take the latest view
- country/city and post_language keep the first non-empty value, field by
  field, so a later view can add the city an earlier one lacked
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from schemas.models.click import (
    BUCKET_FIELDS,
    STATUS_FIELDS,
    BotStatus,
    ClassifiedView,
    ClickRecord,
    TrafficSource,
)
from shared.datetime_utils import utc_day

STICKY_FIELDS = ("country_code", "country_name", "city_name")


def record_id(post_id: int, day: date) -> str:
    return f"{post_id}:{day.isoformat()}"


def bucket_for(status: BotStatus, source: TrafficSource) -> Optional[TrafficSource]:
    """Bucket a view counts towards, or None.

    Automated traffic still counts towards a recognised search or social
    source, but never falls into "direct" by default.
    """
    if status != BotStatus.HUMAN and source == TrafficSource.DIRECT:
        return None
    return source


def new_record(view: ClassifiedView) -> ClickRecord:
    day = utc_day(view.timestamp)
    return ClickRecord(
        id=record_id(view.post_id, day),
        post_id=view.post_id,
        date=day.isoformat(),
        first_seen=view.timestamp,
    )


def merge_view(record: ClickRecord, view: ClassifiedView) -> ClickRecord:
    """Return a copy of *record* with *view* applied and version bumped."""
    updates: dict = {
        "clicks": record.clicks + 1,
        "is_bot": int(view.bot_status),
        "user_agent": view.user_agent,
        "referrer_url": view.referrer_url,
        "last_seen": view.timestamp,
        "version": record.version + 1,
    }

    status_field = STATUS_FIELDS[BotStatus(view.bot_status)]
    updates[status_field] = getattr(record, status_field) + 1

    if view.bucket is not None:
        bucket_field = BUCKET_FIELDS[TrafficSource(view.bucket)]
        updates[bucket_field] = getattr(record, bucket_field) + 1

    if view.location.is_known:
        # A city only joins a record whose country agrees with it
        same_country = record.country_code in ("", view.location.country_code)
        for field in STICKY_FIELDS:
            value = getattr(view.location, field)
            if value and not getattr(record, field) and same_country:
                updates[field] = value

    if view.post_language and not record.post_language:
        updates["post_language"] = view.post_language

    if record.first_seen is None:
        updates["first_seen"] = view.timestamp

    return record.model_copy(update=updates)
