"""
MongoDB-backed ClickRepository (`post_clicks` collection).

Writes use optimistic compare-and-swap on the document `version`:

  1. find_one by the deterministic `_id`
  2. no document  → insert_one; DuplicateKeyError means another writer
                    created it first, so retry
  3. document     → replace_one filtered on {_id, version}; a zero match
                    means another writer got in between, so retry

Retries are bounded by `upsert_max_retries`. Any other PyMongoError, or
running out of attempts, surfaces as StorageError so the caller knows the
view was not committed.

Read queries are aggregation pipelines over the (post_id, date) and date
indexes created by ensure_indexes().
"""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import StorageError
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
from shared.logging import get_logger

log = get_logger(__name__)

COUNTER_FIELDS = (
    "clicks",
    "google_clicks",
    "social_clicks",
    "direct_clicks",
    "human_clicks",
    "bot_clicks",
    "suspicious_clicks",
)
BUCKET_COUNTERS = ("clicks", "google_clicks", "social_clicks", "direct_clicks")


class ClickWriteConflict(Exception):
    """Lost a compare-and-swap race; the write should be retried."""


def _date_match(
    start: Optional[date], end: Optional[date], post_id: Optional[int] = None
) -> dict:
    query: dict[str, Any] = {}
    if post_id is not None:
        query["post_id"] = post_id
    bounds: dict[str, str] = {}
    if start is not None:
        bounds["$gte"] = start.isoformat()
    if end is not None:
        bounds["$lte"] = end.isoformat()
    if bounds:
        query["date"] = bounds
    return query


def _sums(fields: tuple[str, ...]) -> dict:
    return {field: {"$sum": f"${field}"} for field in fields}


def _count_field(human_only: bool) -> str:
    return "human_clicks" if human_only else "clicks"


class MongoClickRepository:
    def __init__(self, collection: AsyncCollection, max_retries: int = 3) -> None:
        self._col = collection
        self._max_retries = max(1, max_retries)

    async def ensure_indexes(self) -> None:
        try:
            await self._col.create_index(
                [("post_id", ASCENDING), ("date", ASCENDING)],
                unique=True,
                name="post_date_unique",
            )
            await self._col.create_index([("date", ASCENDING)], name="date")
        except PyMongoError as e:
            log.error("click_index_creation_failed", error=str(e))
            raise StorageError("Could not create click indexes") from e

    # ── writes ───────────────────────────────────────────────────────────────

    async def upsert_view(self, view: ClassifiedView) -> ClickRecord:
        day = utc_day(view.timestamp)
        for attempt in range(1, self._max_retries + 1):
            try:
                return await self._write_once(view)
            except ClickWriteConflict:
                log.warning(
                    "click_write_conflict",
                    post_id=view.post_id,
                    date=day.isoformat(),
                    attempt=attempt,
                )
            except PyMongoError as e:
                log.error(
                    "click_upsert_error",
                    post_id=view.post_id,
                    date=day.isoformat(),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise StorageError("Click could not be recorded") from e

        log.error(
            "click_upsert_failed",
            post_id=view.post_id,
            date=day.isoformat(),
            attempts=self._max_retries,
        )
        raise StorageError(
            "Click could not be recorded",
            details={"reason": "write_conflict", "attempts": self._max_retries},
        )

    async def _write_once(self, view: ClassifiedView) -> ClickRecord:
        _id = record_id(view.post_id, utc_day(view.timestamp))
        doc = await self._col.find_one({"_id": _id})

        if doc is None:
            record = merge_view(new_record(view), view)
            try:
                await self._col.insert_one(record.to_mongo())
            except DuplicateKeyError as e:
                raise ClickWriteConflict(_id) from e
            return record

        current = ClickRecord.from_mongo(doc)
        record = merge_view(current, view)
        result = await self._col.replace_one(
            {"_id": _id, "version": current.version}, record.to_mongo()
        )
        if result.matched_count == 0:
            raise ClickWriteConflict(_id)
        return record

    # ── reads ────────────────────────────────────────────────────────────────

    async def _aggregate(self, pipeline: list[dict]) -> list[dict]:
        try:
            cursor = await self._col.aggregate(pipeline)
            return await cursor.to_list()
        except PyMongoError as e:
            log.error("click_query_failed", error=str(e), error_type=type(e).__name__)
            raise StorageError("Click statistics are unavailable") from e

    async def get(self, post_id: int, day: date) -> Optional[ClickRecord]:
        try:
            doc = await self._col.find_one({"_id": record_id(post_id, day)})
        except PyMongoError as e:
            log.error("click_query_failed", error=str(e), error_type=type(e).__name__)
            raise StorageError("Click statistics are unavailable") from e
        return ClickRecord.from_mongo(doc)

    async def sum_counters(
        self,
        post_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> CounterTotals:
        pipeline = [
            {"$match": _date_match(start, end, post_id)},
            {
                "$group": {
                    "_id": None,
                    **_sums(COUNTER_FIELDS),
                    "post_ids": {"$addToSet": "$post_id"},
                }
            },
        ]
        rows = await self._aggregate(pipeline)
        if not rows:
            return CounterTotals()
        row = rows[0]
        return CounterTotals(
            **{field: row.get(field, 0) for field in COUNTER_FIELDS},
            posts=len(row.get("post_ids", [])),
        )

    async def daily_totals(
        self, start: date, end: date, post_id: Optional[int] = None
    ) -> list[DailyTotals]:
        pipeline = [
            {"$match": _date_match(start, end, post_id)},
            {
                "$group": {
                    "_id": "$date",
                    **_sums(BUCKET_COUNTERS),
                    "post_ids": {"$addToSet": "$post_id"},
                }
            },
            {"$sort": {"_id": ASCENDING}},
        ]
        return [
            DailyTotals(
                date=row["_id"],
                **{field: row.get(field, 0) for field in BUCKET_COUNTERS},
                posts=len(row.get("post_ids", [])),
            )
            for row in await self._aggregate(pipeline)
        ]

    async def top_posts(
        self, start: date, end: date, limit: int, offset: int, human_only: bool
    ) -> list[PostTotals]:
        count_field = _count_field(human_only)
        pipeline = [
            {"$match": _date_match(start, end)},
            {
                "$group": {
                    "_id": "$post_id",
                    "clicks": {"$sum": f"${count_field}"},
                    **_sums(("google_clicks", "social_clicks", "direct_clicks")),
                }
            },
            {"$match": {"clicks": {"$gt": 0}}},
            {"$sort": {"clicks": DESCENDING, "_id": ASCENDING}},
            {"$skip": offset},
            {"$limit": limit},
        ]
        return [
            PostTotals(
                post_id=row["_id"],
                clicks=row["clicks"],
                google_clicks=row.get("google_clicks", 0),
                social_clicks=row.get("social_clicks", 0),
                direct_clicks=row.get("direct_clicks", 0),
            )
            for row in await self._aggregate(pipeline)
        ]

    async def count_posts(self, start: date, end: date, human_only: bool) -> int:
        pipeline = [
            {"$match": _date_match(start, end)},
            {"$group": {"_id": "$post_id", "clicks": {"$sum": f"${_count_field(human_only)}"}}},
            {"$match": {"clicks": {"$gt": 0}}},
            {"$count": "posts"},
        ]
        rows = await self._aggregate(pipeline)
        return rows[0]["posts"] if rows else 0

    async def top_countries(
        self, start: date, end: date, limit: int, human_only: bool
    ) -> list[LocationTotals]:
        pipeline = [
            {
                "$match": {
                    **_date_match(start, end),
                    "country_code": {"$nin": ["", *PLACEHOLDER_COUNTRY_CODES]},
                }
            },
            {
                "$group": {
                    "_id": "$country_code",
                    "country_name": {"$first": "$country_name"},
                    "clicks": {"$sum": f"${_count_field(human_only)}"},
                }
            },
            {"$match": {"clicks": {"$gt": 0}}},
            {"$sort": {"clicks": DESCENDING, "_id": ASCENDING}},
            {"$limit": limit},
        ]
        return [
            LocationTotals(
                country_code=row["_id"],
                country_name=row.get("country_name") or row["_id"],
                clicks=row["clicks"],
            )
            for row in await self._aggregate(pipeline)
        ]

    async def top_cities(
        self, start: date, end: date, limit: int, human_only: bool
    ) -> list[LocationTotals]:
        pipeline = [
            {
                "$match": {
                    **_date_match(start, end),
                    "country_code": {"$nin": ["", *PLACEHOLDER_COUNTRY_CODES]},
                    "city_name": {"$ne": ""},
                }
            },
            {
                "$group": {
                    "_id": {"city": "$city_name", "country": "$country_code"},
                    "country_name": {"$first": "$country_name"},
                    "clicks": {"$sum": f"${_count_field(human_only)}"},
                }
            },
            {"$match": {"clicks": {"$gt": 0}}},
            {"$sort": {"clicks": DESCENDING, "_id.city": ASCENDING}},
            {"$limit": limit},
        ]
        return [
            LocationTotals(
                country_code=row["_id"]["country"],
                country_name=row.get("country_name") or row["_id"]["country"],
                city_name=row["_id"]["city"],
                clicks=row["clicks"],
            )
            for row in await self._aggregate(pipeline)
        ]

    async def bot_user_agents(
        self, start: date, end: date, limit: int
    ) -> list[UserAgentTotals]:
        pipeline = [
            {
                "$match": {
                    **_date_match(start, end),
                    "is_bot": int(BotStatus.BOT),
                    "user_agent": {"$ne": ""},
                }
            },
            {
                "$group": {
                    "_id": "$user_agent",
                    "visits": {"$sum": "$bot_clicks"},
                    "last_seen": {"$max": "$last_seen"},
                }
            },
            {"$sort": {"visits": DESCENDING, "_id": ASCENDING}},
            {"$limit": limit},
        ]
        return [
            UserAgentTotals(
                user_agent=row["_id"],
                visits=row["visits"],
                last_seen=row.get("last_seen"),
            )
            for row in await self._aggregate(pipeline)
        ]
