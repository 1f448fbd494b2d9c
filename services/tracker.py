"""
Ingest pipeline for a single page view.

    validate → resolve IP → classify → dedup/cooldown → referrer bucket
             → geolocate → upsert (post, day) record

Only two outcomes are visible to the caller: ValidationError for malformed
input (raised before any side effect) and StorageError when the record
could not be written. Duplicates and cooldown drops return normally, and the
classification itself is never exposed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from config import TrackingSettings
from errors import ValidationError
from repositories.protocol import ClickRepository
from schemas.models.click import BotStatus, ClassifiedView
from services.aggregation import bucket_for
from services.classifier import TrafficClassifier, ViewSignals
from services.dedup import ViewGate
from services.geolocation import GeoResolver
from shared.datetime_utils import utc_now
from shared.ip_utils import is_valid_ip, resolve_client_ip
from shared.logging import get_logger, hash_ip, should_sample
from shared.referrers import classify_referrer

log = get_logger(__name__)

MAX_USER_AGENT_LENGTH = 512
MAX_POST_LANGUAGE_LENGTH = 16


@dataclass(frozen=True)
class ViewEvent:
    """Raw facts about one page view, as received from the edge.

    ``remote_addr`` is the socket peer; ``connecting_ip`` is the trusted
    proxy's client-IP header. Header fields are ``None`` when absent.
    """

    post_id: int
    remote_addr: Optional[str] = None
    connecting_ip: Optional[str] = None
    user_agent: Optional[str] = None
    referrer_url: Optional[str] = None
    timestamp: Optional[datetime] = None
    accept: Optional[str] = None
    accept_language: Optional[str] = None
    accept_encoding: Optional[str] = None
    dnt: Optional[str] = None
    post_language: Optional[str] = None


class ClickTracker:
    def __init__(
        self,
        classifier: TrafficClassifier,
        gate: ViewGate,
        geo: GeoResolver,
        repository: ClickRepository,
        settings: TrackingSettings,
    ) -> None:
        self._classifier = classifier
        self._gate = gate
        self._geo = geo
        self._repository = repository
        self._settings = settings

    def validate(self, event: ViewEvent) -> None:
        post_id = event.post_id
        if isinstance(post_id, bool) or not isinstance(post_id, int) or post_id <= 0:
            raise ValidationError("post_id must be a positive integer", field="post_id")
        if event.remote_addr and not is_valid_ip(event.remote_addr):
            raise ValidationError("client_ip is not a valid IP address", field="client_ip")

    async def record_view(self, event: ViewEvent) -> None:
        self.validate(event)

        resolved = resolve_client_ip(
            event.remote_addr, event.connecting_ip, self._settings.trusted_proxy_ranges
        )
        user_agent = (event.user_agent or "").strip()[:MAX_USER_AGENT_LENGTH]
        referrer = (event.referrer_url or "").strip()

        classification = await self._classifier.classify(
            ViewSignals(
                ip=resolved.ip,
                user_agent=user_agent,
                accept=event.accept,
                accept_language=event.accept_language,
                accept_encoding=event.accept_encoding,
                dnt=event.dnt,
                referrer_url=referrer,
                via_trusted_proxy=resolved.via_trusted_proxy,
            )
        )

        if not await self._gate.admit(resolved.ip, user_agent, event.post_id):
            return

        source = classify_referrer(referrer, user_agent)
        bucket = bucket_for(classification.status, source.source)
        location = await self._geo.resolve(resolved.ip)

        view = ClassifiedView(
            post_id=event.post_id,
            timestamp=event.timestamp or utc_now(),
            bot_status=classification.status,
            bucket=bucket,
            location=location,
            user_agent=user_agent,
            referrer_url=source.label,
            post_language=(event.post_language or "").strip()[:MAX_POST_LANGUAGE_LENGTH],
        )
        record = await self._repository.upsert_view(view)

        if should_sample("view_recorded"):
            log.info(
                "view_recorded",
                post_id=event.post_id,
                date=record.date,
                status=BotStatus(classification.status).name.lower(),
                rule=classification.rule,
                bucket=bucket.value if bucket else None,
                country_code=location.country_code or None,
                ip_hash=hash_ip(resolved.ip),
            )
