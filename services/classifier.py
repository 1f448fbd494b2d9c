"""
Bot / spam classification as an ordered rule list.

Rules are evaluated top to bottom and the first one that fires decides the
status; when none fires the view is human. All bot rules come before all
suspicious rules, so a view can only be "suspicious" once every hard bot
signal has been ruled out.

The only stateful rules are the IP-range checks (cached per IP so the CIDR
scan runs at most once an hour per address) and the per-IP burst counter.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from config import TrackingSettings
from infrastructure.cache.protocol import CacheBackend
from schemas.models.click import BotStatus
from shared import bot_detection
from shared.crypto import fingerprint
from shared.logging import get_logger, hash_ip

log = get_logger(__name__)

BURST_WINDOW_SECONDS = 60


@dataclass(frozen=True)
class ViewSignals:
    """Request facts the rules look at. ``None`` means the header was absent."""

    ip: str
    user_agent: str = ""
    accept: Optional[str] = None
    accept_language: Optional[str] = None
    accept_encoding: Optional[str] = None
    dnt: Optional[str] = None
    referrer_url: str = ""
    via_trusted_proxy: bool = False


@dataclass(frozen=True)
class Classification:
    status: BotStatus
    rule: Optional[str] = None  # name of the rule that fired


Predicate = Callable[[ViewSignals], Awaitable[bool]]


@dataclass(frozen=True)
class Rule:
    name: str
    status: BotStatus
    check: Predicate


class TrafficClassifier:
    def __init__(self, cache: CacheBackend, settings: TrackingSettings) -> None:
        self._cache = cache
        self._settings = settings
        self.rules: list[Rule] = [
            # Hard bot signals
            Rule("bot_user_agent", BotStatus.BOT, self._bot_user_agent),
            Rule("empty_user_agent", BotStatus.BOT, self._empty_user_agent),
            Rule("non_html_accept", BotStatus.BOT, self._non_html_accept),
            Rule("missing_browser_headers", BotStatus.BOT, self._missing_browser_headers),
            Rule("bot_ip", BotStatus.BOT, self._bot_ip),
            # Softer spam signals
            Rule("spam_referrer", BotStatus.SUSPICIOUS, self._spam_referrer),
            Rule("datacenter_ip", BotStatus.SUSPICIOUS, self._datacenter_ip),
            Rule("suspicion_score", BotStatus.SUSPICIOUS, self._suspicion_score),
            Rule("request_burst", BotStatus.SUSPICIOUS, self._request_burst),
        ]

    async def classify(self, signals: ViewSignals) -> Classification:
        for rule in self.rules:
            if await rule.check(signals):
                log.debug(
                    "view_flagged",
                    rule=rule.name,
                    status=rule.status.name.lower(),
                    ip_hash=hash_ip(signals.ip),
                )
                return Classification(rule.status, rule.name)
        return Classification(BotStatus.HUMAN)

    # ── bot rules ────────────────────────────────────────────────────────────

    async def _bot_user_agent(self, signals: ViewSignals) -> bool:
        return bot_detection.match_bot_user_agent(signals.user_agent) is not None

    async def _empty_user_agent(self, signals: ViewSignals) -> bool:
        return not signals.user_agent.strip()

    async def _non_html_accept(self, signals: ViewSignals) -> bool:
        return not bot_detection.accepts_html(signals.accept)

    async def _missing_browser_headers(self, signals: ViewSignals) -> bool:
        missing = bot_detection.count_missing_browser_headers(
            signals.accept_language, signals.accept_encoding
        )
        return missing >= 2

    async def _bot_ip(self, signals: ViewSignals) -> bool:
        return await self._cached_check(
            f"botip:{fingerprint(signals.ip)}",
            self._settings.bot_ip_cache_ttl,
            lambda: bot_detection.is_bot_ip_prefix(signals.ip),
        )

    # ── suspicious rules ─────────────────────────────────────────────────────

    async def _spam_referrer(self, signals: ViewSignals) -> bool:
        return bot_detection.match_spam_referrer(signals.referrer_url) is not None

    async def _datacenter_ip(self, signals: ViewSignals) -> bool:
        # Visitors routed through the trusted proxy arrive from its edge
        # network, which is itself listed as a datacenter.
        if signals.via_trusted_proxy:
            return False
        return await self._cached_check(
            f"dcip:{fingerprint(signals.ip)}",
            self._settings.datacenter_ip_cache_ttl,
            lambda: bot_detection.is_datacenter_range(signals.ip),
        )

    async def _suspicion_score(self, signals: ViewSignals) -> bool:
        score = bot_detection.suspicion_score(
            accept=signals.accept,
            accept_language=signals.accept_language,
            accept_encoding=signals.accept_encoding,
            dnt=signals.dnt,
        )
        return score >= self._settings.suspicious_score_threshold

    async def _request_burst(self, signals: ViewSignals) -> bool:
        count = await self._cache.incr(
            f"rate:{fingerprint(signals.ip)}", BURST_WINDOW_SECONDS
        )
        return count > self._settings.max_requests_per_minute

    async def _cached_check(
        self, key: str, ttl: int, compute: Callable[[], bool]
    ) -> bool:
        cached = await self._cache.get(key)
        if cached is not None:
            return cached == "yes"
        result = compute()
        await self._cache.set(key, "yes" if result else "no", ttl)
        return result
