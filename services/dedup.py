"""
View deduplication and per-post cooldown.

Both checks are a single atomic insert-if-absent on the cache, so two
concurrent identical views can never both be admitted. A dropped view is
silent: no error, no counter, only a sampled debug log.
"""

from __future__ import annotations

from config import TrackingSettings
from infrastructure.cache.protocol import CacheBackend
from shared.crypto import fingerprint
from shared.logging import get_logger, hash_ip, should_sample

log = get_logger(__name__)

VIEW_PREFIX = "view:"
COOLDOWN_PREFIX = "cooldown:"
# Keys a process-local cache must never evict while they are live
DEDUP_PREFIXES = (VIEW_PREFIX, COOLDOWN_PREFIX)


class ViewGate:
    def __init__(self, cache: CacheBackend, settings: TrackingSettings) -> None:
        self._cache = cache
        self._settings = settings

    async def claim_view(self, ip: str, user_agent: str, post_id: int) -> bool:
        """Claim the (visitor, post) dedup slot. False when already claimed."""
        key = f"{VIEW_PREFIX}{post_id}:{fingerprint(ip, user_agent)}"
        return await self._cache.add(key, 1, self._settings.duplicate_view_window)

    async def pass_cooldown(self, ip: str, post_id: int) -> bool:
        """Start the per-IP cooldown for a post. False while one is running."""
        key = f"{COOLDOWN_PREFIX}{fingerprint(ip, post_id)}"
        return await self._cache.add(key, 1, self._settings.rate_limit_window)

    async def admit(self, ip: str, user_agent: str, post_id: int) -> bool:
        if not await self.claim_view(ip, user_agent, post_id):
            self._log_drop("duplicate", ip, post_id)
            return False
        if not await self.pass_cooldown(ip, post_id):
            self._log_drop("cooldown", ip, post_id)
            return False
        return True

    def _log_drop(self, reason: str, ip: str, post_id: int) -> None:
        if should_sample("view_dropped"):
            log.debug("view_dropped", reason=reason, post_id=post_id, ip_hash=hash_ip(ip))
