"""Redis-backed CacheBackend shared by every worker/node.

Values are stored as JSON (not pickle) so entries are debuggable from
redis-cli. Redis is an anti-abuse and lookup cache here, never the system of
record, so errors are logged and degrade instead of failing the view:

- get   → None (treated as a miss)
- add   → True (fail open: the view is counted)
- incr  → 0 (no burst detection while Redis is down)
"""

import json
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from shared.logging import get_logger

log = get_logger(__name__)


class RedisCache:
    def __init__(self, redis_client: aioredis.Redis, prefix: str = "clicks:") -> None:
        self._redis = redis_client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._redis.get(self._key(key))
        except RedisError as e:
            log.warning("redis_cache_get_error", key=key, error=str(e))
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            log.warning("redis_cache_corrupt_entry", key=key)
            return None

    async def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            await self._redis.set(self._key(key), json.dumps(value), ex=ttl)
        except RedisError as e:
            log.error("redis_cache_set_error", key=key, error=str(e))

    async def add(self, key: str, value: Any, ttl: int) -> bool:
        try:
            # SET NX EX: a single atomic insert-if-absent
            created = await self._redis.set(
                self._key(key), json.dumps(value), nx=True, ex=ttl
            )
        except RedisError as e:
            log.error("redis_cache_add_error", key=key, error=str(e))
            return True
        return bool(created)

    async def incr(self, key: str, ttl: int) -> int:
        full_key = self._key(key)
        try:
            # Create-with-TTL then increment in one MULTI so the counter can
            # never exist without an expiry.
            pipe = self._redis.pipeline(transaction=True)
            pipe.set(full_key, 0, nx=True, ex=ttl)
            pipe.incr(full_key)
            _, count = await pipe.execute()
        except RedisError as e:
            log.error("redis_cache_incr_error", key=key, error=str(e))
            return 0
        return int(count)
