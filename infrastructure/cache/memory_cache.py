"""Process-local TTL cache implementing CacheBackend.

Used when REDIS_URI is not configured. Every operation runs under one
threading.Lock and never awaits while holding it, so ``add`` and ``incr``
are atomic for coroutines and threads alike. Only valid for a single
process: two workers each get their own dedup window.

Keys starting with one of ``pinned_prefixes`` are never evicted for
space, only dropped once expired. The dedup and cooldown markers are
pinned so a flood of geo or rate entries cannot reopen a live window.
Everything else is evicted oldest-first, a batch at a time, once the
cache reaches ``max_entries``.
"""

import threading
import time
from typing import Any, Callable, Optional, Sequence

Clock = Callable[[], float]

EVICTION_BATCH_FRACTION = 0.1


class MemoryCache:
    def __init__(
        self,
        clock: Clock = time.monotonic,
        max_entries: int = 100_000,
        pinned_prefixes: Sequence[str] = (),
    ) -> None:
        self._clock = clock
        self._max_entries = max_entries
        self._pinned_prefixes = tuple(pinned_prefixes)
        # dicts keep insertion order, so the first key is the oldest
        self._pinned: dict[str, tuple[Any, float]] = {}
        self._evictable: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def _bucket(self, key: str) -> dict[str, tuple[Any, float]]:
        if self._pinned_prefixes and key.startswith(self._pinned_prefixes):
            return self._pinned
        return self._evictable

    def _size(self) -> int:
        return len(self._pinned) + len(self._evictable)

    def _live(self, key: str, now: float) -> Optional[tuple[Any, float]]:
        bucket = self._bucket(key)
        entry = bucket.get(key)
        if entry is None:
            return None
        if entry[1] <= now:
            del bucket[key]
            return None
        return entry

    def _store(self, key: str, value: Any, ttl: int, now: float) -> None:
        bucket = self._bucket(key)
        # Re-inserting moves an overwritten key to the young end
        bucket.pop(key, None)
        if self._size() >= self._max_entries:
            self._make_room(now)
        bucket[key] = (value, now + ttl)

    def _make_room(self, now: float) -> None:
        for bucket in (self._pinned, self._evictable):
            expired = [key for key, (_, expires) in bucket.items() if expires <= now]
            for key in expired:
                del bucket[key]

        if self._size() < self._max_entries:
            return

        # Free a batch so the sweep above is not repeated on every insert
        batch = max(1, int(self._max_entries * EVICTION_BATCH_FRACTION))
        target = self._max_entries - batch
        while self._evictable and self._size() > target:
            del self._evictable[next(iter(self._evictable))]

    async def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._live(key, self._clock())
            return entry[0] if entry else None

    async def set(self, key: str, value: Any, ttl: int) -> None:
        with self._lock:
            self._store(key, value, ttl, self._clock())

    async def add(self, key: str, value: Any, ttl: int) -> bool:
        with self._lock:
            now = self._clock()
            if self._live(key, now) is not None:
                return False
            self._store(key, value, ttl, now)
            return True

    async def incr(self, key: str, ttl: int) -> int:
        with self._lock:
            now = self._clock()
            entry = self._live(key, now)
            if entry is None:
                self._store(key, 1, ttl, now)
                return 1
            value, expires = entry
            count = int(value) + 1
            # Assigning an existing key keeps its position and its expiry
            self._bucket(key)[key] = (count, expires)
            return count

    def __len__(self) -> int:
        with self._lock:
            return self._size()
