"""CacheBackend protocol — services depend on this, not a concrete store.

Values must be JSON-serialisable. Every write carries its own TTL in seconds.
"""

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class CacheBackend(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any, ttl: int) -> None: ...

    async def add(self, key: str, value: Any, ttl: int) -> bool:
        """Store *value* only if *key* is absent. Must be atomic.

        Returns True when this call created the key.
        """
        ...

    async def incr(self, key: str, ttl: int) -> int:
        """Increment a counter, creating it with *ttl* when absent.

        The TTL is not extended by later increments (fixed window).
        """
        ...
