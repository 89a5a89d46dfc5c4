import json
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from cachetools import TLRUCache
from redis.asyncio import Redis

import logging

logger = logging.getLogger(__name__)

_GLOB_CHARS = re.compile(r"([*?\[\]\\])")


class CacheTier(ABC):
    """One storage level of the response cache."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]: ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int) -> None: ...

    @abstractmethod
    async def delete(self, *keys: str) -> int: ...

    @abstractmethod
    async def keys_matching(self, substring: str) -> list[str]:
        """Return every live key containing ``substring``."""

    @abstractmethod
    async def clear(self) -> None: ...

    async def close(self) -> None:
        return None


def _entry_expiry(_key, entry, now):
    # entries are stored as (value, ttl_seconds)
    return now + entry[1]


class MemoryTier(CacheTier):
    """
    Process-local tier backed by a bounded TLRUCache.

    Unlike TTLCache, TLRUCache lets every entry carry its own TTL.
    """

    def __init__(self, maxsize: int = 2048, timer: Callable[[], float] = time.monotonic):
        self._cache = TLRUCache(maxsize=maxsize, ttu=_entry_expiry, timer=timer)

    def __len__(self) -> int:
        self._cache.expire()
        return len(self._cache)

    async def get(self, key: str) -> Optional[Any]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        return entry[0]

    async def set(self, key: str, value: Any, ttl: int) -> None:
        self._cache[key] = (value, ttl)

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._cache.pop(key, None) is not None:
                deleted += 1
        return deleted

    async def keys_matching(self, substring: str) -> list[str]:
        self._cache.expire()
        return [key for key in list(self._cache.keys()) if substring in key]

    async def clear(self) -> None:
        self._cache.clear()


class RedisTier(CacheTier):
    """
    Shared tier backed by Redis.

    Keys are namespaced so several services can share one database.
    Errors are raised to the caller; CacheLayer decides how to degrade.
    """

    def __init__(self, redis: Redis, namespace: str = "cowtracker:", scan_count: int = 100):
        self.redis = redis
        self.namespace = namespace
        self.scan_count = scan_count

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    def _strip(self, raw_key: str) -> str:
        return raw_key[len(self.namespace):]

    def _serialize(self, value: Any) -> str:
        try:
            return json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.error(f"Serialization failed: {e}")
            raise

    def _deserialize(self, raw: str) -> Any:
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            # Return raw string if not valid JSON
            return raw

    async def ping(self) -> bool:
        return await self.redis.ping()

    async def get(self, key: str) -> Optional[Any]:
        raw = await self.redis.get(self._key(key))
        if raw is None:
            return None
        return self._deserialize(raw)

    async def set(self, key: str, value: Any, ttl: int) -> None:
        await self.redis.set(self._key(key), self._serialize(value), ex=ttl)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self.redis.delete(*[self._key(key) for key in keys])

    async def keys_matching(self, substring: str) -> list[str]:
        escaped = _GLOB_CHARS.sub(r"\\\1", substring)
        pattern = self._key(f"*{escaped}*")
        found = []
        cursor = 0
        while True:
            cursor, keys = await self.redis.scan(cursor, match=pattern, count=self.scan_count)
            found.extend(self._strip(key) for key in keys)
            if cursor == 0:
                break
        return found

    async def clear(self) -> None:
        keys = await self.keys_matching("")
        await self.delete(*keys)

    async def close(self) -> None:
        await self.redis.aclose()
