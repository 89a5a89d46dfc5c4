import asyncio
from typing import Any, Awaitable, Callable, Optional

from cachetools import TTLCache
from redis.asyncio import Redis, RedisError

from cowtracker.cache.tiers import CacheTier, MemoryTier, RedisTier
from cowtracker.core.config import Settings, get_settings

import logging

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


class CacheLayer:
    """
    Two-tier response cache.

    Local: process-local MemoryTier (fast, bounded, per-entry TTL)
    Remote: RedisTier (shared across workers, optional)

    Features:
    - Local first, remote fallback with local backfill
    - Stampede protection with per-key locks (get_or_load)
    - Substring pattern invalidation on both tiers
    - Graceful degradation: remote errors are logged and never raised
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        local: Optional[CacheTier] = None,
        remote: Optional[CacheTier] = None,
    ):
        self._settings = settings
        self.local = local
        self.remote = remote
        self._initialized = local is not None

        self.hits = 0
        self.misses = 0
        self.remote_errors = 0
        self.remote_healthy = remote is not None

    async def init_cache(self):
        """Initialize settings, the local tier, and the Redis connection."""
        if self._initialized:
            return

        if self._settings is None:
            self._settings = get_settings()
        settings = self._settings

        if self.local is None:
            self.local = MemoryTier(maxsize=settings.memory_maxsize)

        if self.remote is None and settings.redis_enabled:
            redis = Redis.from_url(
                settings.redis_dsn,
                encoding="utf-8",
                decode_responses=True,
                max_connections=settings.redis_pool_size,
                socket_connect_timeout=5,
                socket_keepalive=True,
                health_check_interval=30,
            )
            tier = RedisTier(redis, namespace=settings.cache_namespace)
            try:
                # Verify connection
                await tier.ping()
                self.remote = tier
                self.remote_healthy = True
                logger.info("Redis connection established")
            except (RedisError, OSError) as e:
                # Allow degraded operation (local only)
                logger.warning(f"Redis unavailable, continuing with local cache only: {e}")
                await redis.aclose()

        self._initialized = True
        logger.info("Cache layer initialized")

    @property
    def backfill_ttl(self) -> int:
        if self._settings is None:
            return DEFAULT_TTL_SECONDS
        return self._settings.memory_ttl_seconds

    def _remote_ok(self):
        if not self.remote_healthy:
            logger.info("Remote cache reachable again")
        self.remote_healthy = True

    def _remote_failed(self, op: str, key: str, error: Exception):
        self.remote_errors += 1
        self.remote_healthy = False
        logger.error(f"Remote cache {op} error for {key!r}: {error}")

    async def _lookup(self, key: str) -> Optional[Any]:
        value = await self.local.get(key)
        if value is not None:
            logger.debug(f"Local hit: {key}")
            return value

        if self.remote is None:
            return None

        try:
            value = await self.remote.get(key)
        except Exception as e:
            self._remote_failed("GET", key, e)
            return None
        self._remote_ok()

        if value is not None:
            logger.debug(f"Remote hit: {key}")
            await self.local.set(key, value, self.backfill_ttl)
        return value

    async def get(self, key: str) -> Optional[Any]:
        """
        Retrieve a value: local tier, then remote tier.

        Returns None when neither tier holds the key.
        """
        await self.init_cache()

        value = await self._lookup(key)
        if value is None:
            self.misses += 1
            logger.debug(f"Cache miss: {key}")
        else:
            self.hits += 1
        return value

    async def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL_SECONDS) -> bool:
        """
        Store a value in both tiers.

        Only a local failure makes this return False; remote failures are
        logged and ignored.
        """
        await self.init_cache()

        try:
            await self.local.set(key, value, ttl)
        except Exception as e:
            logger.error(f"Local cache SET error for {key!r}: {e}")
            return False

        if self.remote is not None:
            try:
                await self.remote.set(key, value, ttl)
                self._remote_ok()
            except Exception as e:
                self._remote_failed("SET", key, e)
        return True

    async def delete(self, key: str):
        """Delete a key from both tiers."""
        await self.init_cache()

        await self.local.delete(key)
        if self.remote is not None:
            try:
                await self.remote.delete(key)
                self._remote_ok()
            except Exception as e:
                self._remote_failed("DELETE", key, e)

    async def invalidate_pattern(self, pattern: str) -> int:
        """
        Delete every key containing ``pattern`` anywhere (substring match,
        not prefix). An empty pattern clears both tiers.
        """
        await self.init_cache()

        local_keys = await self.local.keys_matching(pattern)
        deleted = await self.local.delete(*local_keys)

        if self.remote is not None:
            try:
                remote_keys = await self.remote.keys_matching(pattern)
                if remote_keys:
                    await self.remote.delete(*remote_keys)
                deleted = max(deleted, len(remote_keys))
                self._remote_ok()
            except Exception as e:
                self._remote_failed("pattern delete", pattern, e)

        logger.info(f"Pattern invalidation {pattern!r} removed {deleted} keys")
        return deleted

    async def clear(self):
        """Drop every entry from both tiers."""
        await self.init_cache()

        await self.local.clear()
        if self.remote is not None:
            try:
                await self.remote.clear()
                self._remote_ok()
            except Exception as e:
                self._remote_failed("CLEAR", "*", e)
        logger.info("Cache cleared")

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: int = DEFAULT_TTL_SECONDS,
    ):
        """
        Read-through: return the cached value or call ``loader`` and store
        its result. None results are never cached.
        """
        value = await self.get(key)
        if value is not None:
            return value

        # Acquire per-key lock for stampede protection
        lock = _get_lock_for_key(key)
        async with lock:
            # Double-check caches after acquiring lock
            value = await self._lookup(key)
            if value is not None:
                return value

            logger.debug(f"Loading from source: {key}")
            value = await loader()
            if value is None:
                return None

            await self.set(key, value, ttl)
            return value

    async def close(self):
        """Graceful shutdown of cache connections."""
        if self.remote is not None:
            try:
                await self.remote.close()
                logger.info("Redis connection closed")
            except Exception as e:
                logger.error(f"Error closing Redis: {e}")

    def get_stats(self) -> dict:
        lookups = self.hits + self.misses
        return {
            "memory": {
                "keys": len(self.local) if self.local is not None else 0,
                "hits": self.hits,
                "misses": self.misses,
                "hitRate": self.hits / lookups if lookups > 0 else 0,
            },
            "remote": {
                "connected": self.remote is not None and self.remote_healthy,
                "errors": self.remote_errors,
            },
        }


# Per-key locks for stampede protection: concurrent loaders of the same key
# share one lock so only the first reaches the datastore. Bounded and expired
# so abandoned keys do not accumulate; setdefault hands every caller the
# same lock object.
_locks = TTLCache(maxsize=10_000, ttl=300)


def _get_lock_for_key(key: str) -> asyncio.Lock:
    return _locks.setdefault(key, asyncio.Lock())


# Cache layer instance (singleton per worker)
cache_layer = CacheLayer()
