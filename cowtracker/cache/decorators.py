import json
from functools import wraps
from typing import Any, Callable, Mapping, Optional

from cowtracker.cache import layer
from cowtracker.cache.layer import DEFAULT_TTL_SECONDS

ANONYMOUS = "anonymous"

# Key families; invalidation patterns are built from these prefixes.
FARMS = "farms_"
CATTLE = "cattle_"
USER = "user_"


def query_fingerprint(query: Optional[Mapping[str, Any]]) -> str:
    """Stable JSON form of a query string, part of every response key."""
    return json.dumps(dict(query or {}), sort_keys=True, default=str)


def response_key(prefix: str, user_id: Optional[str], *parts, query=None) -> str:
    """
    Build a response cache key: prefix, caller identity, extra parts, query.

      response_key(FARMS, "u1", query={}) -> 'farms_u1_{}'
      response_key(CATTLE, "u1", 42, query={"a": 1}) -> 'cattle_u1_42_{"a": 1}'
    """
    segments = [user_id or ANONYMOUS, *[str(p) for p in parts], query_fingerprint(query)]
    return prefix + "_".join(segments)


def _to_cacheable(value):
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_to_cacheable(v) for v in value]
    return value


def async_cached(key_builder: Callable[..., str], ttl: int = DEFAULT_TTL_SECONDS):
    """
    Decorator for async read functions. key_builder receives same args/kwargs.
    Only values returned normally are cached; None and exceptions are not.
    Example:
      @async_cached(lambda user_id, query, *_, **__: response_key(FARMS, user_id, query=query))
      async def list_farms(user_id, query, db): ...
    """

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(*args, **kwargs):
            key = key_builder(*args, **kwargs)

            # loader closure calls the original function
            async def loader():
                value = await fn(*args, **kwargs)
                if value is None:
                    return None
                return _to_cacheable(value)

            return await layer.cache_layer.get_or_load(key, loader, ttl=ttl)

        return wrapper

    return decorator


def invalidates(*patterns: str):
    """
    Decorator for async mutations: after the wrapped function returns,
    every cache key containing one of ``patterns`` is dropped. Raising or
    returning None/False (not found) leaves the cache untouched.
    """

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(*args, **kwargs):
            result = await fn(*args, **kwargs)
            if result is None or result is False:
                return result
            for pattern in patterns:
                await layer.cache_layer.invalidate_pattern(pattern)
            return result

        return wrapper

    return decorator
