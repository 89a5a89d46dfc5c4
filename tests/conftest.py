from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from cowtracker.cache import layer
from cowtracker.cache.layer import CacheLayer
from cowtracker.cache.tiers import CacheTier, MemoryTier
from cowtracker.models import User


class FakeRemoteTier(CacheTier):
    """Dict-backed stand-in for the Redis tier that can be switched off."""

    def __init__(self):
        self.store: dict[str, Any] = {}
        self.down = False

    def _check(self):
        if self.down:
            raise ConnectionError("remote cache unreachable")

    async def get(self, key: str) -> Optional[Any]:
        self._check()
        return self.store.get(key)

    async def set(self, key: str, value: Any, ttl: int) -> None:
        self._check()
        self.store[key] = value

    async def delete(self, *keys: str) -> int:
        self._check()
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def keys_matching(self, substring: str) -> list[str]:
        self._check()
        return [key for key in self.store if substring in key]

    async def clear(self) -> None:
        self._check()
        self.store.clear()


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def remote_tier():
    return FakeRemoteTier()


@pytest.fixture(autouse=True)
def cache(monkeypatch, remote_tier):
    """Every test gets its own two-tier cache with no Redis behind it."""
    instance = CacheLayer(local=MemoryTier(maxsize=256), remote=remote_tier)
    monkeypatch.setattr(layer, "cache_layer", instance)
    return instance


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db():
    session = MagicMock()
    session.commit = AsyncMock()
    session.refresh = AsyncMock()
    session.delete = AsyncMock()
    session.exec = AsyncMock()
    session.get = AsyncMock(return_value=None)
    return session


@pytest.fixture
def worker():
    return User(id_usuario=10, id_autentificar="auth-worker", correo="worker@finca.co", id_rol=2)


@pytest.fixture
def veterinarian():
    return User(id_usuario=20, id_autentificar="auth-vet", correo="vet@finca.co", id_rol=3)
