"""
Shared fixtures for hcache tests.
"""

import time
from fnmatch import fnmatchcase
from typing import Dict, List, Optional, Tuple

import pytest
from prometheus_client import CollectorRegistry

from hcache.cache.redis_cache import DELETE_BY_PATTERN_SCRIPT, RedisOptions
from hcache.shared.metrics import CacheMetricsCollector


class FakeRedis:
    """In-memory stand-in for the subset of redis.asyncio.Redis used by hcache."""

    def __init__(self):
        self.data: Dict[str, Tuple[bytes, Optional[float]]] = {}
        self.last_px: Dict[str, Optional[int]] = {}
        self.closed = False

    def _expired(self, key: str) -> bool:
        _, expires_at = self.data[key]
        return expires_at is not None and time.monotonic() >= expires_at

    def _live_keys(self) -> List[str]:
        for key in list(self.data):
            if self._expired(key):
                del self.data[key]
        return list(self.data)

    async def get(self, name: str) -> Optional[bytes]:
        if name not in self._live_keys():
            return None
        return self.data[name][0]

    async def set(self, name: str, value, px: Optional[int] = None) -> bool:
        if isinstance(value, str):
            value = value.encode()
        expires_at = time.monotonic() + px / 1000 if px else None
        self.data[name] = (value, expires_at)
        self.last_px[name] = px
        return True

    async def delete(self, *names: str) -> int:
        live = self._live_keys()
        deleted = 0
        for name in names:
            if name in live:
                del self.data[name]
                deleted += 1
        return deleted

    async def eval(self, script: str, numkeys: int, *keys_and_args) -> List[bytes]:
        assert script == DELETE_BY_PATTERN_SCRIPT
        pattern = keys_and_args[numkeys]
        matched = [key for key in self._live_keys() if fnmatchcase(key, pattern)]
        for key in matched:
            del self.data[key]
        return [key.encode() for key in matched]

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis():
    """Create an empty fake Redis client."""
    return FakeRedis()


@pytest.fixture
def metrics():
    """Metrics collector on a private registry."""
    return CacheMetricsCollector(CollectorRegistry())


@pytest.fixture
def redis_options(fake_redis, metrics):
    """Options used by the original cache tests."""
    return RedisOptions(
        client=fake_redis,
        prefix="cache_",
        default_ttl=2,
        metrics=metrics,
    )
