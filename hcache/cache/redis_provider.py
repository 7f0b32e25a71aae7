"""
Redis cache provider.
"""

import asyncio
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..shared.config import CacheSettings, get_settings
from ..shared.health import HealthReporter, LivenessStatus, ReadinessStatus
from ..shared.logging import get_logger
from ..shared.metrics import CacheMetricsCollector, get_metrics_collector
from .base import Cache, Provider
from .redis_cache import RedisCache, RedisOptions


class RedisCacheProvider(Provider, HealthReporter):
    """Creates Redis caches sharing one client and reports the store's health.

    Liveness and readiness are the same check: the provider is alive and
    ready exactly when the store answers PING.
    """

    def __init__(self, options: RedisOptions, owns_client: bool = False):
        self.options = options
        self._owns_client = owns_client
        self.metrics = options.metrics or get_metrics_collector()
        self.logger = get_logger("hcache.cache.provider")

    @classmethod
    def from_settings(
        cls,
        settings: Optional[CacheSettings] = None,
        metrics: Optional[CacheMetricsCollector] = None
    ) -> "RedisCacheProvider":
        """Build a provider and its own Redis client from settings."""
        settings = settings or get_settings()

        client = redis.from_url(
            settings.redis_url,
            socket_timeout=settings.socket_timeout_seconds,
            socket_connect_timeout=settings.socket_connect_timeout_seconds,
            max_connections=settings.max_connections,
            health_check_interval=settings.health_check_interval_seconds,
        )

        options = RedisOptions(
            client=client,
            prefix=settings.prefix,
            default_ttl=settings.default_ttl_seconds,
            operation_timeout=settings.operation_timeout_seconds,
            metrics=metrics,
        )
        return cls(options, owns_client=True)

    def cache(self, name: str) -> Cache:
        return RedisCache(name, self.options)

    async def close(self) -> None:
        """Close the Redis client if this provider created it."""
        if self._owns_client:
            await self.options.client.aclose()
            self.logger.info("Cache store connection closed")

    def health_identifier(self) -> str:
        return "redis_cache_provider"

    async def liveness_status(self) -> LivenessStatus:
        if not await self._ping():
            return LivenessStatus.DEAD
        return LivenessStatus.ALIVE

    async def readiness_status(self) -> ReadinessStatus:
        if not await self._ping():
            return ReadinessStatus.UNREADY
        return ReadinessStatus.READY

    async def _ping(self) -> bool:
        timeout = self.options.operation_timeout
        try:
            if timeout is None:
                await self.options.client.ping()
            else:
                await asyncio.wait_for(self.options.client.ping(), timeout=timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            self.logger.warning("Cache store ping failed", error=str(e))
            self.metrics.record_health_check("error")
            return False

        self.metrics.record_health_check("ok")
        return True
