"""
Redis backed cache.
"""

import asyncio
import math
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Iterator, List, Optional

import redis.asyncio as redis
from opentelemetry.trace import Span, Status, StatusCode
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from ..shared.errors import KeyNotFoundError, SerializationError, StoreError, StoreTimeoutError
from ..shared.logging import get_logger
from ..shared.metrics import CacheMetricsCollector, get_metrics_collector
from ..shared.tracing import get_tracer
from .base import Cache, TTL
from .marshal import Marshaler, Unmarshaler, msgpack_marshaler, msgpack_unmarshaler


# Deletes every key matching ARGV[1]. DEL gets at most 5000 keys per call
# to stay under Lua's unpack() limit.
DELETE_BY_PATTERN_SCRIPT = """
local keys = redis.call('keys', ARGV[1])
for i=1,#keys,5000 do
    redis.call('del', unpack(keys, i, math.min(i+4999, #keys)))
end
return keys"""


@dataclass(frozen=True)
class RedisOptions:
    """Configuration shared by every cache of a provider."""

    client: redis.Redis
    # Global prefix of all keys, e.g. "cache_"
    prefix: str = ""
    marshaler: Marshaler = msgpack_marshaler
    unmarshaler: Unmarshaler = msgpack_unmarshaler
    default_ttl: TTL = None
    # Deadline in seconds for a single store call; None waits forever
    operation_timeout: Optional[float] = None
    metrics: Optional[CacheMetricsCollector] = None


def ttl_to_milliseconds(ttl: TTL) -> Optional[int]:
    """Convert a TTL into Redis PX milliseconds; None means no expiry.

    Positive sub-millisecond TTLs round up to 1ms so they never turn into
    "no expiry".
    """
    if ttl is None:
        return None

    if isinstance(ttl, timedelta):
        if ttl < timedelta(0):
            raise ValueError(f"TTL must not be negative: {ttl}")
        milliseconds, remainder = divmod(ttl, timedelta(milliseconds=1))
        if remainder:
            milliseconds += 1
    else:
        if ttl < 0:
            raise ValueError(f"TTL must not be negative: {ttl}")
        milliseconds = math.ceil(round(ttl * 1000, 6))

    return milliseconds or None


class RedisCache(Cache):
    """Cache storing msgpack values under "<prefix><name>_<key>" Redis keys."""

    def __init__(self, name: str, options: RedisOptions):
        self._name = name
        self.prefix = options.prefix
        self.client = options.client
        self.marshal = options.marshaler
        self.unmarshal = options.unmarshaler
        self.default_ttl = options.default_ttl
        self.operation_timeout = options.operation_timeout
        self.metrics = options.metrics or get_metrics_collector()
        self.logger = get_logger("hcache.cache.redis")
        self.tracer = get_tracer(__name__)

    @property
    def name(self) -> str:
        return self._name

    def key(self, key: str) -> str:
        """Return the Redis key of an application key."""
        # e.g., cache_user_283jf38jf (prefix is "cache_")
        return f"{self.prefix}{self._name}_{key}"

    async def get(self, key: str, target: Optional[type] = None) -> Any:
        store_key = self.key(key)

        with self._operation("get", store_key) as span:
            data = await self._execute("get", store_key, self.client.get(store_key))
            span.set_attribute("hcache.hit", data is not None)

            if data is None:
                self.metrics.record_miss(self._name)
                self.logger.debug("Cache miss", cache=self._name, cache_key=store_key)
                raise KeyNotFoundError(key, cache_name=self._name, store_key=store_key)

            self.metrics.record_hit(self._name)
            self.logger.debug("Cache hit", cache=self._name, cache_key=store_key)
            return self._decode(data, target)

    async def set(self, key: str, value: Any) -> None:
        await self.set_with_ttl(key, value, 0)

    async def set_with_default_ttl(self, key: str, value: Any) -> None:
        await self.set_with_ttl(key, value, self.default_ttl)

    async def set_with_ttl(self, key: str, value: Any, ttl: TTL) -> None:
        store_key = self.key(key)
        px = ttl_to_milliseconds(ttl)

        with self._operation("set", store_key):
            data = self._encode(value)
            await self._execute("set", store_key, self.client.set(store_key, data, px=px))

        self.logger.debug("Cached value", cache=self._name, cache_key=store_key, ttl_ms=px)

    async def remove(self, key: str) -> None:
        store_key = self.key(key)

        with self._operation("remove", store_key):
            await self._execute("remove", store_key, self.client.delete(store_key))

        self.logger.debug("Removed cached value", cache=self._name, cache_key=store_key)

    async def purge(self) -> List[str]:
        pattern = self.key("*")
        self.logger.warning("purge cache store", name=self._name, prefix=self.prefix)

        with self._operation("purge", pattern):
            deleted = await self._execute(
                "purge",
                pattern,
                self.client.eval(DELETE_BY_PATTERN_SCRIPT, 0, pattern)
            )

        keys = [k.decode() if isinstance(k, bytes) else k for k in deleted or []]
        self.metrics.record_purge(self._name, len(keys))
        self.logger.info("Purged cache store", name=self._name, deleted=len(keys))
        return keys

    @contextmanager
    def _operation(self, operation: str, store_key: str) -> Iterator[Span]:
        """Trace and time one cache operation."""
        with self.tracer.start_as_current_span(
            f"hcache.{operation}",
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            span.set_attribute("hcache.name", self._name)
            span.set_attribute("hcache.key", store_key)
            with self.metrics.time_operation(self._name, operation):
                try:
                    yield span
                except KeyNotFoundError:
                    raise
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    raise

    async def _execute(self, operation: str, store_key: str, command: Awaitable[Any]) -> Any:
        """Await a store command, mapping its failures to StoreError."""
        try:
            if self.operation_timeout is None:
                return await command
            return await asyncio.wait_for(command, timeout=self.operation_timeout)
        except (asyncio.TimeoutError, RedisTimeoutError) as e:
            self.logger.error(
                "Cache store operation timed out",
                cache=self._name,
                operation=operation,
                cache_key=store_key,
                timeout=self.operation_timeout
            )
            raise StoreTimeoutError(operation, self.operation_timeout, key=store_key, original_error=e) from e
        except RedisError as e:
            self.logger.error(
                "Cache store operation failed",
                cache=self._name,
                operation=operation,
                cache_key=store_key,
                error=str(e)
            )
            raise StoreError(operation, key=store_key, original_error=e) from e

    def _encode(self, value: Any) -> bytes:
        try:
            return self.marshal(value)
        except SerializationError:
            raise
        except Exception as e:
            raise SerializationError(
                f"Cannot marshal {type(value).__name__}: {e}",
                operation="marshal",
                value_type=type(value).__name__,
                original_error=e,
            ) from e

    def _decode(self, data: bytes, target: Optional[type]) -> Any:
        try:
            return self.unmarshal(data, target)
        except SerializationError:
            raise
        except Exception as e:
            raise SerializationError(
                f"Cannot unmarshal cached value: {e}",
                operation="unmarshal",
                value_type=getattr(target, "__name__", None),
                original_error=e,
            ) from e
