"""
Unit tests for RedisCache.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, ResponseError

from hcache.cache.marshal import msgpack_marshaler, msgpack_unmarshaler
from hcache.cache.redis_cache import (
    DELETE_BY_PATTERN_SCRIPT,
    RedisCache,
    RedisOptions,
    ttl_to_milliseconds,
)
from hcache.shared.errors import (
    KeyNotFoundError,
    SerializationError,
    StoreError,
    StoreTimeoutError,
)


@pytest.fixture
def cache(redis_options):
    """Create the "abc" cache."""
    return RedisCache("abc", redis_options)


class TestRedisCacheConstruction:
    """Test cases for cache construction and key building."""

    def test_new_redis_cache(self, cache, fake_redis):
        assert cache.name == "abc"
        assert cache.prefix == "cache_"
        assert cache.default_ttl == 2
        assert cache.client is fake_redis
        assert cache.marshal is msgpack_marshaler
        assert cache.unmarshal is msgpack_unmarshaler

    @pytest.mark.parametrize("key,expected", [
        ("", "cache_abc_"),
        ("123", "cache_abc_123"),
        ("*", "cache_abc_*"),
        ("k1", "cache_abc_k1"),
        ("a_b:c?", "cache_abc_a_b:c?"),
    ])
    def test_key(self, cache, key, expected):
        assert cache.key(key) == expected

    def test_key_uses_prefix_and_name(self, fake_redis, metrics):
        options = RedisOptions(client=fake_redis, prefix="tenant7:", metrics=metrics)

        assert RedisCache("users", options).key("42") == "tenant7:users_42"


class TestTTLConversion:
    """Test cases for TTL normalisation."""

    @pytest.mark.parametrize("ttl,expected", [
        (None, None),
        (0, None),
        (0.0, None),
        (timedelta(0), None),
        (timedelta(milliseconds=2), 2),
        (timedelta(microseconds=1500), 2),
        (timedelta(seconds=2), 2000),
        (0.0005, 1),
        (0.002, 2),
        (30, 30000),
    ])
    def test_ttl_to_milliseconds(self, ttl, expected):
        assert ttl_to_milliseconds(ttl) == expected

    @pytest.mark.parametrize("ttl", [-1, -0.5, timedelta(seconds=-1)])
    def test_negative_ttl_rejected(self, ttl):
        with pytest.raises(ValueError):
            ttl_to_milliseconds(ttl)


class TestRedisCacheOperations:
    """Test cases for get/set/remove/purge."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, cache, fake_redis):
        await cache.set("k1", "hi")

        assert fake_redis.data["cache_abc_k1"][0] == msgpack_marshaler("hi")
        assert fake_redis.last_px["cache_abc_k1"] is None
        assert await cache.get("k1") == "hi"

    @pytest.mark.asyncio
    async def test_get_with_target(self, cache):
        await cache.set("k1", [1, 2])

        assert await cache.get("k1", tuple) == (1, 2)

    @pytest.mark.asyncio
    async def test_get_missing_key(self, cache):
        with pytest.raises(KeyNotFoundError) as exc_info:
            await cache.get("missing")

        assert exc_info.value.details == {
            "key": "missing",
            "cache": "abc",
            "store_key": "cache_abc_missing",
        }

    @pytest.mark.asyncio
    async def test_set_with_ttl_expires(self, cache):
        """Set("k4", "hi", 2ms), sleep 5ms, Get("k4") is a miss."""
        await cache.set_with_ttl("k4", "hi", timedelta(milliseconds=2))

        await asyncio.sleep(0.005)

        with pytest.raises(KeyNotFoundError):
            await cache.get("k4")

    @pytest.mark.asyncio
    async def test_set_without_ttl_never_expires(self, cache):
        await cache.set_with_ttl("k3", {"v": 1}, 0)

        await asyncio.sleep(0.01)

        assert await cache.get("k3") == {"v": 1}

    @pytest.mark.asyncio
    async def test_set_with_default_ttl(self, cache, fake_redis):
        await cache.set_with_default_ttl("k5", "hi")

        assert fake_redis.last_px["cache_abc_k5"] == 2000
        assert await cache.get("k5") == "hi"

    @pytest.mark.asyncio
    async def test_set_overwrites(self, cache):
        await cache.set("k1", "first")
        await cache.set("k1", "second")

        assert await cache.get("k1") == "second"

    @pytest.mark.asyncio
    async def test_remove(self, cache):
        await cache.set("k1", "hi")
        await cache.set("k2", "hi")

        await cache.remove("k1")

        with pytest.raises(KeyNotFoundError):
            await cache.get("k1")
        assert await cache.get("k2") == "hi"

        await cache.remove("k2")
        with pytest.raises(KeyNotFoundError):
            await cache.get("k2")

    @pytest.mark.asyncio
    async def test_remove_missing_key(self, cache):
        await cache.remove("never-set")

    @pytest.mark.asyncio
    async def test_purge(self, cache, fake_redis, redis_options):
        """Purge keeps keys of other namespaces and unrelated keys."""
        await fake_redis.set("another_key", "val")
        other = RedisCache("abd", redis_options)
        await other.set("k1", "other")
        await cache.set("k1", "hi")
        await cache.set("k2", "hi")

        deleted = await cache.purge()

        assert sorted(deleted) == ["cache_abc_k1", "cache_abc_k2"]
        with pytest.raises(KeyNotFoundError):
            await cache.get("k1")
        with pytest.raises(KeyNotFoundError):
            await cache.get("k2")
        assert await fake_redis.get("another_key") == b"val"
        assert await other.get("k1") == "other"

    @pytest.mark.asyncio
    async def test_purge_empty_cache(self, cache):
        assert await cache.purge() == []

    @pytest.mark.asyncio
    async def test_purge_runs_delete_script(self, cache, fake_redis):
        fake_redis.eval = AsyncMock(return_value=[b"cache_abc_x"])

        assert await cache.purge() == ["cache_abc_x"]
        fake_redis.eval.assert_awaited_once_with(DELETE_BY_PATTERN_SCRIPT, 0, "cache_abc_*")

    @pytest.mark.asyncio
    async def test_purge_logs_warning_before_failing(self, cache, fake_redis):
        cache.logger = MagicMock()
        fake_redis.eval = AsyncMock(side_effect=ResponseError("NOSCRIPT"))

        with pytest.raises(StoreError):
            await cache.purge()

        cache.logger.warning.assert_called_once_with("purge cache store", name="abc", prefix="cache_")

    def test_delete_script_batches_deletes(self):
        assert "redis.call('keys', ARGV[1])" in DELETE_BY_PATTERN_SCRIPT
        assert "for i=1,#keys,5000 do" in DELETE_BY_PATTERN_SCRIPT
        assert "math.min(i+4999, #keys)" in DELETE_BY_PATTERN_SCRIPT
        assert DELETE_BY_PATTERN_SCRIPT.rstrip().endswith("return keys")


class TestRedisCacheErrors:
    """Test cases for error mapping."""

    @pytest.mark.asyncio
    async def test_store_error_on_get(self, cache, fake_redis):
        original = RedisConnectionError("connection refused")
        fake_redis.get = AsyncMock(side_effect=original)

        with pytest.raises(StoreError) as exc_info:
            await cache.get("k1")

        assert not isinstance(exc_info.value, KeyNotFoundError)
        assert exc_info.value.__cause__ is original
        assert exc_info.value.operation == "get"
        assert exc_info.value.key == "cache_abc_k1"

    @pytest.mark.asyncio
    async def test_store_error_on_set(self, cache, fake_redis):
        fake_redis.set = AsyncMock(side_effect=RedisConnectionError("down"))

        with pytest.raises(StoreError):
            await cache.set("k1", "hi")

    @pytest.mark.asyncio
    async def test_store_error_on_remove(self, cache, fake_redis):
        fake_redis.delete = AsyncMock(side_effect=RedisConnectionError("down"))

        with pytest.raises(StoreError):
            await cache.remove("k1")

    @pytest.mark.asyncio
    async def test_operation_timeout(self, fake_redis, metrics):
        async def slow_get(name):
            await asyncio.sleep(1)

        fake_redis.get = AsyncMock(side_effect=slow_get)
        cache = RedisCache("abc", RedisOptions(
            client=fake_redis,
            prefix="cache_",
            operation_timeout=0.01,
            metrics=metrics,
        ))

        with pytest.raises(StoreTimeoutError) as exc_info:
            await cache.get("k1")

        assert exc_info.value.timeout_seconds == 0.01
        assert exc_info.value.code == "CACHE_STORE_TIMEOUT"

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, cache, fake_redis):
        started = asyncio.Event()

        async def slow_get(name):
            started.set()
            await asyncio.sleep(10)

        fake_redis.get = AsyncMock(side_effect=slow_get)
        task = asyncio.ensure_future(cache.get("k1"))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_marshal_error_does_not_write(self, cache, fake_redis):
        with pytest.raises(SerializationError) as exc_info:
            await cache.set("k1", object())

        assert exc_info.value.operation == "marshal"
        assert "cache_abc_k1" not in fake_redis.data

    @pytest.mark.asyncio
    async def test_custom_marshaler_errors_are_wrapped(self, fake_redis, metrics):
        def broken_marshaler(value):
            raise RuntimeError("boom")

        cache = RedisCache("abc", RedisOptions(
            client=fake_redis,
            prefix="cache_",
            marshaler=broken_marshaler,
            metrics=metrics,
        ))

        with pytest.raises(SerializationError) as exc_info:
            await cache.set("k1", "hi")

        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_unmarshal_error(self, cache, fake_redis):
        await fake_redis.set("cache_abc_k1", b"\x92\x01")

        with pytest.raises(SerializationError) as exc_info:
            await cache.get("k1")

        assert exc_info.value.operation == "unmarshal"

    @pytest.mark.asyncio
    async def test_negative_ttl(self, cache):
        with pytest.raises(ValueError):
            await cache.set_with_ttl("k1", "hi", -1)


class TestRedisCacheMetrics:
    """Test cases for recorded metrics."""

    @pytest.mark.asyncio
    async def test_hit_and_miss_counters(self, cache, metrics):
        registry = metrics.registry
        await cache.set("k1", "hi")
        await cache.get("k1")
        with pytest.raises(KeyNotFoundError):
            await cache.get("k2")

        assert registry.get_sample_value("hcache_hits_total", {"cache": "abc"}) == 1.0
        assert registry.get_sample_value("hcache_misses_total", {"cache": "abc"}) == 1.0
        assert registry.get_sample_value(
            "hcache_operations_total", {"cache": "abc", "operation": "get", "status": "miss"}
        ) == 1.0
        assert registry.get_sample_value(
            "hcache_operations_total", {"cache": "abc", "operation": "set", "status": "ok"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_error_and_purge_counters(self, cache, fake_redis, metrics):
        registry = metrics.registry
        await cache.set("k1", "hi")
        await cache.set("k2", "hi")
        await cache.purge()

        fake_redis.get = AsyncMock(side_effect=RedisConnectionError("down"))
        with pytest.raises(StoreError):
            await cache.get("k1")

        assert registry.get_sample_value("hcache_purged_keys_total", {"cache": "abc"}) == 2.0
        assert registry.get_sample_value(
            "hcache_operations_total", {"cache": "abc", "operation": "get", "status": "error"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_get_metric_by_name(self, cache, metrics):
        await cache.set("k1", "hi")
        await cache.get("k1")

        hits = metrics.get_metric("hits_total")

        assert hits is not None
        assert hits.labels(cache="abc")._value.get() == 1.0
        assert metrics.get_metric("unknown_total") is None
