"""
hcache: namespaced caches over Redis.

Typical use:

    provider = RedisCacheProvider.from_settings()
    users = provider.cache("users")
    await users.set_with_default_ttl(user_id, user)
    user = await users.get(user_id, User)
"""

from .cache.base import Cache, Provider, TTL
from .cache.marshal import (
    Codec,
    Marshaler,
    MsgpackCodec,
    MsgpackMarshaler,
    MsgpackUnmarshaler,
    NativeMsgpackCodec,
    ReflectiveMsgpackCodec,
    Unmarshaler,
    msgpack_marshaler,
    msgpack_unmarshaler,
)
from .cache.redis_cache import DELETE_BY_PATTERN_SCRIPT, RedisCache, RedisOptions
from .cache.redis_provider import RedisCacheProvider
from .shared.config import CacheSettings, get_settings
from .shared.errors import (
    CacheException,
    KeyNotFoundError,
    SerializationError,
    StoreError,
    StoreTimeoutError,
)
from .shared.health import HealthReporter, HealthStatus, LivenessStatus, ReadinessStatus

__all__ = [
    "Cache",
    "Provider",
    "TTL",
    "Codec",
    "Marshaler",
    "Unmarshaler",
    "MsgpackCodec",
    "MsgpackMarshaler",
    "MsgpackUnmarshaler",
    "NativeMsgpackCodec",
    "ReflectiveMsgpackCodec",
    "msgpack_marshaler",
    "msgpack_unmarshaler",
    "DELETE_BY_PATTERN_SCRIPT",
    "RedisCache",
    "RedisOptions",
    "RedisCacheProvider",
    "CacheSettings",
    "get_settings",
    "CacheException",
    "KeyNotFoundError",
    "SerializationError",
    "StoreError",
    "StoreTimeoutError",
    "HealthReporter",
    "HealthStatus",
    "LivenessStatus",
    "ReadinessStatus",
]
