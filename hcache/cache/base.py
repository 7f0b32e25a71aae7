"""
Cache and Provider interfaces.
"""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, List, Optional, Union


TTL = Union[timedelta, int, float, None]


class Cache(ABC):
    """A handle on one namespace of a remote key-value store.

    Every method is a single round trip to the store. Implementations keep
    no local state besides their immutable configuration, so one instance
    can be shared by any number of tasks.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the cache namespace."""

    @abstractmethod
    async def get(self, key: str, target: Optional[type] = None) -> Any:
        """Return the value stored under key.

        Args:
            key: Application key inside this cache
            target: Optional type to decode the stored value into

        Raises:
            KeyNotFoundError: If the key is absent or expired
            SerializationError: If the stored bytes cannot be decoded
            StoreError: If the store call fails
        """

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store value under key without expiry."""

    @abstractmethod
    async def set_with_default_ttl(self, key: str, value: Any) -> None:
        """Store value under key with the cache's default TTL."""

    @abstractmethod
    async def set_with_ttl(self, key: str, value: Any, ttl: TTL) -> None:
        """Store value under key; a zero or None ttl means no expiry."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete key. Removing a missing key is not an error."""

    @abstractmethod
    async def purge(self) -> List[str]:
        """Delete every key of this cache and return the deleted keys."""


class Provider(ABC):
    """Factory of named caches sharing one store connection."""

    @abstractmethod
    def cache(self, name: str) -> Cache:
        """Return a cache bound to the name namespace."""
