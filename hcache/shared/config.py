"""
Shared configuration management for hcache.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Cache configuration read from HCACHE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="HCACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Store connection
    redis_url: str = Field(default="redis://localhost:6379/0")
    socket_timeout_seconds: Optional[float] = Field(default=5.0, gt=0)
    socket_connect_timeout_seconds: Optional[float] = Field(default=5.0, gt=0)
    max_connections: Optional[int] = Field(default=None, gt=0)
    health_check_interval_seconds: int = Field(default=30, ge=0)

    # Cache behaviour
    prefix: str = Field(default="cache_")
    default_ttl_seconds: float = Field(default=0.0, ge=0)
    operation_timeout_seconds: Optional[float] = Field(default=None, gt=0)

    # Observability
    enable_tracing: bool = Field(default=False)
    otel_exporter: str = Field(default="http://localhost:4317")
    enable_console_tracing: bool = Field(default=False)


@lru_cache
def get_settings() -> CacheSettings:
    """Get the process-wide cache settings."""
    return CacheSettings()
