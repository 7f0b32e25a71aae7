"""
One-call setup of logging and tracing for processes using hcache.
"""

from typing import Optional

from .shared.config import CacheSettings, get_settings
from .shared.logging import configure_logging, get_logger
from .shared.tracing import configure_tracing


def configure_observability(service_name: str = "hcache", settings: Optional[CacheSettings] = None) -> None:
    """Configure structlog and, when enabled, OpenTelemetry tracing."""
    settings = settings or get_settings()

    configure_logging(service_name, settings.log_level)

    if settings.enable_tracing:
        configure_tracing(
            service_name,
            settings.otel_exporter,
            settings.enable_console_tracing,
            settings.env
        )
        get_logger("hcache.observability").info(
            "Tracing configured",
            exporter=settings.otel_exporter,
            environment=settings.env
        )
