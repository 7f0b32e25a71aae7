"""
Shared metrics configuration for hcache.
"""

import threading
import time
from contextlib import contextmanager
from typing import Dict, Any, Iterator, Optional

from prometheus_client import Counter, Histogram, CollectorRegistry, REGISTRY

from .errors import KeyNotFoundError


class CacheMetricsCollector:
    """Prometheus metrics for cache operations."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else REGISTRY
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up cache metrics."""
        self._metrics["operations_total"] = Counter(
            "hcache_operations_total",
            "Total cache operations",
            ["cache", "operation", "status"],
            registry=self.registry
        )

        self._metrics["operation_duration_seconds"] = Histogram(
            "hcache_operation_duration_seconds",
            "Cache operation duration in seconds",
            ["cache", "operation"],
            registry=self.registry
        )

        self._metrics["hits_total"] = Counter(
            "hcache_hits_total",
            "Total cache hits",
            ["cache"],
            registry=self.registry
        )

        self._metrics["misses_total"] = Counter(
            "hcache_misses_total",
            "Total cache misses",
            ["cache"],
            registry=self.registry
        )

        self._metrics["purged_keys_total"] = Counter(
            "hcache_purged_keys_total",
            "Total keys deleted by purge",
            ["cache"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "hcache_health_check_total",
            "Total store health checks",
            ["status"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_operation(self, cache: str, operation: str, status: str, duration: float):
        """Record a finished cache operation."""
        self._metrics["operations_total"].labels(
            cache=cache,
            operation=operation,
            status=status
        ).inc()

        self._metrics["operation_duration_seconds"].labels(
            cache=cache,
            operation=operation
        ).observe(duration)

    def record_hit(self, cache: str):
        self._metrics["hits_total"].labels(cache=cache).inc()

    def record_miss(self, cache: str):
        self._metrics["misses_total"].labels(cache=cache).inc()

    def record_purge(self, cache: str, deleted: int):
        self._metrics["purged_keys_total"].labels(cache=cache).inc(deleted)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    @contextmanager
    def time_operation(self, cache: str, operation: str) -> Iterator[None]:
        """Time an operation and record it with an ok/miss/error status."""
        start_time = time.perf_counter()
        status = "error"
        try:
            yield
        except KeyNotFoundError:
            status = "miss"
            raise
        else:
            status = "ok"
        finally:
            self.record_operation(cache, operation, status, time.perf_counter() - start_time)


_collector: Optional[CacheMetricsCollector] = None
_collector_lock = threading.Lock()


def get_metrics_collector() -> CacheMetricsCollector:
    """Get the process-wide collector registered on the default registry."""
    global _collector
    if _collector is None:
        with _collector_lock:
            if _collector is None:
                _collector = CacheMetricsCollector()
    return _collector
