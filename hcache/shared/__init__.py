"""
Shared utilities for hcache.

This package aggregates the ambient building blocks used by the cache
layer:

- config: Cache configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- tracing: OpenTelemetry tracing config
- errors: Canonical error types and responses
- health: Liveness/readiness status types

Nothing in here imports from hcache.cache to avoid import cycles.
"""
