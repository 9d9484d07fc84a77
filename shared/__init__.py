"""
Shared utilities for the cache layer.

This package aggregates common building blocks consumed by the cache
service package:

- config: Settings via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Backoff calculation for polling callers

Do not import from service_* packages into shared/.
"""
