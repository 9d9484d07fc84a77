"""
Shared metrics configuration for the cache layer.
"""

from typing import Dict, Any, Optional
import time
import threading
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry, start_http_server


class MetricsCollector:
    """Prometheus metrics for one cache layer instance.

    Each collector owns its registry unless one is passed in, so several
    engines (and test cases) can coexist in one process without
    duplicate-timeseries errors.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up cache metrics."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        self._metrics["cache_hits_total"] = Counter(
            "cache_hits_total",
            "Total cache hits",
            registry=self.registry
        )

        self._metrics["cache_misses_total"] = Counter(
            "cache_misses_total",
            "Total cache misses",
            registry=self.registry
        )

        self._metrics["cache_errors_total"] = Counter(
            "cache_errors_total",
            "Store errors absorbed by the cache engine",
            ["operation"],
            registry=self.registry
        )

        self._metrics["cache_operation_duration_seconds"] = Histogram(
            "cache_operation_duration_seconds",
            "Cache operation duration in seconds",
            ["operation"],
            registry=self.registry
        )

        self._metrics["cache_hit_ratio"] = Gauge(
            "cache_hit_ratio",
            "Cache hit ratio (percent)",
            registry=self.registry
        )

        self._metrics["cache_lock_operations_total"] = Counter(
            "cache_lock_operations_total",
            "Distributed lock operations",
            ["operation", "result"],
            registry=self.registry
        )

        self._metrics["cache_warm_total"] = Counter(
            "cache_warm_total",
            "Cache warm entries processed",
            ["result"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def start_metrics_server(self, port: int = 9090):
        """Start the Prometheus metrics server."""
        start_http_server(port, registry=self.registry)

    def record_hit(self, count: int = 1):
        self._metrics["cache_hits_total"].inc(count)

    def record_miss(self, count: int = 1):
        self._metrics["cache_misses_total"].inc(count)

    def record_error(self, operation: str):
        """Record a store error absorbed during an operation."""
        self._metrics["cache_errors_total"].labels(operation=operation).inc()

    def record_lock_operation(self, operation: str, result: str):
        self._metrics["cache_lock_operations_total"].labels(operation=operation, result=result).inc()

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    @contextmanager
    def time_operation(self, operation: str):
        """Context manager to time a cache operation."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start_time
            self._metrics["cache_operation_duration_seconds"].labels(operation=operation).observe(duration)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        with self._lock:
            if labels:
                metric.labels(**labels).inc()
            else:
                metric.inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        if labels:
            metric.labels(**labels).set(value)
        else:
            metric.set(value)

    def sample(self, metric_name: str, **labels) -> float:
        """Current value of a metric sample in this collector's registry."""
        value = self.registry.get_sample_value(metric_name, labels or None)
        return value if value is not None else 0.0


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
