"""Prometheus metrics for mirrorcache.

Provides:
- Mirror hits and misses
- Backend operation counts by result code
- Backend operation latency

Usage:
    from mirrorcache.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.mirror_hits_total.labels(group="default").inc()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from mirrorcache.config import settings

logger = logging.getLogger(__name__)


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    mirror_hits_total: Any = None
    mirror_misses_total: Any = None
    backend_operations_total: Any = None
    backend_operation_duration_seconds: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        try:
            from prometheus_client import Counter, Histogram

            self.mirror_hits_total = Counter(
                "mirrorcache_mirror_hits_total",
                "Reads answered by the runtime mirror",
                ["group"],
            )

            self.mirror_misses_total = Counter(
                "mirrorcache_mirror_misses_total",
                "Reads the runtime mirror could not answer",
                ["group"],
            )

            self.backend_operations_total = Counter(
                "mirrorcache_backend_operations_total",
                "Backend operations by result code",
                ["operation", "result"],
            )

            self.backend_operation_duration_seconds = Histogram(
                "mirrorcache_backend_operation_duration_seconds",
                "Backend operation latency in seconds",
                ["operation"],
                buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.5),
            )

            self._initialized = True
            logger.info("Prometheus metrics initialized")

        except ImportError:
            logger.warning("prometheus_client not installed, metrics disabled")
            self._initialized = True


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


def record_mirror_hit(group: str) -> None:
    metrics = get_metrics()
    if metrics.mirror_hits_total:
        metrics.mirror_hits_total.labels(group=group).inc()


def record_mirror_miss(group: str) -> None:
    metrics = get_metrics()
    if metrics.mirror_misses_total:
        metrics.mirror_misses_total.labels(group=group).inc()


def record_backend_operation(operation: str, result: str, duration: float) -> None:
    """Record a backend call.

    Args:
        operation: Backend operation (get, set, cas, ...)
        result: Result code value
        duration: Call duration in seconds
    """
    metrics = get_metrics()
    if metrics.backend_operations_total:
        metrics.backend_operations_total.labels(operation=operation, result=result).inc()
    if metrics.backend_operation_duration_seconds:
        metrics.backend_operation_duration_seconds.labels(operation=operation).observe(duration)
