"""Observability module for mirrorcache.

Provides metrics and structured logging:
- Prometheus metrics for mirror hits and backend calls
- JSON structured logging with request and namespace context
"""

from mirrorcache.observability.logging import (
    LogContext,
    configure_logging,
    namespace_var,
    request_id_var,
)
from mirrorcache.observability.metrics import get_metrics, metrics_registry

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "request_id_var",
    "namespace_var",
    # Metrics
    "metrics_registry",
    "get_metrics",
]
