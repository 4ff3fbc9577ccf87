"""Observability module for Beacon.

Provides metrics and structured logging:
- Prometheus metrics for leadership, sessions and discovery
- JSON structured logging with service and session context
"""

from beacon.observability.logging import (
    LogContext,
    configure_logging,
    service_id_var,
    session_id_var,
)
from beacon.observability.metrics import (
    configure_metrics,
    get_metrics,
    metrics_registry,
)

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "service_id_var",
    "session_id_var",
    # Metrics
    "configure_metrics",
    "get_metrics",
    "metrics_registry",
]
