"""Prometheus metrics for Beacon.

Provides metrics collection and exposure:
- Leadership state and lock acquisition results
- Session renewal results
- Discovered peers
- Fatal errors by kind
- Health endpoint requests

Usage:
    from beacon.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.lock_acquisitions_total.labels(result="acquired").inc()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import REGISTRY, Counter, Gauge
from prometheus_client import generate_latest as prometheus_generate_latest

logger = logging.getLogger(__name__)


class NoOpMetric:
    """No-op metric for when metrics are disabled."""

    def labels(self, **kwargs: Any) -> "NoOpMetric":
        """Return self for chaining."""
        return self

    def inc(self, amount: float = 1) -> None:
        pass

    def dec(self, amount: float = 1) -> None:
        pass

    def set(self, value: float) -> None:
        pass


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    # Leadership
    leader: Any = None
    session_renewals_total: Any = None
    lock_acquisitions_total: Any = None

    # Discovery
    discovered_peers: Any = None

    # Failures
    fatal_errors_total: Any = None

    # Health endpoint
    http_requests_total: Any = None

    enabled: bool = True

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not self.enabled:
            logger.info("Metrics are disabled")
            noop = NoOpMetric()
            self.leader = noop
            self.session_renewals_total = noop
            self.lock_acquisitions_total = noop
            self.discovered_peers = noop
            self.fatal_errors_total = noop
            self.http_requests_total = noop
            self._initialized = True
            return

        self._registry = REGISTRY

        self.leader = Gauge(
            "beacon_leader",
            "1 when this instance held the leader lock on its last tick",
        )
        self.session_renewals_total = Counter(
            "beacon_session_renewals_total",
            "Leader session renewal attempts",
            ["result"],
        )
        self.lock_acquisitions_total = Counter(
            "beacon_lock_acquisitions_total",
            "Leader lock acquisition attempts",
            ["result"],
        )
        self.discovered_peers = Gauge(
            "beacon_discovered_peers",
            "Healthy sibling instances seen on the last discovery poll",
        )
        self.fatal_errors_total = Counter(
            "beacon_fatal_errors_total",
            "Fatal errors reported by background tasks",
            ["kind"],
        )
        self.http_requests_total = Counter(
            "beacon_http_requests_total",
            "Requests served by the health endpoint",
            ["method", "path", "status"],
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if not self.enabled or self._registry is None:
            return b"# Metrics disabled\n"
        return prometheus_generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def configure_metrics(enabled: bool) -> MetricsRegistry:
    """Choose whether metrics are collected.

    Only effective before the first call to get_metrics().
    """
    if not metrics_registry._initialized:
        metrics_registry.enabled = enabled
    return get_metrics()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


def set_leader(is_leader: bool) -> None:
    get_metrics().leader.set(1 if is_leader else 0)


def record_session_renewal(result: str) -> None:
    """Record a renewal outcome: renewed, missing or error."""
    get_metrics().session_renewals_total.labels(result=result).inc()


def record_lock_acquisition(result: str) -> None:
    """Record an acquire outcome: acquired, held_elsewhere or error."""
    get_metrics().lock_acquisitions_total.labels(result=result).inc()


def set_discovered_peers(count: int) -> None:
    get_metrics().discovered_peers.set(count)


def record_fatal_error(kind: str) -> None:
    get_metrics().fatal_errors_total.labels(kind=kind).inc()


def record_http_request(method: str, path: str, status: int) -> None:
    get_metrics().http_requests_total.labels(method=method, path=path, status=str(status)).inc()
