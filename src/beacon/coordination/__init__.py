"""Coordination store clients.

- CoordinationClient: abstract interface used by every component
- ConsulClient: Consul agent over HTTP
- InMemoryCoordinationClient: single-process store for development and tests
"""

from beacon.coordination.base import (
    CoordinationClient,
    HealthCheckSpec,
    HealthStatus,
    PeerRecord,
    QueryOptions,
    ServiceIdentity,
    ServiceRegistration,
    SessionBehavior,
    SessionEntry,
)
from beacon.coordination.consul import ConsulClient
from beacon.coordination.memory import InMemoryCoordinationClient


def create_client(
    backend: str,
    address: str = "",
    token: str | None = None,
    datacenter: str | None = None,
    timeout: float = 10.0,
) -> CoordinationClient:
    """Create the coordination client for the configured backend."""
    if backend == "memory":
        return InMemoryCoordinationClient()
    if backend == "consul":
        return ConsulClient(address, token=token, datacenter=datacenter, timeout=timeout)
    raise ValueError(f"Unknown coordination backend: {backend}")


__all__ = [
    "CoordinationClient",
    "ConsulClient",
    "InMemoryCoordinationClient",
    "create_client",
    "HealthCheckSpec",
    "HealthStatus",
    "PeerRecord",
    "QueryOptions",
    "ServiceIdentity",
    "ServiceRegistration",
    "SessionBehavior",
    "SessionEntry",
]
