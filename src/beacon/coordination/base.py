"""Coordination store interface.

Defines the capability interface Beacon needs from its coordination store
(service catalog, sessions and a session-guarded key/value lock) and the
records exchanged with it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class HealthStatus(str, Enum):
    """Aggregated health of a catalog instance."""

    PASSING = "passing"
    WARNING = "warning"
    CRITICAL = "critical"
    MAINTENANCE = "maintenance"


class SessionBehavior(str, Enum):
    """What the store does with held keys when a session is invalidated."""

    RELEASE = "release"
    DELETE = "delete"


@dataclass(frozen=True)
class ServiceIdentity:
    """Identity of this instance, created once at startup."""

    id: str
    address: str

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("service id must not be empty")


@dataclass
class HealthCheckSpec:
    """HTTP health check the store runs against the instance."""

    http: str
    method: str = "GET"
    interval: float = 5.0
    timeout: float = 1.0
    name: str = "/healthz"


@dataclass
class ServiceRegistration:
    """Agent service registration record."""

    id: str
    name: str
    address: str
    port: int | None = None
    tags: list[str] = field(default_factory=list)
    check: HealthCheckSpec | None = None


@dataclass
class SessionEntry:
    """A store session guarding lock ownership."""

    id: str
    name: str = ""
    ttl: float | None = None
    behavior: SessionBehavior = SessionBehavior.DELETE


@dataclass
class PeerRecord:
    """A catalog instance of a service, with its aggregated health."""

    service_id: str
    status: HealthStatus = HealthStatus.PASSING
    address: str = ""

    @property
    def healthy(self) -> bool:
        return self.status == HealthStatus.PASSING


@dataclass
class QueryOptions:
    """Filters for catalog queries."""

    datacenter: str | None = None
    tag: str | None = None


def aggregate_status(statuses: list[str]) -> HealthStatus:
    """Fold individual check statuses into one, worst first."""
    if HealthStatus.CRITICAL.value in statuses:
        return HealthStatus.CRITICAL
    if HealthStatus.WARNING.value in statuses:
        return HealthStatus.WARNING
    if HealthStatus.MAINTENANCE.value in statuses:
        return HealthStatus.MAINTENANCE
    return HealthStatus.PASSING


class CoordinationClient(ABC):
    """Abstract coordination store client.

    Every operation maps to one store call. Store or transport failures
    raise CoordinationError; "no such session" on renewal is not a failure.
    """

    @abstractmethod
    async def register_service(self, registration: ServiceRegistration) -> None:
        """Register (or update) a service and its health check."""
        pass

    @abstractmethod
    async def deregister_service(self, service_id: str) -> None:
        """Remove a service registration. Unknown ids are not an error."""
        pass

    @abstractmethod
    async def create_session(
        self,
        name: str,
        ttl: float,
        behavior: SessionBehavior = SessionBehavior.DELETE,
    ) -> str:
        """Create a session and return its id."""
        pass

    @abstractmethod
    async def renew_session(self, session_id: str) -> SessionEntry | None:
        """Renew a session; None when it no longer exists."""
        pass

    @abstractmethod
    async def acquire_lock(self, key: str, value: str, session_id: str) -> bool:
        """Acquire ``key`` for ``session_id``; True if the session holds it."""
        pass

    @abstractmethod
    async def list_services(self, query: QueryOptions | None = None) -> dict[str, list[str]]:
        """List registered service names and their tags."""
        pass

    @abstractmethod
    async def list_service_instances(
        self,
        name: str,
        query: QueryOptions | None = None,
    ) -> list[PeerRecord]:
        """List instances of ``name`` with their aggregated health."""
        pass

    async def close(self) -> None:
        """Release transport resources."""
        return None
