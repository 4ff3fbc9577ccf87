"""In-memory coordination store.

Suitable for single-process development and tests. Sessions expire on a
monotonic clock; expiry with DELETE behavior removes the keys the session
held, RELEASE behavior frees them.

For real multi-instance deployments, use ConsulClient instead.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from uuid import uuid4

from beacon.coordination.base import (
    CoordinationClient,
    HealthStatus,
    PeerRecord,
    QueryOptions,
    ServiceRegistration,
    SessionBehavior,
    SessionEntry,
)

logger = logging.getLogger(__name__)


@dataclass
class _Session:
    entry: SessionEntry
    expires_at: float


@dataclass
class _Key:
    value: str
    session_id: str | None = None


@dataclass
class _Service:
    registration: ServiceRegistration
    status: HealthStatus = HealthStatus.PASSING
    tags: list[str] = field(default_factory=list)


class InMemoryCoordinationClient(CoordinationClient):
    """CoordinationClient keeping all state in process memory.

    Several coordinators can share one instance to contend for the same lock.
    Registered services report PASSING until set_health() says otherwise.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._services: dict[str, _Service] = {}
        self._sessions: dict[str, _Session] = {}
        self._kv: dict[str, _Key] = {}

    # -------------------------------------------------------------------------
    # Agent
    # -------------------------------------------------------------------------

    async def register_service(self, registration: ServiceRegistration) -> None:
        if not registration.id:
            raise ValueError("service id must not be empty")
        existing = self._services.get(registration.id)
        status = existing.status if existing else HealthStatus.PASSING
        self._services[registration.id] = _Service(
            registration=registration,
            status=status,
            tags=list(registration.tags),
        )
        logger.debug(f"Registered service {registration.id}")

    async def deregister_service(self, service_id: str) -> None:
        self._services.pop(service_id, None)
        logger.debug(f"Deregistered service {service_id}")

    def set_health(self, service_id: str, status: HealthStatus) -> None:
        """Override the health status reported for a registered service."""
        self._services[service_id].status = status

    # -------------------------------------------------------------------------
    # Sessions and locks
    # -------------------------------------------------------------------------

    def _expire_sessions(self) -> None:
        now = self._clock()
        for session_id, session in list(self._sessions.items()):
            if session.expires_at <= now:
                self.destroy_session(session_id)

    def destroy_session(self, session_id: str) -> None:
        """Invalidate a session as if its TTL had lapsed."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        for key, held in list(self._kv.items()):
            if held.session_id != session_id:
                continue
            if session.entry.behavior == SessionBehavior.DELETE:
                del self._kv[key]
            else:
                held.session_id = None
        logger.debug(f"Session {session_id} invalidated")

    async def create_session(
        self,
        name: str,
        ttl: float,
        behavior: SessionBehavior = SessionBehavior.DELETE,
    ) -> str:
        self._expire_sessions()
        session_id = str(uuid4())
        entry = SessionEntry(id=session_id, name=name, ttl=ttl, behavior=SessionBehavior(behavior))
        self._sessions[session_id] = _Session(entry=entry, expires_at=self._clock() + ttl)
        return session_id

    async def renew_session(self, session_id: str) -> SessionEntry | None:
        self._expire_sessions()
        session = self._sessions.get(session_id)
        if session is None:
            return None
        session.expires_at = self._clock() + (session.entry.ttl or 0)
        return session.entry

    async def acquire_lock(self, key: str, value: str, session_id: str) -> bool:
        self._expire_sessions()
        if session_id not in self._sessions:
            return False

        held = self._kv.get(key)
        if held is None:
            self._kv[key] = _Key(value=value, session_id=session_id)
            return True
        if held.session_id is None or held.session_id == session_id:
            held.value = value
            held.session_id = session_id
            return True
        return False

    def lock_holder(self, key: str) -> str | None:
        """Value stored under a held key, i.e. the current leader's id."""
        self._expire_sessions()
        held = self._kv.get(key)
        if held is None or held.session_id is None:
            return None
        return held.value

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    async def list_services(self, query: QueryOptions | None = None) -> dict[str, list[str]]:
        services: dict[str, list[str]] = {}
        for service in self._services.values():
            tags = services.setdefault(service.registration.name, [])
            for tag in service.tags:
                if tag not in tags:
                    tags.append(tag)
        return services

    async def list_service_instances(
        self,
        name: str,
        query: QueryOptions | None = None,
    ) -> list[PeerRecord]:
        return [
            PeerRecord(
                service_id=service.registration.id,
                status=service.status,
                address=service.registration.address,
            )
            for service in self._services.values()
            if service.registration.name == name
            and (query is None or query.tag is None or query.tag in service.tags)
        ]
