"""Consul coordination client.

Talks to a local Consul agent over its HTTP API using httpx:
- /v1/agent/service/register, /v1/agent/service/deregister/<id>
- /v1/session/create, /v1/session/renew/<id>
- /v1/kv/<key>?acquire=<session>
- /v1/catalog/services, /v1/health/service/<name>
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from beacon.coordination.base import (
    CoordinationClient,
    PeerRecord,
    QueryOptions,
    ServiceRegistration,
    SessionBehavior,
    SessionEntry,
    aggregate_status,
)
from beacon.errors import CoordinationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

_DURATION_UNITS = {"ns": 1e-9, "us": 1e-6, "µs": 1e-6, "ms": 1e-3, "s": 1.0, "m": 60.0, "h": 3600.0}


def format_duration(seconds: float) -> str:
    """Render seconds as a Consul duration string ("10s", "1.5s")."""
    if float(seconds).is_integer():
        return f"{int(seconds)}s"
    return f"{seconds}s"


def parse_duration(value: str | None) -> float | None:
    """Parse a simple Consul duration ("60s", "500ms", "1m") into seconds."""
    if not value:
        return None
    # Longest suffix first so "ms" is not read as "s"
    for unit in sorted(_DURATION_UNITS, key=len, reverse=True):
        if value.endswith(unit):
            try:
                return float(value[: -len(unit)]) * _DURATION_UNITS[unit]
            except ValueError:
                return None
    return None


def normalize_address(address: str) -> str:
    if "://" not in address:
        address = f"http://{address}"
    return address.rstrip("/")


class ConsulClient(CoordinationClient):
    """CoordinationClient backed by a Consul agent.

    Args:
        address: Agent address, e.g. "http://consul-agent:8500"
        token: ACL token sent as X-Consul-Token
        datacenter: Default datacenter for catalog queries
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        address: str,
        token: str | None = None,
        datacenter: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.address = normalize_address(address)
        self.datacenter = datacenter

        headers = {"X-Consul-Token": token} if token else {}
        self._client = httpx.AsyncClient(
            base_url=self.address,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        content: bytes | None = None,
        allow_not_found: bool = False,
    ) -> httpx.Response | None:
        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json,
                content=content,
            )
        except httpx.HTTPError as e:
            raise CoordinationError(f"{method} {path} failed: {e}") from e

        if allow_not_found and response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise CoordinationError(
                f"{method} {path} -> {response.status_code} {response.text.strip()}",
                status_code=response.status_code,
            )
        return response

    def _query_params(self, query: QueryOptions | None) -> dict[str, str]:
        params: dict[str, str] = {}
        datacenter = (query.datacenter if query else None) or self.datacenter
        if datacenter:
            params["dc"] = datacenter
        if query and query.tag:
            params["tag"] = query.tag
        return params

    @staticmethod
    def _json(response: httpx.Response | None) -> Any:
        if response is None:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise CoordinationError(f"invalid JSON from Consul: {e}") from e

    # -------------------------------------------------------------------------
    # Agent
    # -------------------------------------------------------------------------

    async def register_service(self, registration: ServiceRegistration) -> None:
        if not registration.id:
            raise ValueError("service id must not be empty")

        payload: dict[str, Any] = {
            "ID": registration.id,
            "Name": registration.name,
            "Address": registration.address,
            "Tags": list(registration.tags),
        }
        if registration.port is not None:
            payload["Port"] = registration.port
        if registration.check is not None:
            check = registration.check
            payload["Check"] = {
                "Name": check.name,
                "HTTP": check.http,
                "Method": check.method,
                "Interval": format_duration(check.interval),
                "Timeout": format_duration(check.timeout),
            }

        await self._request("PUT", "/v1/agent/service/register", json=payload)
        logger.debug(f"Registered service {registration.id} with Consul")

    async def deregister_service(self, service_id: str) -> None:
        await self._request(
            "PUT",
            f"/v1/agent/service/deregister/{service_id}",
            allow_not_found=True,
        )
        logger.debug(f"Deregistered service {service_id} from Consul")

    # -------------------------------------------------------------------------
    # Sessions and locks
    # -------------------------------------------------------------------------

    async def create_session(
        self,
        name: str,
        ttl: float,
        behavior: SessionBehavior = SessionBehavior.DELETE,
    ) -> str:
        response = await self._request(
            "PUT",
            "/v1/session/create",
            json={
                "Name": name,
                "TTL": format_duration(ttl),
                "Behavior": SessionBehavior(behavior).value,
            },
        )
        body = self._json(response)
        session_id = body.get("ID") if isinstance(body, dict) else None
        if not session_id:
            raise CoordinationError(f"session create returned no ID: {body!r}")
        return str(session_id)

    async def renew_session(self, session_id: str) -> SessionEntry | None:
        response = await self._request(
            "PUT",
            f"/v1/session/renew/{session_id}",
            allow_not_found=True,
        )
        entries = self._json(response)
        if not entries:
            return None

        entry = entries[0]
        return SessionEntry(
            id=entry.get("ID", session_id),
            name=entry.get("Name", ""),
            ttl=parse_duration(entry.get("TTL")),
            behavior=SessionBehavior(entry.get("Behavior") or SessionBehavior.RELEASE.value),
        )

    async def acquire_lock(self, key: str, value: str, session_id: str) -> bool:
        response = await self._request(
            "PUT",
            f"/v1/kv/{key}",
            params={"acquire": session_id},
            content=value.encode(),
        )
        return self._json(response) is True

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    async def list_services(self, query: QueryOptions | None = None) -> dict[str, list[str]]:
        response = await self._request(
            "GET",
            "/v1/catalog/services",
            params=self._query_params(query),
        )
        services = self._json(response) or {}
        return {name: list(tags or []) for name, tags in services.items()}

    async def list_service_instances(
        self,
        name: str,
        query: QueryOptions | None = None,
    ) -> list[PeerRecord]:
        response = await self._request(
            "GET",
            f"/v1/health/service/{name}",
            params=self._query_params(query),
        )
        records: list[PeerRecord] = []
        for entry in self._json(response) or []:
            service = entry.get("Service") or {}
            checks = entry.get("Checks") or []
            records.append(
                PeerRecord(
                    service_id=service.get("ID", ""),
                    status=aggregate_status([c.get("Status", "") for c in checks]),
                    address=service.get("Address", ""),
                )
            )
        return records
