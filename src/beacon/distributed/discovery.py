"""Peer discovery through the coordination store catalog.

Periodically lists the catalog and reports healthy sibling instances of
this service. Discovery is informational: results are logged and exposed
through ``known_peers`` but never affect leadership.
"""

from __future__ import annotations

import asyncio
import logging

from beacon.coordination.base import (
    CoordinationClient,
    PeerRecord,
    QueryOptions,
    ServiceIdentity,
)
from beacon.distributed.timing import wait_for_stop
from beacon.errors import BeaconError, DiscoveryError
from beacon.observability.logging import LogContext
from beacon.observability.metrics import record_fatal_error, set_discovered_peers

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30.0


class DiscoveryPoller:
    """Polls the catalog for healthy instances of the same service.

    Any catalog error is fatal: a DiscoveryError is put on ``errors`` and
    the poller stops. It does not retry past a store error.
    """

    def __init__(
        self,
        client: CoordinationClient,
        identity: ServiceIdentity,
        service_name: str,
        errors: asyncio.Queue[BeaconError],
        interval: float = DEFAULT_POLL_INTERVAL,
        query: QueryOptions | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")

        self.client = client
        self.identity = identity
        self.service_name = service_name
        self.errors = errors
        self.interval = interval
        self.query = query

        self._known: dict[str, PeerRecord] = {}
        self._task: asyncio.Task[None] | None = None

    @property
    def known_peers(self) -> list[PeerRecord]:
        """Healthy peers seen on the last successful poll."""
        return list(self._known.values())

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, stop: asyncio.Event) -> None:
        """Start polling in the background until ``stop`` is set."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run(stop), name=f"discovery:{self.identity.id}")
        logger.info(f"Started discovery for '{self.service_name}'")

    async def join(self) -> None:
        """Wait for the poll loop to finish."""
        if self._task is not None:
            await self._task

    async def _run(self, stop: asyncio.Event) -> None:
        with LogContext(service_id=self.identity.id):
            try:
                while not await wait_for_stop(stop, self.interval):
                    try:
                        await self.poll_once()
                    except DiscoveryError as e:
                        logger.error(str(e))
                        record_fatal_error(e.kind)
                        self.errors.put_nowait(e)
                        return
            finally:
                logger.info(f"Stopped discovery for '{self.service_name}'")

    async def poll_once(self) -> list[PeerRecord]:
        """Query the catalog once and return the healthy peers.

        Raises:
            DiscoveryError: If either catalog call fails.
        """
        try:
            services = await self.client.list_services(self.query)
        except Exception as e:
            raise DiscoveryError(f"failed to get service catalog: {e}") from e

        peers: list[PeerRecord] = []
        for name in services:
            if name != self.service_name:
                continue
            try:
                instances = await self.client.list_service_instances(name, self.query)
            except Exception as e:
                raise DiscoveryError(f"failed to get service details for {name}: {e}") from e

            for instance in instances:
                if instance.service_id == self.identity.id or not instance.healthy:
                    continue
                peers.append(instance)

        self._update_known(peers)
        return peers

    def _update_known(self, peers: list[PeerRecord]) -> None:
        current = {peer.service_id: peer for peer in peers}

        for service_id in current.keys() - self._known.keys():
            logger.info(f"discovered new service: {service_id}")
        for service_id in self._known.keys() - current.keys():
            logger.info(f"service no longer available: {service_id}")
        for service_id in current.keys() & self._known.keys():
            logger.debug(f"service still available: {service_id}")

        self._known = current
        set_discovered_peers(len(current))
