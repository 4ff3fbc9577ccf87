"""Service lifecycle for Beacon.

Composes the health endpoint, service registration, leader election and
discovery:

On start:
- Start the health endpoint
- Register the service and its health check with the coordination store
- Start the leader coordinator and the discovery poller

On shutdown:
- Signal background tasks to stop
- Deregister the service
- Stop the health endpoint within the grace period

Background tasks report fatal errors on ``Service.errors``; whoever runs
the service decides to shut down when one arrives (see ``Service.wait``).
"""

from __future__ import annotations

import asyncio
import logging

from beacon.api.app import create_app
from beacon.api.server import HealthEndpoint
from beacon.config import Settings
from beacon.coordination import create_client
from beacon.coordination.base import (
    CoordinationClient,
    HealthCheckSpec,
    QueryOptions,
    ServiceIdentity,
    ServiceRegistration,
)
from beacon.distributed.discovery import DiscoveryPoller
from beacon.distributed.leader import LeaderCoordinator
from beacon.errors import (
    BeaconError,
    DeregistrationError,
    EndpointStopError,
    ShutdownError,
    StartupError,
)

logger = logging.getLogger(__name__)

HEALTH_CHECK_PATH = "/healthz"


class Service:
    """A self-registering, leader-electing service instance.

    Args:
        settings: Service configuration
        client: Coordination store client (built from settings if None)
        endpoint: Health endpoint (built from settings if None)
    """

    def __init__(
        self,
        settings: Settings,
        client: CoordinationClient | None = None,
        endpoint: HealthEndpoint | None = None,
    ) -> None:
        self.settings = settings
        self.identity = ServiceIdentity(id=settings.service_id, address=settings.service_address)

        self.client = client or create_client(
            settings.coordination_backend,
            address=settings.consul_address,
            token=settings.consul_token,
            datacenter=settings.consul_datacenter,
            timeout=settings.consul_timeout,
        )
        self.endpoint = endpoint or HealthEndpoint(
            create_app(
                force_health_failure=settings.force_health_failure,
                enable_metrics=settings.enable_metrics,
            ),
            host=settings.host,
            port=settings.port,
            grace_period=settings.shutdown_grace_period,
            log_level=settings.log_level,
        )

        # Fatal errors from background tasks; unbounded so none is ever lost
        self.errors: asyncio.Queue[BeaconError] = asyncio.Queue()
        # Cancellation signal shared by all background tasks
        self.stop_event = asyncio.Event()

        self.coordinator = LeaderCoordinator(
            self.client,
            self.identity,
            settings.service_name,
            self.errors,
            session_ttl=settings.session_ttl,
            tick_interval=settings.leader_tick_interval,
            max_missing_session_ticks=settings.max_missing_session_ticks,
        )
        self.poller = DiscoveryPoller(
            self.client,
            self.identity,
            settings.service_name,
            self.errors,
            interval=settings.discovery_interval,
            query=QueryOptions(datacenter=settings.consul_datacenter),
        )

    def registration(self) -> ServiceRegistration:
        """Registration record advertising this instance and its health check."""
        return ServiceRegistration(
            id=self.identity.id,
            name=self.settings.service_name,
            address=self.identity.address,
            tags=list(self.settings.service_tags),
            check=HealthCheckSpec(
                http=f"{self.identity.address}{HEALTH_CHECK_PATH}",
                method="GET",
                interval=self.settings.health_check_interval,
                timeout=self.settings.health_check_timeout,
                name=HEALTH_CHECK_PATH,
            ),
        )

    async def start(self) -> None:
        """Start the endpoint, register, and launch background tasks.

        Raises:
            StartupError: If the endpoint, the registration or the leader
                session cannot be set up.
        """
        logger.info(f"Starting service {self.identity.id} at {self.identity.address}")

        await self.endpoint.start(self.errors)

        try:
            await self.client.register_service(self.registration())
        except Exception as e:
            raise StartupError(f"error registering service with coordination store: {e}") from e
        logger.info(f"Registered service {self.identity.id} as '{self.settings.service_name}'")

        await self.coordinator.start(self.stop_event)
        self.poller.start(self.stop_event)

        logger.info(f"Service {self.identity.id} started")

    async def wait(self, shutdown: asyncio.Event) -> BeaconError | None:
        """Wait for an external shutdown request or the first fatal error.

        Returns:
            The fatal error, or None when ``shutdown`` was set first.
        """
        if not self.errors.empty():
            return self.errors.get_nowait()

        error_task = asyncio.create_task(self.errors.get())
        shutdown_task = asyncio.create_task(shutdown.wait())
        try:
            done, _ = await asyncio.wait(
                {error_task, shutdown_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (error_task, shutdown_task):
                if not task.done():
                    task.cancel()

        if error_task in done:
            return error_task.result()
        return None

    async def _join_tasks(self) -> None:
        # Shielded: a timeout must not cancel a store call in flight
        joins = asyncio.gather(self.coordinator.join(), self.poller.join())
        try:
            await asyncio.wait_for(
                asyncio.shield(joins),
                timeout=self.settings.shutdown_grace_period,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Background tasks still busy in a store call at shutdown; "
                "they exit once the call returns"
            )

    async def shutdown(self) -> None:
        """Stop background tasks, deregister and stop the endpoint.

        Both deregistration and endpoint shutdown are always attempted, even
        after a background task has already failed.

        Raises:
            DeregistrationError: If only deregistration failed.
            EndpointStopError: If only the endpoint failed to stop.
            ShutdownError: If both failed; both are in ``errors``.
        """
        logger.info(f"Shutting down service {self.identity.id}")
        self.stop_event.set()
        await self._join_tasks()

        failures: list[BeaconError] = []

        try:
            await self.client.deregister_service(self.identity.id)
        except Exception as e:
            error = DeregistrationError(f"error deregistering service from coordination store: {e}")
            error.__cause__ = e
            logger.error(str(error))
            failures.append(error)

        try:
            await self.endpoint.stop()
        except EndpointStopError as e:
            logger.error(str(e))
            failures.append(e)

        if len(failures) == 1:
            raise failures[0]
        if failures:
            raise ShutdownError(
                "; ".join(str(f) for f in failures),
                errors=failures,
            )

        logger.info("successfully stopped http server and other background tasks")

    async def close(self) -> None:
        """Release the coordination client. Call after the last shutdown()."""
        await self.client.close()
