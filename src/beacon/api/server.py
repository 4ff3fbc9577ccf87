"""Health endpoint server.

Runs the FastAPI app with uvicorn inside the service's event loop. The
listening socket is bound in start() so that an unusable port fails
startup synchronously instead of surfacing later from the server task.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from collections.abc import Iterator

import uvicorn
from fastapi import FastAPI

from beacon.errors import BeaconError, EndpointError, EndpointStopError, StartupError

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 5.0
STARTUP_POLL_INTERVAL = 0.01


class _Server(uvicorn.Server):
    """uvicorn server that leaves signal handling to the service runner."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


def _bind_socket(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


class HealthEndpoint:
    """Serves the health app until stop() is called.

    Args:
        app: FastAPI application to serve
        host: Interface to bind
        port: TCP port (0 picks a free port, see ``bound_port``)
        grace_period: Seconds allowed for draining connections on stop
        log_level: uvicorn log level
    """

    def __init__(
        self,
        app: FastAPI,
        host: str = "0.0.0.0",  # nosec B104 - intentional for container deployments
        port: int = 6000,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        log_level: str = "info",
    ) -> None:
        self.app = app
        self.host = host
        self.port = port
        self.grace_period = grace_period
        self.log_level = log_level

        self._server: _Server | None = None
        self._socket: socket.socket | None = None
        self._task: asyncio.Task[None] | None = None
        self._stopping = False

    @property
    def bound_port(self) -> int | None:
        if self._socket is None:
            return None
        return int(self._socket.getsockname()[1])

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, errors: asyncio.Queue[BeaconError] | None = None) -> None:
        """Bind the port and start serving.

        Args:
            errors: Channel receiving an EndpointError if the server exits
                without being asked to

        Raises:
            StartupError: If the port cannot be bound or the server fails
                before it is ready.
        """
        if self._task is not None:
            return

        try:
            self._socket = _bind_socket(self.host, self.port)
        except OSError as e:
            raise StartupError(f"error binding http server to {self.host}:{self.port}: {e}") from e

        config = uvicorn.Config(
            self.app,
            log_level=self.log_level.lower(),
            log_config=None,
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=int(self.grace_period) or 1,
        )
        self._server = _Server(config)
        self._task = asyncio.create_task(
            self._server.serve(sockets=[self._socket]),
            name="health-endpoint",
        )
        self._task.add_done_callback(lambda task: self._on_exit(task, errors))

        logger.info(f"starting http server, addr: {self.host}:{self.bound_port}")

        while not self._server.started and not self._task.done():
            await asyncio.sleep(STARTUP_POLL_INTERVAL)

        if self._task.done():
            cause = None if self._task.cancelled() else self._task.exception()
            error = StartupError("http server exited during startup")
            raise error from cause

    def _on_exit(
        self,
        task: asyncio.Task[None],
        errors: asyncio.Queue[BeaconError] | None,
    ) -> None:
        if self._stopping or task.cancelled():
            return
        cause = task.exception()
        error = EndpointError(f"encountered critical error from HTTP server: {cause or 'exited'}")
        error.__cause__ = cause
        logger.error(str(error))
        if errors is not None:
            errors.put_nowait(error)

    async def stop(self) -> None:
        """Stop serving, allowing ``grace_period`` seconds to drain.

        Calling stop() again, or before start(), does nothing.

        Raises:
            EndpointStopError: If the server does not stop in time or failed.
        """
        if self._task is None or self._server is None or self._stopping:
            return

        self._stopping = True
        self._server.should_exit = True
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=self.grace_period)
        except asyncio.TimeoutError as e:
            self._server.force_exit = True
            raise EndpointStopError(
                f"error shutting down http server: not stopped after {self.grace_period}s"
            ) from e
        except Exception as e:
            raise EndpointStopError(f"error shutting down http server: {e}") from e
        finally:
            if self._socket is not None:
                self._socket.close()

        logger.info("http server stopped")
