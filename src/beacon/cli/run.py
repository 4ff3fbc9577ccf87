"""CLI command for running a Beacon instance.

Usage:
    beacon run --id 1
    beacon run --id 2 --port 6001 --consul-address http://localhost:8500
    beacon run --id 3 --backend memory --log-format console --log-level debug
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from enum import Enum

import typer
from pydantic import ValidationError

from beacon.config import Settings, get_settings
from beacon.errors import ShutdownError, StartupError
from beacon.observability import configure_logging, configure_metrics
from beacon.service import Service

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class LogFormat(str, Enum):
    JSON = "json"
    CONSOLE = "console"


app = typer.Typer(help="Run a Beacon service instance")


async def run_service(
    settings: Settings,
    service: Service | None = None,
    shutdown: asyncio.Event | None = None,
) -> int:
    """Run a service until a stop signal or a fatal error.

    Returns:
        Process exit code: 0 after a clean signal-driven shutdown, 1 after
        any startup, background or shutdown failure.
    """
    service = service or Service(settings)
    shutdown = shutdown or asyncio.Event()

    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in SHUTDOWN_SIGNALS:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, shutdown.set)
            installed.append(sig)

    exit_code = 0
    try:
        try:
            await service.start()
        except StartupError as e:
            logger.error(str(e))
            exit_code = 1
        else:
            error = await service.wait(shutdown)
            if error is None:
                logger.info("received stop signal")
            else:
                logger.error(f"stopping after fatal error: {error}")
                exit_code = 1

        try:
            await service.shutdown()
        except ShutdownError as e:
            logger.error(str(e))
            exit_code = 1
    finally:
        await service.close()
        for sig in installed:
            loop.remove_signal_handler(sig)

    return exit_code


@app.callback(invoke_without_command=True)
def run(
    instance_id: str | None = typer.Option(
        None,
        "--id",
        "-i",
        help="Unique instance ID (service ID becomes <service-name>-<id>)",
    ),
    port: int | None = typer.Option(
        None,
        "--port",
        "-p",
        help="TCP/IP port the health endpoint listens on",
    ),
    service_name: str | None = typer.Option(
        None,
        "--service-name",
        "-n",
        help="Logical service name shared by all peers",
    ),
    consul_address: str | None = typer.Option(
        None,
        "--consul-address",
        "-c",
        help="Consul agent address",
    ),
    backend: str | None = typer.Option(
        None,
        "--backend",
        "-b",
        help="Coordination backend: consul, memory",
    ),
    fail: bool = typer.Option(
        False,
        "--fail",
        help="Force /healthz failure",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, error",
    ),
    log_format: LogFormat | None = typer.Option(
        None,
        "--log-format",
        help="Log format: json (production), console (development)",
    ),
) -> None:
    """Register with the coordination store, elect a leader, discover peers.

    Runs until SIGINT/SIGTERM or the first fatal error.
    """
    try:
        settings = get_settings(
            instance_id=instance_id,
            port=port,
            service_name=service_name,
            consul_address=consul_address,
            coordination_backend=backend,
            force_health_failure=fail or None,
            log_level=log_level.upper() if log_level else None,
            log_json=(log_format == LogFormat.JSON) if log_format else None,
        )
    except ValidationError as e:
        typer.echo(f"Invalid configuration:\n{e}", err=True)
        raise typer.Exit(code=2)

    configure_logging(json_format=settings.log_json, level=settings.log_level)
    configure_metrics(settings.enable_metrics)

    exit_code = asyncio.run(run_service(settings))
    raise typer.Exit(code=exit_code)
