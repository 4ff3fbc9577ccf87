"""CLI command for listing healthy peers.

Usage:
    beacon peers
    beacon peers --service-name consul-demo --format json
"""

from __future__ import annotations

import asyncio
from enum import Enum

import typer

from beacon.config import Settings, get_settings
from beacon.coordination import create_client
from beacon.coordination.base import PeerRecord, QueryOptions, ServiceIdentity
from beacon.distributed.discovery import DiscoveryPoller
from beacon.errors import BeaconError, DiscoveryError

app = typer.Typer(help="List healthy instances of a service")


class OutputFormat(str, Enum):
    TEXT = "text"
    JSON = "json"


async def list_peers(settings: Settings) -> list[PeerRecord]:
    """Run one discovery poll against the configured store."""
    client = create_client(
        settings.coordination_backend,
        address=settings.consul_address,
        token=settings.consul_token,
        datacenter=settings.consul_datacenter,
        timeout=settings.consul_timeout,
    )
    errors: asyncio.Queue[BeaconError] = asyncio.Queue()
    poller = DiscoveryPoller(
        client,
        ServiceIdentity(id=settings.service_id, address=settings.service_address),
        settings.service_name,
        errors,
        query=QueryOptions(datacenter=settings.consul_datacenter),
    )
    try:
        return await poller.poll_once()
    finally:
        await client.close()


@app.callback(invoke_without_command=True)
def peers(
    service_name: str | None = typer.Option(
        None,
        "--service-name",
        "-n",
        help="Logical service name",
    ),
    consul_address: str | None = typer.Option(
        None,
        "--consul-address",
        "-c",
        help="Consul agent address",
    ),
    output_format: OutputFormat = typer.Option(
        OutputFormat.TEXT,
        "--format",
        "-f",
        help="Output format: text, json",
    ),
) -> None:
    """Show the passing instances registered under a service name."""
    import json

    from rich.console import Console
    from rich.table import Table

    settings = get_settings(service_name=service_name, consul_address=consul_address)

    try:
        records = asyncio.run(list_peers(settings))
    except DiscoveryError as e:
        typer.echo(f"Discovery failed: {e}", err=True)
        raise typer.Exit(code=1)

    if output_format == OutputFormat.JSON:
        typer.echo(
            json.dumps(
                [
                    {"serviceId": r.service_id, "status": r.status.value, "address": r.address}
                    for r in records
                ],
                indent=2,
            )
        )
        return

    console = Console()
    if not records:
        console.print(f"[yellow]No healthy instances of '{settings.service_name}'[/yellow]")
        return

    table = Table(title=f"Healthy instances of '{settings.service_name}'")
    table.add_column("Service ID", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Address")
    for record in records:
        table.add_row(record.service_id, record.status.value, record.address)
    console.print(table)
