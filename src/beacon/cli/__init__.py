"""CLI commands for Beacon.

Provides command-line interface using Typer:
- beacon run: Run a service instance
- beacon peers: List healthy peers from the catalog

Usage:
    beacon --help
    beacon run --id 1 --port 6000
    beacon peers --format json
"""

import typer

from beacon.cli.peers import app as peers_app
from beacon.cli.run import app as run_app

# Main CLI application
app = typer.Typer(
    name="beacon",
    help="Beacon: self-registering, leader-electing service",
    no_args_is_help=True,
)

app.add_typer(run_app, name="run")
app.add_typer(peers_app, name="peers")


@app.callback()
def callback() -> None:
    """Beacon: self-registering, leader-electing service."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
