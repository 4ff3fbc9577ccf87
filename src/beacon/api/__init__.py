"""HTTP surface of Beacon: health endpoint app and its server."""

from beacon.api.app import create_app
from beacon.api.server import HealthEndpoint

__all__ = ["HealthEndpoint", "create_app"]
