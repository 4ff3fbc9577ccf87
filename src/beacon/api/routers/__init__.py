"""HTTP routers for Beacon."""

from beacon.api.routers import health, metrics

__all__ = ["health", "metrics"]
