"""FastAPI application factory for Beacon.

Creates the application served by the health endpoint with:
- /healthz liveness probe for the coordination store's checker
- /metrics Prometheus exposition
- Access logging for every request
"""

from __future__ import annotations

from fastapi import FastAPI

from beacon import __version__
from beacon.api.middleware import AccessLogMiddleware
from beacon.api.routers import health, metrics


def create_app(force_health_failure: bool = False, enable_metrics: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        force_health_failure: Make /healthz answer 503 so the store marks
            this instance critical
        enable_metrics: Mount the /metrics endpoint
    """
    app = FastAPI(
        title="Beacon",
        description="Self-registering, leader-electing service",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.force_health_failure = force_health_failure

    app.add_middleware(AccessLogMiddleware)

    app.include_router(health.router)
    if enable_metrics:
        app.include_router(metrics.router)

    return app
