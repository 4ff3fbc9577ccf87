"""Health check endpoint for Beacon.

Provides the liveness probe polled by the coordination store's checker:
- GET /healthz - 200 "OK" while the process is running
"""

from __future__ import annotations

from http import HTTPStatus

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["health"])

HEALTH_PATH = "/healthz"

# Every method is routed here so that non-GET requests get a plain 405
ROUTED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def plain_error(status: int) -> PlainTextResponse:
    """Plain-text error response carrying the status text as body."""
    return PlainTextResponse(
        f"{HTTPStatus(status).phrase}\n",
        status_code=status,
        headers={"X-Content-Type-Options": "nosniff"},
    )


@router.api_route(HEALTH_PATH, methods=ROUTED_METHODS, response_class=PlainTextResponse)
async def healthz(request: Request) -> PlainTextResponse:
    """Liveness probe.

    Returns OK if the process is running. Fails with 503 when the instance
    was started with forced health failure, so the store marks it critical.
    """
    if request.method != "GET":
        return plain_error(HTTPStatus.METHOD_NOT_ALLOWED)

    if getattr(request.app.state, "force_health_failure", False):
        return plain_error(HTTPStatus.SERVICE_UNAVAILABLE)

    return PlainTextResponse("OK\n", status_code=HTTPStatus.OK)
