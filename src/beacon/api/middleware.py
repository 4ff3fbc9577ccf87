"""Access log middleware.

Logs every request the way the store's health checker sees it:

    "GET /healthz HTTP/1.1" 200 OK
"""

from __future__ import annotations

import logging
from http import HTTPStatus

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from beacon.observability.metrics import record_http_request

logger = logging.getLogger("beacon.api.access")


def status_text(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Log method, path, protocol, status and status text of each request."""

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)

        protocol = f"HTTP/{request.scope.get('http_version', '1.1')}"
        status = response.status_code
        logger.info(
            f'"{request.method} {request.url.path} {protocol}" {status} {status_text(status)}'
        )
        record_http_request(request.method, request.url.path, status)

        return response
