"""Tests for the health endpoint app and server."""

from __future__ import annotations

import asyncio
import logging
import socket

import httpx
import pytest
from fastapi.testclient import TestClient

from beacon.api import HealthEndpoint, create_app
from beacon.errors import EndpointError, StartupError


@pytest.fixture
def client() -> TestClient:
    """Test client for a healthy instance."""
    return TestClient(create_app())


class TestHealthz:
    """Tests for GET /healthz."""

    def test_get_returns_ok(self, client: TestClient) -> None:
        """GET /healthz answers 200 with a plain-text body."""
        response = client.get("/healthz")

        assert response.status_code == 200
        assert response.text.strip() == "OK"
        assert response.headers["content-type"].startswith("text/plain")

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    def test_other_methods_not_allowed(self, client: TestClient, method: str) -> None:
        """Non-GET requests get a 405 with the status text as body."""
        response = client.request(method, "/healthz")

        assert response.status_code == 405
        assert response.text.strip() == "Method Not Allowed"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_forced_failure_returns_503(self) -> None:
        """A forced health failure makes the check fail."""
        client = TestClient(create_app(force_health_failure=True))

        response = client.get("/healthz")

        assert response.status_code == 503
        assert response.text.strip() == "Service Unavailable"

    def test_unknown_path_is_404(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 404

    def test_access_log_line(self, client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
        """Each request is logged with method, path, protocol and status."""
        with caplog.at_level(logging.INFO, logger="beacon.api.access"):
            client.get("/healthz")
            client.post("/healthz")

        messages = [r.getMessage() for r in caplog.records if r.name == "beacon.api.access"]
        assert '"GET /healthz HTTP/1.1" 200 OK' in messages
        assert '"POST /healthz HTTP/1.1" 405 Method Not Allowed' in messages


class TestMetricsRoute:
    """Tests for GET /metrics."""

    def test_metrics_exposed(self, client: TestClient) -> None:
        client.get("/healthz")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")

    def test_metrics_can_be_disabled(self) -> None:
        client = TestClient(create_app(enable_metrics=False))

        assert client.get("/metrics").status_code == 404


class TestHealthEndpointServer:
    """Tests for serving the app with uvicorn."""

    @pytest.mark.asyncio
    async def test_serves_until_stopped(self) -> None:
        """The endpoint answers health checks on its bound port and stops cleanly."""
        errors: asyncio.Queue = asyncio.Queue()
        endpoint = HealthEndpoint(create_app(), host="127.0.0.1", port=0, grace_period=2.0)

        await endpoint.start(errors)
        assert endpoint.running is True
        port = endpoint.bound_port
        assert port

        async with httpx.AsyncClient() as http:
            response = await http.get(f"http://127.0.0.1:{port}/healthz")
        assert response.status_code == 200
        assert response.text.strip() == "OK"

        await endpoint.stop()
        await endpoint.stop()

        assert endpoint.running is False
        assert errors.empty()

    @pytest.mark.asyncio
    async def test_port_in_use_raises_startup_error(self) -> None:
        """An unusable port fails start() synchronously."""
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen()
        port = blocker.getsockname()[1]
        try:
            endpoint = HealthEndpoint(create_app(), host="127.0.0.1", port=port)
            with pytest.raises(StartupError, match="error binding http server"):
                await endpoint.start()
            assert endpoint.running is False
        finally:
            blocker.close()

    @pytest.mark.asyncio
    async def test_unexpected_exit_reported(self) -> None:
        """A server that exits without stop() puts an EndpointError on the channel."""
        errors: asyncio.Queue = asyncio.Queue()
        endpoint = HealthEndpoint(create_app(), host="127.0.0.1", port=0, grace_period=2.0)
        await endpoint.start(errors)

        assert endpoint._server is not None
        endpoint._server.should_exit = True
        error = await asyncio.wait_for(errors.get(), timeout=5.0)

        assert isinstance(error, EndpointError)
        await endpoint.stop()

    @pytest.mark.asyncio
    async def test_stop_before_start_is_noop(self) -> None:
        endpoint = HealthEndpoint(create_app(), host="127.0.0.1", port=0)

        await endpoint.stop()

        assert endpoint.running is False
