"""Tests for peer discovery."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from beacon.coordination.base import (
    HealthStatus,
    PeerRecord,
    QueryOptions,
    ServiceIdentity,
    ServiceRegistration,
)
from beacon.coordination.memory import InMemoryCoordinationClient
from beacon.distributed.discovery import DiscoveryPoller
from beacon.errors import DiscoveryError


def make_poller(client, identity, errors, **kwargs) -> DiscoveryPoller:
    return DiscoveryPoller(client, identity, "consul-demo", errors, interval=0.001, **kwargs)


class TestPollOnce:
    """Tests for a single catalog query."""

    @pytest.mark.asyncio
    async def test_excludes_self_and_unhealthy_instances(
        self, mock_client: AsyncMock, identity: ServiceIdentity, errors: asyncio.Queue
    ) -> None:
        """Only passing siblings are reported."""
        mock_client.list_services.return_value = {"consul-demo": ["demo"], "other": []}
        mock_client.list_service_instances.return_value = [
            PeerRecord(service_id=identity.id, address=identity.address),
            PeerRecord(service_id="consul-demo-b", address="http://b:6000"),
            PeerRecord(service_id="consul-demo-c", status=HealthStatus.CRITICAL),
            PeerRecord(service_id="consul-demo-d", status=HealthStatus.WARNING),
        ]
        poller = make_poller(mock_client, identity, errors)

        peers = await poller.poll_once()

        assert [peer.service_id for peer in peers] == ["consul-demo-b"]
        assert poller.known_peers == peers
        mock_client.list_service_instances.assert_awaited_once_with("consul-demo", None)

    @pytest.mark.asyncio
    async def test_ignores_other_services(
        self, mock_client: AsyncMock, identity: ServiceIdentity, errors: asyncio.Queue
    ) -> None:
        """Services with other names are never queried."""
        mock_client.list_services.return_value = {"consul": [], "redis": ["cache"]}
        poller = make_poller(mock_client, identity, errors)

        assert await poller.poll_once() == []
        mock_client.list_service_instances.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_passes_query_options(
        self, mock_client: AsyncMock, identity: ServiceIdentity, errors: asyncio.Queue
    ) -> None:
        """Configured query options are forwarded to both catalog calls."""
        query = QueryOptions(datacenter="dc2", tag="api")
        mock_client.list_services.return_value = {"consul-demo": []}
        poller = make_poller(mock_client, identity, errors, query=query)

        await poller.poll_once()

        mock_client.list_services.assert_awaited_once_with(query)
        mock_client.list_service_instances.assert_awaited_once_with("consul-demo", query)

    @pytest.mark.asyncio
    async def test_catalog_error_wrapped(
        self, mock_client: AsyncMock, identity: ServiceIdentity, errors: asyncio.Queue
    ) -> None:
        """A catalog listing failure becomes a DiscoveryError."""
        expected = RuntimeError("connection refused")
        mock_client.list_services.side_effect = expected
        poller = make_poller(mock_client, identity, errors)

        with pytest.raises(DiscoveryError, match="failed to get service catalog") as exc_info:
            await poller.poll_once()

        assert exc_info.value.__cause__ is expected

    @pytest.mark.asyncio
    async def test_details_error_wrapped(
        self, mock_client: AsyncMock, identity: ServiceIdentity, errors: asyncio.Queue
    ) -> None:
        """A service details failure names the service."""
        mock_client.list_services.return_value = {"consul-demo": []}
        mock_client.list_service_instances.side_effect = RuntimeError("timeout")
        poller = make_poller(mock_client, identity, errors)

        with pytest.raises(DiscoveryError, match="service details for consul-demo"):
            await poller.poll_once()

    @pytest.mark.asyncio
    async def test_logs_appearing_and_disappearing_peers(
        self,
        mock_client: AsyncMock,
        identity: ServiceIdentity,
        errors: asyncio.Queue,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Changes in the healthy peer set are logged."""
        mock_client.list_services.return_value = {"consul-demo": []}
        mock_client.list_service_instances.return_value = [PeerRecord(service_id="consul-demo-b")]
        poller = make_poller(mock_client, identity, errors)

        with caplog.at_level(logging.INFO, logger="beacon.distributed.discovery"):
            await poller.poll_once()
            mock_client.list_service_instances.return_value = []
            await poller.poll_once()

        assert "discovered new service: consul-demo-b" in caplog.text
        assert "service no longer available: consul-demo-b" in caplog.text
        assert poller.known_peers == []


class TestDiscoveryLoop:
    """Tests for the background poll loop."""

    @pytest.mark.asyncio
    async def test_catalog_error_reported_once(
        self, mock_client: AsyncMock, identity: ServiceIdentity, errors: asyncio.Queue
    ) -> None:
        """The first store error is put on the channel and ends the loop."""
        mock_client.list_services.side_effect = RuntimeError("boom")
        poller = make_poller(mock_client, identity, errors)

        poller.start(asyncio.Event())
        await asyncio.wait_for(poller.join(), timeout=2.0)

        assert errors.qsize() == 1
        assert isinstance(errors.get_nowait(), DiscoveryError)
        assert mock_client.list_services.await_count == 1
        assert poller.running is False

    @pytest.mark.asyncio
    async def test_stop_before_first_poll(
        self, mock_client: AsyncMock, identity: ServiceIdentity, errors: asyncio.Queue
    ) -> None:
        """A stop set before the first interval elapses means no query at all."""
        stop = asyncio.Event()
        stop.set()
        poller = make_poller(mock_client, identity, errors)

        poller.start(stop)
        await poller.join()

        mock_client.list_services.assert_not_awaited()
        assert errors.empty()

    @pytest.mark.asyncio
    async def test_polls_until_stopped(
        self, mock_client: AsyncMock, identity: ServiceIdentity, errors: asyncio.Queue
    ) -> None:
        """The poller keeps polling on every interval until stopped."""
        stop = asyncio.Event()
        poller = make_poller(mock_client, identity, errors)

        poller.start(stop)
        for _ in range(200):
            if mock_client.list_services.await_count >= 3:
                break
            await asyncio.sleep(0.001)
        stop.set()
        await asyncio.wait_for(poller.join(), timeout=2.0)

        assert mock_client.list_services.await_count >= 3
        assert errors.empty()

    def test_interval_must_be_positive(
        self, mock_client: AsyncMock, identity: ServiceIdentity, errors: asyncio.Queue
    ) -> None:
        with pytest.raises(ValueError):
            DiscoveryPoller(mock_client, identity, "consul-demo", errors, interval=0)


class TestDiscoveryWithMemoryStore:
    """Discovery against the in-memory catalog."""

    @pytest.mark.asyncio
    async def test_finds_registered_siblings(
        self,
        memory_client: InMemoryCoordinationClient,
        identity: ServiceIdentity,
        errors: asyncio.Queue,
    ) -> None:
        for service_id in (identity.id, "consul-demo-b", "consul-demo-c"):
            await memory_client.register_service(
                ServiceRegistration(id=service_id, name="consul-demo", address="http://x")
            )
        memory_client.set_health("consul-demo-c", HealthStatus.CRITICAL)
        poller = make_poller(memory_client, identity, errors)

        peers = await poller.poll_once()

        assert [peer.service_id for peer in peers] == ["consul-demo-b"]
