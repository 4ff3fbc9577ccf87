"""Global pytest configuration and fixtures.

Provides coordination store doubles shared by the unit tests.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from beacon.coordination.base import CoordinationClient, ServiceIdentity, SessionEntry
from beacon.coordination.memory import InMemoryCoordinationClient
from beacon.errors import BeaconError

SERVICE_NAME = "consul-demo"


@pytest.fixture
def identity() -> ServiceIdentity:
    """Identity of the instance under test."""
    return ServiceIdentity(id=f"{SERVICE_NAME}-test", address="http://consul-demo-test:6000")


@pytest.fixture
def errors() -> asyncio.Queue[BeaconError]:
    """Error channel shared by background tasks."""
    return asyncio.Queue()


@pytest.fixture
def mock_client() -> AsyncMock:
    """Coordination client double that succeeds and always wins the lock."""
    client = AsyncMock(spec=CoordinationClient)
    client.register_service.return_value = None
    client.deregister_service.return_value = None
    client.create_session.return_value = "s1"
    client.renew_session.return_value = SessionEntry(id="s1")
    client.acquire_lock.return_value = True
    client.list_services.return_value = {}
    client.list_service_instances.return_value = []
    client.close.return_value = None
    return client


@pytest.fixture
def memory_client() -> InMemoryCoordinationClient:
    """In-process coordination store."""
    return InMemoryCoordinationClient()
