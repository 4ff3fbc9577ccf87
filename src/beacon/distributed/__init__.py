"""Distributed coordination for Beacon.

Provides:
- Leader election over a TTL session and a session-guarded key
- Periodic discovery of healthy sibling instances

Example:
    from beacon.distributed import LeaderCoordinator

    coordinator = LeaderCoordinator(client, identity, "consul-demo", errors)
    await coordinator.start(stop)
"""

from beacon.distributed.discovery import DiscoveryPoller
from beacon.distributed.leader import (
    CoordinatorState,
    LeaderCoordinator,
    LeadershipState,
    leader_key,
)
from beacon.distributed.timing import wait_for_stop

__all__ = [
    "CoordinatorState",
    "DiscoveryPoller",
    "LeaderCoordinator",
    "LeadershipState",
    "leader_key",
    "wait_for_stop",
]
