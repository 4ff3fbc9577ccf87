"""Leader election over coordination store sessions.

Uses a TTL session and a session-guarded key to decide which instance of a
service holds the singleton leader role:
1. A session with a TTL and delete-on-expire behavior is created at startup
2. Every tick the session is renewed, then the leader key is acquired with it
3. If an instance dies, its session expires, the key is deleted and another
   instance acquires it on its next tick

The store's acquire result is the only source of truth: leadership is
re-asserted (or lost) on every tick and never assumed between ticks.

Example:
    errors: asyncio.Queue[BeaconError] = asyncio.Queue()
    stop = asyncio.Event()

    coordinator = LeaderCoordinator(client, identity, "consul-demo", errors)
    await coordinator.start(stop)   # raises StartupError if no session

    ...
    stop.set()
    await coordinator.join()
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from beacon.coordination.base import CoordinationClient, ServiceIdentity, SessionBehavior
from beacon.distributed.timing import wait_for_stop
from beacon.errors import AcquireError, BeaconError, RenewalError, StartupError
from beacon.observability.logging import LogContext, session_id_var
from beacon.observability.metrics import (
    record_fatal_error,
    record_lock_acquisition,
    record_session_renewal,
    set_leader,
)

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 60.0  # Seconds
DEFAULT_TICK_INTERVAL = 30.0  # Renew twice per TTL


def leader_key(service_name: str) -> str:
    """Key contended by every instance of ``service_name``."""
    return f"service/{service_name}/leader"


class LeadershipState(str, Enum):
    """Role of this instance as of its last tick."""

    FOLLOWER = "follower"
    LEADER = "leader"


class CoordinatorState(str, Enum):
    """Lifecycle of the coordinator."""

    INITIALIZING = "initializing"
    HOLDING_SESSION = "holding_session"
    RENEWING = "renewing"
    ACQUIRING = "acquiring"
    TERMINATED = "terminated"


class LeaderCoordinator:
    """Session renewal and leader lock acquisition loop.

    Fatal store errors are put on ``errors`` (once) and end the loop; the
    caller decides what to do about them. A renewal that finds no session is
    not fatal: the tick is skipped and renewal is retried on the next one.

    Args:
        client: Coordination store client
        identity: This instance's identity; its id is the lock value
        service_name: Logical service name scoping the leader key
        errors: Channel receiving fatal errors
        session_ttl: Session TTL in seconds (at least two tick intervals)
        tick_interval: Seconds between renew/acquire rounds
        max_missing_session_ticks: Consecutive "no session" ticks tolerated
            before giving up with a RenewalError (None = never give up)
    """

    def __init__(
        self,
        client: CoordinationClient,
        identity: ServiceIdentity,
        service_name: str,
        errors: asyncio.Queue[BeaconError],
        session_ttl: float = DEFAULT_SESSION_TTL,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        max_missing_session_ticks: int | None = None,
    ):
        if tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        if session_ttl < 2 * tick_interval:
            raise ValueError("session_ttl must be at least twice the tick interval")

        self.client = client
        self.identity = identity
        self.service_name = service_name
        self.errors = errors
        self.session_ttl = session_ttl
        self.tick_interval = tick_interval
        self.max_missing_session_ticks = max_missing_session_ticks

        self._lock_key = leader_key(service_name)
        self._session_id: str | None = None
        self._leadership = LeadershipState.FOLLOWER
        self._state = CoordinatorState.INITIALIZING
        self._missing_ticks = 0
        self._task: asyncio.Task[None] | None = None

        self._on_elected: list[asyncio.Future[bool]] = []

    @property
    def lock_key(self) -> str:
        """The store key contended for leadership."""
        return self._lock_key

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def leadership(self) -> LeadershipState:
        return self._leadership

    @property
    def is_leader(self) -> bool:
        """True if the last acquire attempt reported this instance as holder."""
        return self._leadership == LeadershipState.LEADER

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, stop: asyncio.Event) -> None:
        """Create the leader session and start the tick loop.

        Raises:
            StartupError: If the session cannot be created. Nothing is
                started in that case.
        """
        if self._task is not None:
            return

        try:
            self._session_id = await self.client.create_session(
                self._lock_key,
                self.session_ttl,
                SessionBehavior.DELETE,
            )
        except Exception as e:
            self._state = CoordinatorState.TERMINATED
            raise StartupError(f"error creating leader session: {e}") from e

        self._state = CoordinatorState.HOLDING_SESSION
        self._task = asyncio.create_task(self._run(stop), name=f"leader:{self.identity.id}")
        logger.info(
            f"Started leader election for '{self.service_name}' as {self.identity.id} "
            f"(session {self._session_id})"
        )

    async def join(self) -> None:
        """Wait for the tick loop to finish."""
        if self._task is not None:
            await self._task

    async def _run(self, stop: asyncio.Event) -> None:
        """Main tick loop."""
        with LogContext(service_id=self.identity.id, session_id=self._session_id or ""):
            try:
                while await self._tick():
                    if await wait_for_stop(stop, self.tick_interval):
                        break
            finally:
                self._state = CoordinatorState.TERMINATED
                if self.is_leader:
                    self._leadership = LeadershipState.FOLLOWER
                    set_leader(False)
                self._resolve_waiters(False)
                logger.info(f"Stopped leader election for '{self.service_name}'")

    async def _tick(self) -> bool:
        """Renew, then acquire. Returns False when the loop must end."""
        self._state = CoordinatorState.RENEWING
        try:
            session = await self.client.renew_session(self._session_id or "")
        except Exception as e:
            record_session_renewal("error")
            self._report(RenewalError(f"error renewing leader session: {e}"), e)
            return False

        if session is None:
            record_session_renewal("missing")
            self._missing_ticks += 1
            logger.warning(f"error: leader session {self._session_id} does not exist")
            self._set_leadership(False)
            self._state = CoordinatorState.HOLDING_SESSION

            limit = self.max_missing_session_ticks
            if limit is not None and self._missing_ticks >= limit:
                self._report(
                    RenewalError(
                        f"leader session {self._session_id} missing for "
                        f"{self._missing_ticks} consecutive ticks"
                    )
                )
                return False
            return True

        record_session_renewal("renewed")
        self._missing_ticks = 0
        if session.id and session.id != self._session_id:
            logger.info(f"Leader session changed from {self._session_id} to {session.id}")
            self._session_id = session.id
            session_id_var.set(session.id)

        self._state = CoordinatorState.ACQUIRING
        try:
            acquired = await self.client.acquire_lock(
                self._lock_key,
                self.identity.id,
                self._session_id or "",
            )
        except Exception as e:
            record_lock_acquisition("error")
            self._report(AcquireError(f"error acquiring lock: {e}"), e)
            return False

        record_lock_acquisition("acquired" if acquired else "held_elsewhere")
        if acquired:
            logger.info("lock acquired, registered as leader")
        self._set_leadership(acquired)
        self._state = CoordinatorState.HOLDING_SESSION
        return True

    def _set_leadership(self, leader: bool) -> None:
        was_leader = self.is_leader
        self._leadership = LeadershipState.LEADER if leader else LeadershipState.FOLLOWER
        set_leader(leader)

        if leader and not was_leader:
            logger.info(f"Elected as leader for '{self.service_name}'")
            self._resolve_waiters(True)
        elif was_leader and not leader:
            logger.warning(f"Lost leadership for '{self.service_name}'")

    def _resolve_waiters(self, elected: bool) -> None:
        for future in self._on_elected:
            if not future.done():
                future.set_result(elected)
        self._on_elected.clear()

    def _report(self, error: BeaconError, cause: BaseException | None = None) -> None:
        if cause is not None:
            error.__cause__ = cause
        logger.error(str(error))
        record_fatal_error(error.kind)
        self.errors.put_nowait(error)

    async def wait_for_leadership(self, timeout: float | None = None) -> bool:
        """Wait until this instance becomes the leader.

        Args:
            timeout: Maximum time to wait in seconds (None = wait forever)

        Returns:
            True if leadership was acquired, False on timeout or once the
            election loop has ended
        """
        if self.is_leader:
            return True
        if self._state == CoordinatorState.TERMINATED:
            return False

        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._on_elected.append(future)

        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            if future in self._on_elected:
                self._on_elected.remove(future)
            return False
