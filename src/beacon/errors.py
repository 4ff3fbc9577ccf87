"""Error kinds raised by Beacon.

Fatal task errors are chained to the store error that caused them, so the
original failure is always available on ``__cause__``:

    try:
        await client.renew_session(session_id)
    except Exception as e:
        raise RenewalError(f"error renewing leader session: {e}") from e
"""

from __future__ import annotations


class BeaconError(Exception):
    """Base class for all Beacon errors."""

    kind: str = "beacon"


class CoordinationError(BeaconError):
    """The coordination store was unreachable or rejected a request."""

    kind = "coordination"

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class StartupError(BeaconError):
    """Startup could not complete (registration, session or endpoint bind)."""

    kind = "startup"


class RenewalError(BeaconError):
    """Session renewal failed; the leader coordinator has terminated."""

    kind = "renewal"


class AcquireError(BeaconError):
    """Lock acquisition failed; the leader coordinator has terminated."""

    kind = "acquire"


class DiscoveryError(BeaconError):
    """Catalog listing failed; the discovery poller has terminated."""

    kind = "discovery"


class EndpointError(BeaconError):
    """The health endpoint server stopped unexpectedly."""

    kind = "endpoint"


class ShutdownError(BeaconError):
    """Graceful shutdown did not complete cleanly.

    When more than one shutdown step fails, a plain ShutdownError is raised
    with every failure in ``errors``.
    """

    kind = "shutdown"

    def __init__(self, message: str, errors: list[BeaconError] | None = None):
        self.errors = errors or []
        super().__init__(message)


class DeregistrationError(ShutdownError):
    """The service could not be removed from the coordination store."""

    kind = "deregistration"


class EndpointStopError(ShutdownError):
    """The health endpoint did not stop within the grace period."""

    kind = "endpoint_stop"
