"""Beacon: a self-registering, leader-electing network service.

Registers itself and an HTTP health check with a Consul agent, contends for
a singleton leader role through a TTL session lock, and discovers healthy
sibling instances.
"""

__version__ = "0.1.0"
