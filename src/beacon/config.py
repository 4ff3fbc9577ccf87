from __future__ import annotations

from typing import Literal
from uuid import uuid4

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BEACON_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Logical name shared by every peer; also scopes the leader lock key
    service_name: str = "consul-demo"
    instance_id: str = Field(default_factory=lambda: str(uuid4())[:8])
    host: str = "0.0.0.0"  # nosec B104 - intentional for container deployments
    port: int = 6000

    # Address the coordination store uses to reach the health endpoint.
    # Defaults to http://<service_id>:<port>, the container hostname.
    advertise_address: str | None = None
    service_tags: list[str] = Field(default_factory=lambda: ["demo", "api"])

    # Coordination store
    coordination_backend: Literal["consul", "memory"] = "consul"
    consul_address: str = Field(
        default="http://consul-agent:8500",
        validation_alias=AliasChoices("BEACON_CONSUL_ADDRESS", "CONSUL_HTTP_ADDR"),
    )
    consul_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("BEACON_CONSUL_TOKEN", "CONSUL_HTTP_TOKEN"),
    )
    consul_datacenter: str | None = None
    consul_timeout: float = 10.0

    # Leader election
    session_ttl: float = 60.0
    leader_tick_interval: float = 30.0
    # Consecutive "no session" renewals tolerated before giving up (None = forever)
    max_missing_session_ticks: int | None = None

    # Discovery
    discovery_interval: float = 30.0

    # Health check run by the coordination store
    health_check_interval: float = 5.0
    health_check_timeout: float = 1.0
    force_health_failure: bool = False

    shutdown_grace_period: float = 5.0

    # Observability
    log_level: str = "INFO"
    log_json: bool = True
    enable_metrics: bool = True

    @model_validator(mode="after")
    def _check_timings(self) -> "Settings":
        for name in (
            "session_ttl",
            "leader_tick_interval",
            "discovery_interval",
            "health_check_interval",
            "health_check_timeout",
            "shutdown_grace_period",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.session_ttl < 2 * self.leader_tick_interval:
            raise ValueError(
                "session_ttl must cover at least two leader ticks "
                f"({self.session_ttl}s < 2 x {self.leader_tick_interval}s)"
            )
        if self.max_missing_session_ticks is not None and self.max_missing_session_ticks < 1:
            raise ValueError("max_missing_session_ticks must be at least 1")
        return self

    @property
    def service_id(self) -> str:
        """Globally unique id of this instance."""
        return f"{self.service_name}-{self.instance_id}"

    @property
    def service_address(self) -> str:
        if self.advertise_address:
            return self.advertise_address.rstrip("/")
        return f"http://{self.service_id}:{self.port}"


def get_settings(**overrides: object) -> Settings:
    """Build settings from the environment, letting explicit values win."""
    values = {k: v for k, v in overrides.items() if v is not None}
    return Settings(**values)  # type: ignore[arg-type]
