"""Tests for configuration loading."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from beacon.config import Settings, get_settings


class TestSettings:
    """Tests for Settings defaults, environment and validation."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("CONSUL_HTTP_ADDR", raising=False)
        settings = Settings(instance_id="1")

        assert settings.service_id == "consul-demo-1"
        assert settings.service_address == "http://consul-demo-1:6000"
        assert settings.consul_address == "http://consul-agent:8500"
        assert settings.session_ttl == 60.0
        assert settings.leader_tick_interval == 30.0
        assert settings.max_missing_session_ticks is None

    def test_generated_instance_ids_differ(self) -> None:
        assert Settings().instance_id != Settings().instance_id

    def test_environment_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BEACON_SERVICE_NAME", "payments")
        monkeypatch.setenv("BEACON_PORT", "6001")

        settings = Settings(instance_id="2")

        assert settings.service_id == "payments-2"
        assert settings.port == 6001

    def test_consul_environment_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The standard Consul variables are honoured."""
        monkeypatch.setenv("CONSUL_HTTP_ADDR", "http://localhost:8500")
        monkeypatch.setenv("CONSUL_HTTP_TOKEN", "secret")

        settings = Settings()

        assert settings.consul_address == "http://localhost:8500"
        assert settings.consul_token == "secret"

    def test_ttl_must_cover_two_ticks(self) -> None:
        with pytest.raises(ValidationError, match="at least two leader ticks"):
            Settings(session_ttl=50, leader_tick_interval=30)

    @pytest.mark.parametrize("field", ["leader_tick_interval", "discovery_interval"])
    def test_intervals_must_be_positive(self, field: str) -> None:
        with pytest.raises(ValidationError):
            Settings(**{field: 0})

    def test_max_missing_session_ticks_bound(self) -> None:
        with pytest.raises(ValidationError):
            Settings(max_missing_session_ticks=0)

    def test_unknown_backend_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(coordination_backend="etcd")


class TestGetSettings:
    """Tests for CLI overrides."""

    def test_none_overrides_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BEACON_PORT", "7000")

        settings = get_settings(port=None, instance_id="3")

        assert settings.port == 7000
        assert settings.instance_id == "3"

    def test_explicit_overrides_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BEACON_PORT", "7000")

        settings = get_settings(port=6005, consul_address="http://127.0.0.1:8500")

        assert settings.port == 6005
        assert settings.consul_address == "http://127.0.0.1:8500"
