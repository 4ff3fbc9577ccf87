"""Tests for structured logging."""

from __future__ import annotations

import json
import logging
import sys

from beacon.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    LogContext,
    service_id_var,
    session_id_var,
)


def make_record(message: str = "lock acquired, registered as leader", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="beacon.distributed.leader",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_includes_context(self) -> None:
        with LogContext(service_id="consul-demo-a", session_id="s1"):
            line = JsonFormatter().format(make_record())

        data = json.loads(line)
        assert data["level"] == "INFO"
        assert data["logger"] == "beacon.distributed.leader"
        assert data["message"] == "lock acquired, registered as leader"
        assert data["service_id"] == "consul-demo-a"
        assert data["session_id"] == "s1"

    def test_omits_empty_context_and_keeps_extras(self) -> None:
        data = json.loads(JsonFormatter().format(make_record(peer="consul-demo-b")))

        assert "service_id" not in data
        assert data["peer"] == "consul-demo-b"

    def test_exception_info(self) -> None:
        try:
            raise RuntimeError("renew error")
        except RuntimeError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(record))

        assert data["exception"]["type"] == "RuntimeError"
        assert data["exception"]["message"] == "renew error"


class TestConsoleFormatter:
    def test_plain_line_with_context(self) -> None:
        with LogContext(service_id="consul-demo-a", session_id="0123456789abcdef"):
            line = ConsoleFormatter(use_colors=False).format(make_record())

        assert "| INFO" in line
        assert "lock acquired, registered as leader" in line
        assert "svc=consul-demo-a" in line
        assert "session=01234567" in line


class TestLogContext:
    def test_restores_previous_values(self) -> None:
        with LogContext(service_id="outer"):
            with LogContext(service_id="inner", session_id="s2"):
                assert service_id_var.get() == "inner"
            assert service_id_var.get() == "outer"
            assert session_id_var.get() == ""

        assert service_id_var.get() == ""

    def test_ignores_unknown_keys(self) -> None:
        with LogContext(tenant="acme"):
            assert service_id_var.get() == ""
