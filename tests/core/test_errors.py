"""Tests for the error taxonomy and clock injection."""

from __future__ import annotations

from datetime import UTC, date, datetime

from hostplane.core.clock import FixedClock
from hostplane.core.errors import (
    ConfigTestError,
    ExternalProcessError,
    HostplaneError,
    LockTimeoutError,
    PublishError,
)
from hostplane.core.types import PublishStage


class TestHostplaneError:
    def test_to_dict(self):
        exc = PublishError("nginx reload failed", stage=PublishStage.RELOAD, retryable=True)
        assert exc.to_dict() == {
            "error": "PublishError",
            "detail": "nginx reload failed",
            "stage": "reload",
            "retryable": True,
        }

    def test_defaults(self):
        exc = HostplaneError("nope")
        assert exc.stage is None
        assert exc.retryable is False
        assert str(exc) == "nope"

    def test_config_test_error_defaults_to_validate(self):
        exc = ConfigTestError("bad syntax", output="line 3")
        assert exc.stage is PublishStage.VALIDATE
        assert exc.output == "line 3"
        assert isinstance(exc, PublishError)

    def test_external_process_error_keeps_command(self):
        exc = ExternalProcessError("failed", command=["nginx", "-t"], returncode=1, output="x")
        assert exc.command == ("nginx", "-t")
        assert exc.returncode == 1

    def test_lock_timeout_message(self):
        exc = LockTimeoutError("example.com", 2.5)
        assert "2.5s" in exc.detail
        assert exc.retryable


class TestFixedClock:
    def test_naive_instant_is_utc(self):
        clock = FixedClock(datetime(2025, 1, 1, 23, 30))
        assert clock.now().tzinfo is UTC
        assert clock.today() == date(2025, 1, 1)

    def test_advance_crosses_midnight(self):
        clock = FixedClock(datetime(2025, 1, 1, 23, 30, tzinfo=UTC))
        clock.advance(hours=1)
        assert clock.today() == date(2025, 1, 2)

    def test_set(self):
        clock = FixedClock(datetime(2025, 1, 1, tzinfo=UTC))
        clock.set(datetime(2026, 6, 1))
        assert clock.now() == datetime(2026, 6, 1, tzinfo=UTC)
