"""Tests for the certificate state machine."""

from __future__ import annotations

import logging

import pytest

from hostplane.core.state import (
    CERTIFICATE_TRANSITIONS,
    RENEWABLE_STATES,
    assert_transition,
    log_transition,
)
from hostplane.core.types import CertificateStatus as S

# ---------------------------------------------------------------------------
# Allowed transitions
# ---------------------------------------------------------------------------


class TestAllowedTransitions:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (S.REQUESTED, S.ISSUED),
            (S.ISSUED, S.INSTALLED),
            (S.INSTALLED, S.EXPIRING),
            (S.EXPIRING, S.RENEWING),
            (S.RENEWING, S.RENEWED),
            (S.RENEWED, S.INSTALLED),
            (S.RENEWING, S.FAILED),
            (S.FAILED, S.EXPIRING),
            (S.INSTALLED, S.REVOKED),
        ],
    )
    def test_lifecycle_edges(self, current, target):
        assert_transition(current, target)

    def test_every_status_has_an_entry(self):
        assert set(CERTIFICATE_TRANSITIONS) == set(S)


# ---------------------------------------------------------------------------
# Rejected transitions
# ---------------------------------------------------------------------------


class TestRejectedTransitions:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (S.REQUESTED, S.INSTALLED),
            (S.ISSUED, S.RENEWED),
            (S.EXPIRING, S.INSTALLED),
            (S.FAILED, S.INSTALLED),
            (S.REVOKED, S.ISSUED),
        ],
    )
    def test_invalid_edge_raises(self, current, target):
        with pytest.raises(ValueError, match="Invalid transition"):
            assert_transition(current, target)

    def test_revoked_is_terminal(self):
        with pytest.raises(ValueError, match="terminal"):
            assert_transition(S.REVOKED, S.EXPIRING)

    def test_unknown_current_status(self):
        with pytest.raises(ValueError, match="Unknown status"):
            assert_transition(S.ISSUED, S.INSTALLED, table={})


class TestRenewableStates:
    def test_renewing_and_revoked_are_not_candidates(self):
        assert S.RENEWING not in RENEWABLE_STATES
        assert S.REVOKED not in RENEWABLE_STATES
        assert S.EXPIRING in RENEWABLE_STATES


class TestLogTransition:
    def test_structured_fields(self, caplog):
        with caplog.at_level(logging.INFO, logger="hostplane.core.state"):
            log_transition("certificate", "example.com", S.ISSUED, S.INSTALLED, reason="tls vhost live")
        record = caplog.records[-1]
        assert record.event == "state_transition"
        assert record.from_status == "issued"
        assert record.to_status == "installed"
        assert record.reason == "tls vhost live"
        assert "(tls vhost live)" in record.getMessage()
