"""Certificate lifecycle state machine.

Defines the valid status transitions for a domain's certificate.  All
transitions are enforced via :func:`assert_transition`.

Usage::

    from hostplane.core.state import CERTIFICATE_TRANSITIONS, assert_transition
    from hostplane.core.types import CertificateStatus

    assert_transition(
        CertificateStatus.ISSUED, CertificateStatus.INSTALLED,
        CERTIFICATE_TRANSITIONS,
    )
"""

from __future__ import annotations

import logging

from hostplane.core.types import CertificateStatus

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# requested → issued → installed → expiring → renewing → renewed → installed
#                                                      ↘ failed → expiring
# Any live state may be revoked; revoked is terminal.
# ---------------------------------------------------------------------------

CERTIFICATE_TRANSITIONS: dict[CertificateStatus, frozenset[CertificateStatus]] = {
    CertificateStatus.REQUESTED: frozenset({CertificateStatus.ISSUED, CertificateStatus.FAILED}),
    CertificateStatus.ISSUED: frozenset(
        {
            CertificateStatus.INSTALLED,
            CertificateStatus.EXPIRING,
            CertificateStatus.REVOKED,
        }
    ),
    CertificateStatus.INSTALLED: frozenset(
        {
            CertificateStatus.EXPIRING,
            CertificateStatus.RENEWING,
            CertificateStatus.REVOKED,
        }
    ),
    CertificateStatus.EXPIRING: frozenset(
        {
            CertificateStatus.RENEWING,
            CertificateStatus.REVOKED,
        }
    ),
    CertificateStatus.RENEWING: frozenset(
        {
            CertificateStatus.RENEWED,
            CertificateStatus.FAILED,
        }
    ),
    CertificateStatus.RENEWED: frozenset(
        {
            CertificateStatus.INSTALLED,
            CertificateStatus.FAILED,
        }
    ),
    CertificateStatus.FAILED: frozenset(
        {
            CertificateStatus.EXPIRING,
            CertificateStatus.REVOKED,
        }
    ),
    CertificateStatus.REVOKED: frozenset(),
}

# States in which a certificate is considered for the renewal sweep.
RENEWABLE_STATES = frozenset(
    {
        CertificateStatus.ISSUED,
        CertificateStatus.INSTALLED,
        CertificateStatus.EXPIRING,
        CertificateStatus.FAILED,
    }
)


def assert_transition(
    current: CertificateStatus,
    target: CertificateStatus,
    table: dict = CERTIFICATE_TRANSITIONS,
) -> None:
    """Raise :class:`ValueError` if *current* → *target* is not allowed.

    Parameters
    ----------
    current:
        The current status of the certificate.
    target:
        The desired new status.
    table:
        Transition table, :data:`CERTIFICATE_TRANSITIONS` by default.

    """
    allowed = table.get(current)
    if allowed is None:
        msg = f"Unknown status {current!r}"
        raise ValueError(msg)
    if target not in allowed:
        msg = (
            f"Invalid transition {current.value!r} -> {target.value!r}; "
            f"allowed targets: {sorted(s.value for s in allowed) or '(terminal)'}"
        )
        raise ValueError(
            msg,
        )


def log_transition(
    resource_type: str,
    resource_id,
    from_status,
    to_status,
    *,
    reason: str | None = None,
) -> None:
    """Emit a structured log entry for a state transition.

    Parameters
    ----------
    resource_type:
        Usually ``"certificate"``.
    resource_id:
        Identifier of the resource (domain name or UUID).
    from_status:
        The previous status value.
    to_status:
        The new status value.
    reason:
        Optional human-readable reason for the transition.

    """
    extra = {
        "event": "state_transition",
        "resource_type": resource_type,
        "resource_id": str(resource_id),
        "from_status": from_status.value if hasattr(from_status, "value") else str(from_status),
        "to_status": to_status.value if hasattr(to_status, "value") else str(to_status),
    }
    if reason:
        extra["reason"] = reason
    log.info(
        "%s %s: %s -> %s%s",
        resource_type,
        resource_id,
        extra["from_status"],
        extra["to_status"],
        f" ({reason})" if reason else "",
        extra=extra,
    )
