"""Enumerated types shared by drivers, models and the persistence layer.

All enums inherit from :class:`enum.StrEnum` so their ``.value`` is a
plain string that psycopg serialises as TEXT and that renders directly
into configuration templates.
"""

from __future__ import annotations

from enum import StrEnum

# ---------------------------------------------------------------------------
# Domain
# ---------------------------------------------------------------------------


class DomainKind(StrEnum):
    PRIMARY = "primary"
    ADDON = "addon"
    ALIAS = "alias"
    PARKED = "parked"


# ---------------------------------------------------------------------------
# DNS
# ---------------------------------------------------------------------------


class RecordType(StrEnum):
    A = "A"
    AAAA = "AAAA"
    CNAME = "CNAME"
    MX = "MX"
    TXT = "TXT"
    NS = "NS"
    SRV = "SRV"
    CAA = "CAA"
    PTR = "PTR"
    SOA = "SOA"


# User-manageable types; SOA is materialised from the zone itself.
USER_RECORD_TYPES = frozenset(t for t in RecordType if t is not RecordType.SOA)

PRIORITY_RECORD_TYPES = frozenset({RecordType.MX, RecordType.SRV})


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


class CertificateKind(StrEnum):
    SELF_SIGNED = "self_signed"
    ACME = "acme"
    CUSTOM = "custom"


class CertificateStatus(StrEnum):
    REQUESTED = "requested"
    ISSUED = "issued"
    INSTALLED = "installed"
    EXPIRING = "expiring"
    RENEWING = "renewing"
    RENEWED = "renewed"
    FAILED = "failed"
    REVOKED = "revoked"


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


class PublishStage(StrEnum):
    RENDER = "render"
    VALIDATE = "validate"
    ACTIVATE = "activate"
    RELOAD = "reload"


# ---------------------------------------------------------------------------
# Workflow results
# ---------------------------------------------------------------------------


class StepOutcome(StrEnum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"
