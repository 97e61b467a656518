"""SSL certificate entity."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID, uuid4

from hostplane.core.types import CertificateKind, CertificateStatus

_EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class SslCertificate:
    """The active certificate of one domain.

    ``private_key`` holds the sealed (encrypted) key blob, never the PEM.
    ``issued_at`` and ``expires_at`` are copied from the certificate's own
    validity fields whenever the material changes.
    """

    domain_id: UUID
    domain_name: str
    kind: CertificateKind
    status: CertificateStatus
    certificate: str
    private_key: str
    issued_at: datetime
    expires_at: datetime
    hostnames: tuple[str, ...] = ()
    ca_bundle: str | None = None
    auto_renew: bool = True
    fingerprint: str | None = None
    last_error: str | None = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = _EPOCH
    updated_at: datetime = _EPOCH

    def days_remaining(self, now: datetime) -> float:
        return (self.expires_at - now).total_seconds() / 86400
