"""SSL certificate repository."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pypgkit import BaseRepository, Database

from hostplane.core.state import RENEWABLE_STATES
from hostplane.core.types import CertificateKind, CertificateStatus
from hostplane.models.certificate import SslCertificate

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

_UPSERT_COLUMNS = (
    "domain_name",
    "kind",
    "status",
    "certificate",
    "private_key",
    "ca_bundle",
    "hostnames",
    "issued_at",
    "expires_at",
    "auto_renew",
    "fingerprint",
    "last_error",
)


class CertificateRepository(BaseRepository[SslCertificate]):
    table_name = "ssl_certificates"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> SslCertificate:
        return SslCertificate(
            id=row["id"],
            domain_id=row["domain_id"],
            domain_name=row["domain_name"],
            kind=CertificateKind(row["kind"]),
            status=CertificateStatus(row["status"]),
            certificate=row["certificate"],
            private_key=row["private_key"],
            ca_bundle=row.get("ca_bundle"),
            hostnames=tuple(row.get("hostnames") or ()),
            issued_at=row["issued_at"],
            expires_at=row["expires_at"],
            auto_renew=row["auto_renew"],
            fingerprint=row.get("fingerprint"),
            last_error=row.get("last_error"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _entity_to_row(self, entity: SslCertificate) -> dict:
        return {
            "id": entity.id,
            "domain_id": entity.domain_id,
            "domain_name": entity.domain_name,
            "kind": entity.kind.value,
            "status": entity.status.value,
            "certificate": entity.certificate,
            "private_key": entity.private_key,
            "ca_bundle": entity.ca_bundle,
            "hostnames": list(entity.hostnames),
            "issued_at": entity.issued_at,
            "expires_at": entity.expires_at,
            "auto_renew": entity.auto_renew,
            "fingerprint": entity.fingerprint,
            "last_error": entity.last_error,
        }

    def find_by_domain(self, domain_id: UUID) -> SslCertificate | None:
        """Return the domain's active certificate, if any."""
        return self.find_one_by({"domain_id": domain_id})

    def save(self, entity: SslCertificate) -> SslCertificate:
        """Insert *entity*, superseding any existing certificate of its domain.

        A domain has at most one certificate row; a new issuance replaces
        the material of the existing row in place.
        """
        row = self._entity_to_row(entity)
        columns = list(row)
        updates = ", ".join(f"{col} = EXCLUDED.{col}" for col in _UPSERT_COLUMNS)
        db = Database.get_instance()
        saved = db.fetch_one(
            f"INSERT INTO ssl_certificates ({', '.join(columns)}) "  # noqa: S608
            f"VALUES ({', '.join(['%s'] * len(columns))}) "
            f"ON CONFLICT (domain_id) DO UPDATE SET {updates}, updated_at = now() "
            "RETURNING *",
            tuple(row.values()),
            as_dict=True,
        )
        return self._row_to_entity(saved)

    def update_status(
        self,
        certificate_id: UUID,
        status: CertificateStatus,
        *,
        last_error: str | None = None,
    ) -> SslCertificate | None:
        db = Database.get_instance()
        row = db.fetch_one(
            "UPDATE ssl_certificates "
            "SET status = %s, last_error = %s, updated_at = now() "
            "WHERE id = %s RETURNING *",
            (status.value, last_error, certificate_id),
            as_dict=True,
        )
        return self._row_to_entity(row) if row else None

    def find_renewal_candidates(self, before: datetime) -> list[SslCertificate]:
        """Auto-renewing certificates due for renewal.

        Due means expiring at or before *before*, or parked in ``expiring``
        after a failed attempt (whatever the stored expiry says).
        """
        db = Database.get_instance()
        rows = db.fetch_all(
            "SELECT * FROM ssl_certificates "
            "WHERE auto_renew = TRUE "
            "  AND (expires_at <= %s OR status = %s) "
            "  AND status = ANY(%s) "
            "ORDER BY expires_at",
            (before, CertificateStatus.EXPIRING.value, [s.value for s in RENEWABLE_STATES]),
            as_dict=True,
        )
        return [self._row_to_entity(r) for r in rows]

    def delete_by_domain(self, domain_id: UUID) -> int:
        return self.delete_by({"domain_id": domain_id})
