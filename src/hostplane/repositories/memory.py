"""In-memory repositories.

Drop-in replacements for the PostgreSQL repositories, selected with
``store.backend: memory``.  State lives for the life of the process,
which suits dry runs, single-shot CLI use against a throwaway store, and
tests.  Every method takes the store lock, so the repositories are safe
to share between worker threads.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Generic, TypeVar

from hostplane.core.state import RENEWABLE_STATES
from hostplane.core.types import CertificateStatus

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from uuid import UUID

    from hostplane.models import DnsRecord, DnsZone, Domain, SslCertificate, Subdomain

T = TypeVar("T")


def _now() -> datetime:
    return datetime.now(UTC)


class _MemoryRepository(Generic[T]):
    """Dict-backed store keyed by entity ``id``."""

    def __init__(self) -> None:
        self._rows: dict[UUID, T] = {}
        self._lock = threading.RLock()

    def _stamp(self, entity: T) -> T:
        fields = {}
        if hasattr(entity, "created_at"):
            fields["created_at"] = _now()
        if hasattr(entity, "updated_at"):
            fields["updated_at"] = _now()
        return replace(entity, **fields)

    def find_by_id(self, entity_id: UUID) -> T | None:
        with self._lock:
            return self._rows.get(entity_id)

    def find_all(self) -> list[T]:
        with self._lock:
            return list(self._rows.values())

    def _filter(self, predicate: Callable[[T], bool]) -> list[T]:
        with self._lock:
            return [e for e in self._rows.values() if predicate(e)]

    def create(self, entity: T) -> T:
        with self._lock:
            if entity.id in self._rows:  # type: ignore[attr-defined]
                msg = f"duplicate key {entity.id}"  # type: ignore[attr-defined]
                raise ValueError(msg)
            stored = self._stamp(entity)
            self._rows[stored.id] = stored  # type: ignore[attr-defined]
            return stored

    def update(self, entity: T) -> T:
        with self._lock:
            if entity.id not in self._rows:  # type: ignore[attr-defined]
                msg = f"no row with key {entity.id}"  # type: ignore[attr-defined]
                raise KeyError(msg)
            if hasattr(entity, "updated_at"):
                entity = replace(entity, updated_at=_now())
            return self._put(entity)

    def delete(self, entity_id: UUID) -> bool:
        with self._lock:
            return self._rows.pop(entity_id, None) is not None

    def _delete_where(self, predicate: Callable[[T], bool]) -> int:
        with self._lock:
            doomed = [k for k, e in self._rows.items() if predicate(e)]
            for key in doomed:
                del self._rows[key]
            return len(doomed)

    def _put(self, entity: T) -> T:
        with self._lock:
            self._rows[entity.id] = entity  # type: ignore[attr-defined]
            return entity


class MemoryDomainRepository(_MemoryRepository["Domain"]):
    def find_by_name(self, name: str) -> Domain | None:
        key = name.lower().rstrip(".")
        found = self._filter(lambda d: d.name == key)
        return found[0] if found else None

    def set_ssl_enabled(self, domain_id: UUID, enabled: bool) -> Domain | None:
        with self._lock:
            current = self._rows.get(domain_id)
            if current is None:
                return None
            return self._put(replace(current, ssl_enabled=enabled, updated_at=_now()))


class MemorySubdomainRepository(_MemoryRepository["Subdomain"]):
    def find_by_domain(self, domain_id: UUID) -> list[Subdomain]:
        return self._filter(lambda s: s.domain_id == domain_id)

    def find_by_label(self, domain_id: UUID, label: str) -> Subdomain | None:
        found = self._filter(lambda s: s.domain_id == domain_id and s.label == label.lower())
        return found[0] if found else None

    def delete_by_domain(self, domain_id: UUID) -> int:
        return self._delete_where(lambda s: s.domain_id == domain_id)


class MemoryZoneRepository(_MemoryRepository["DnsZone"]):
    def find_by_name(self, name: str) -> DnsZone | None:
        key = name.lower().rstrip(".")
        found = self._filter(lambda z: z.name == key)
        return found[0] if found else None

    def find_by_domain(self, domain_id: UUID) -> DnsZone | None:
        found = self._filter(lambda z: z.domain_id == domain_id)
        return found[0] if found else None

    def update_serial(self, zone_id: UUID, serial: int) -> DnsZone | None:
        with self._lock:
            current = self._rows.get(zone_id)
            if current is None or current.serial >= serial:
                return None
            return self._put(replace(current, serial=serial, updated_at=_now()))


class MemoryRecordRepository(_MemoryRepository["DnsRecord"]):
    def find_by_zone(self, zone_id: UUID) -> list[DnsRecord]:
        records = self._filter(lambda r: r.zone_id == zone_id)
        return sorted(records, key=lambda r: (r.type.value, r.name, r.created_at))

    def delete_by_zone(self, zone_id: UUID) -> int:
        return self._delete_where(lambda r: r.zone_id == zone_id)

    def replace_zone_records(self, zone_id: UUID, records: Iterable[DnsRecord]) -> None:
        with self._lock:
            self.delete_by_zone(zone_id)
            for record in records:
                self._put(self._stamp(record))


class MemoryCertificateRepository(_MemoryRepository["SslCertificate"]):
    def find_by_domain(self, domain_id: UUID) -> SslCertificate | None:
        found = self._filter(lambda c: c.domain_id == domain_id)
        return found[0] if found else None

    def save(self, entity: SslCertificate) -> SslCertificate:
        with self._lock:
            existing = self.find_by_domain(entity.domain_id)
            if existing is None:
                return self.create(entity)
            superseding = replace(
                entity,
                id=existing.id,
                created_at=existing.created_at,
                updated_at=_now(),
            )
            return self._put(superseding)

    def update_status(
        self,
        certificate_id: UUID,
        status: CertificateStatus,
        *,
        last_error: str | None = None,
    ) -> SslCertificate | None:
        with self._lock:
            current = self._rows.get(certificate_id)
            if current is None:
                return None
            return self._put(
                replace(current, status=status, last_error=last_error, updated_at=_now()),
            )

    def find_renewal_candidates(self, before: datetime) -> list[SslCertificate]:
        found = self._filter(
            lambda c: (
                c.auto_renew
                and (c.expires_at <= before or c.status is CertificateStatus.EXPIRING)
                and c.status in RENEWABLE_STATES
            ),
        )
        return sorted(found, key=lambda c: c.expires_at)

    def delete_by_domain(self, domain_id: UUID) -> int:
        return self._delete_where(lambda c: c.domain_id == domain_id)
