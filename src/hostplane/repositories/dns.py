"""DNS zone and record repositories."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pypgkit import BaseRepository, Database

from hostplane.core.types import RecordType
from hostplane.db.unit_of_work import UnitOfWork
from hostplane.models.dns import DnsRecord, DnsZone

if TYPE_CHECKING:
    from collections.abc import Iterable
    from uuid import UUID


class ZoneRepository(BaseRepository[DnsZone]):
    table_name = "dns_zones"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> DnsZone:
        return DnsZone(
            id=row["id"],
            domain_id=row["domain_id"],
            name=row["name"],
            serial=row["serial"],
            primary_ns=row["primary_ns"],
            secondary_ns=row["secondary_ns"],
            admin_email=row["admin_email"],
            refresh=row["refresh"],
            retry=row["retry"],
            expire=row["expire"],
            minimum=row["minimum"],
            default_ttl=row["default_ttl"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _entity_to_row(self, entity: DnsZone) -> dict:
        return {
            "id": entity.id,
            "domain_id": entity.domain_id,
            "name": entity.name,
            "serial": entity.serial,
            "primary_ns": entity.primary_ns,
            "secondary_ns": entity.secondary_ns,
            "admin_email": entity.admin_email,
            "refresh": entity.refresh,
            "retry": entity.retry,
            "expire": entity.expire,
            "minimum": entity.minimum,
            "default_ttl": entity.default_ttl,
        }

    def find_by_name(self, name: str) -> DnsZone | None:
        return self.find_one_by({"name": name.lower().rstrip(".")})

    def find_by_domain(self, domain_id: UUID) -> DnsZone | None:
        return self.find_one_by({"domain_id": domain_id})

    def update_serial(self, zone_id: UUID, serial: int) -> DnsZone | None:
        """Advance the zone serial.

        The update only applies when *serial* is greater than the stored
        value, so a late writer can never move the serial backward.
        Returns ``None`` when the guard rejected the update.
        """
        db = Database.get_instance()
        row = db.fetch_one(
            "UPDATE dns_zones SET serial = %s, updated_at = now() "
            "WHERE id = %s AND serial < %s RETURNING *",
            (serial, zone_id, serial),
            as_dict=True,
        )
        return self._row_to_entity(row) if row else None


class RecordRepository(BaseRepository[DnsRecord]):
    table_name = "dns_records"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> DnsRecord:
        return DnsRecord(
            id=row["id"],
            zone_id=row["zone_id"],
            name=row["name"],
            type=RecordType(row["type"]),
            content=row["content"],
            ttl=row["ttl"],
            priority=row.get("priority"),
            created_at=row["created_at"],
        )

    def _entity_to_row(self, entity: DnsRecord) -> dict:
        return {
            "id": entity.id,
            "zone_id": entity.zone_id,
            "name": entity.name,
            "type": entity.type.value,
            "content": entity.content,
            "ttl": entity.ttl,
            "priority": entity.priority,
        }

    def find_by_zone(self, zone_id: UUID) -> list[DnsRecord]:
        db = Database.get_instance()
        rows = db.fetch_all(
            "SELECT * FROM dns_records WHERE zone_id = %s ORDER BY type, name, created_at",
            (zone_id,),
            as_dict=True,
        )
        return [self._row_to_entity(r) for r in rows]

    def delete_by_zone(self, zone_id: UUID) -> int:
        return self.delete_by({"zone_id": zone_id})

    def replace_zone_records(self, zone_id: UUID, records: Iterable[DnsRecord]) -> None:
        """Replace every record of *zone_id* in a single transaction."""
        with UnitOfWork() as uow:
            uow.delete_where("dns_records", {"zone_id": zone_id})
            uow.insert_many("dns_records", [self._entity_to_row(r) for r in records])
