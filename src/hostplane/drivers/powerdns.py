"""PowerDNS driver for the generic PostgreSQL backend.

Zones live as rows in ``<schema>.domains`` and ``<schema>.records``;
PowerDNS reads them on every query, so there is no file to write and no
daemon reload.  A zone's rows (SOA included) are rendered in full and
replaced in one transaction, after the whole record set has been
rendered to master-file text and parsed back as a validation step.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import dns.name
import psycopg
from pypgkit import Database

from hostplane.core.errors import ExternalProcessError, PublishError
from hostplane.core.types import PublishStage, RecordType
from hostplane.db.unit_of_work import UnitOfWork
from hostplane.drivers.base import DnsDriver
from hostplane.drivers.zones import (
    ZoneBook,
    canonical_content,
    parse_zone,
    relative_owner,
    render_zone,
    to_rdata,
)
from hostplane.models.dns import DnsRecord

if TYPE_CHECKING:
    from hostplane.drivers.base import DriverContext
    from hostplane.models import DnsZone, Domain

log = logging.getLogger(__name__)


class PowerDnsDriver(DnsDriver):
    name = "powerdns"

    def __init__(self, context: DriverContext) -> None:
        super().__init__(context)
        self._settings = context.settings.dns
        self._pdns = self._settings.powerdns
        self._book = ZoneBook(
            panel=context.settings.panel,
            dns_settings=self._settings,
            zones=context.zones,
            records=context.records,
            clock=context.clock,
            soa_timers=self._pdns.soa_timers,
        )
        schema = self._pdns.schema
        self._domains_table = f"{schema}.domains"
        self._records_table = f"{schema}.records"

    # -- rows ----------------------------------------------------------------

    def _soa_row(self, zone: DnsZone, domain_id: int) -> dict:
        rname = zone.soa_rname.rstrip(".")
        return {
            "domain_id": domain_id,
            "name": zone.name,
            "type": RecordType.SOA.value,
            "content": (
                f"{zone.primary_ns} {rname} {zone.serial} "
                f"{zone.refresh} {zone.retry} {zone.expire} {zone.minimum}"
            ),
            "ttl": zone.default_ttl,
            "prio": None,
            "disabled": False,
            "auth": True,
        }

    def _record_row(self, zone: DnsZone, record: DnsRecord, domain_id: int) -> dict:
        content = record.content
        if record.type is RecordType.TXT:
            content = to_rdata(zone.origin, record.type, record.content).to_text()
        return {
            "domain_id": domain_id,
            "name": record.fqdn(zone.name),
            "type": record.type.value,
            "content": content,
            "ttl": record.ttl,
            "prio": record.priority,
            "disabled": False,
            "auth": True,
        }

    def _record_from_row(self, zone: DnsZone, row: dict) -> DnsRecord:
        rtype = RecordType(row["type"])
        raw = row["content"]
        if rtype is RecordType.SOA:
            parts = raw.split()
            parts[:2] = [p if p.endswith(".") else f"{p}." for p in parts[:2]]
            return DnsRecord(
                zone_id=zone.id,
                name="@",
                type=rtype,
                content=" ".join(parts),
                ttl=row["ttl"],
            )
        rdata = to_rdata(zone.origin, rtype, raw, row.get("prio"))
        content, priority = canonical_content(rdata)
        return DnsRecord(
            zone_id=zone.id,
            name=relative_owner(dns.name.from_text(f"{row['name']}."), zone.origin),
            type=rtype,
            content=content,
            ttl=row["ttl"],
            priority=priority,
        )

    # -- publishing ----------------------------------------------------------

    def _publish(self, zone: DnsZone, records: list[DnsRecord], *, account: str | None = None) -> None:
        parse_zone(render_zone(self._ctx.renderer, zone, records), zone)
        try:
            with UnitOfWork() as uow:
                found = uow.fetch_one(
                    f"SELECT id FROM {self._domains_table} WHERE name = %s",  # noqa: S608
                    (zone.name,),
                )
                if found is None:
                    found = uow.insert(
                        self._domains_table,
                        {"name": zone.name, "type": self._pdns.zone_kind, "account": account},
                    )
                domain_id = found["id"]
                uow.delete_where(self._records_table, {"domain_id": domain_id})
                rows = [self._soa_row(zone, domain_id)]
                rows.extend(self._record_row(zone, r, domain_id) for r in records)
                uow.insert_many(self._records_table, rows)
        except psycopg.Error as exc:
            msg = f"Could not replace PowerDNS rows for {zone.name}: {exc}"
            raise PublishError(msg, stage=PublishStage.ACTIVATE, retryable=True) from exc
        log.info("Published %d record(s) for %s (serial %d)", len(records) + 1, zone.name, zone.serial)
        self._notify(zone.name)

    def _notify(self, zone_name: str) -> None:
        if not self._pdns.notify:
            return
        try:
            self._ctx.runner.run(
                [self._pdns.pdns_control, "notify", zone_name],
                timeout=self._settings.command_timeout_seconds,
                check=True,
            )
        except ExternalProcessError as exc:
            msg = f"pdns_control notify {zone_name} failed: {exc.detail}"
            raise PublishError(msg, stage=PublishStage.RELOAD, retryable=True) from exc

    def _commit(self, zone: DnsZone, records: list[DnsRecord]) -> DnsZone:
        bumped = self._book.bump(zone)
        self._publish(bumped, records)
        return self._book.save(bumped, records)

    # -- contract ------------------------------------------------------------

    def create_zone(self, domain: Domain) -> DnsZone:
        existing = self._book.find(domain.name)
        if existing is not None:
            log.info("Zone %s exists; re-publishing", domain.name)
            self._publish(existing, self._book.records_of(existing), account=domain.account.username)
            return existing
        zone = self._book.new_zone(domain)
        records = self._book.default_records(zone)
        self._publish(zone, records, account=domain.account.username)
        log.info("Created zone %s (serial %d)", zone.name, zone.serial)
        return self._book.save_new(zone, records)

    def remove_zone(self, domain_name: str) -> bool:
        zone = self._book.find(domain_name)
        try:
            with UnitOfWork() as uow:
                found = uow.fetch_one(
                    f"SELECT id FROM {self._domains_table} WHERE name = %s",  # noqa: S608
                    (domain_name,),
                )
                if found is not None:
                    uow.delete_where(self._records_table, {"domain_id": found["id"]})
                    uow.delete_where(self._domains_table, {"id": found["id"]})
        except psycopg.Error as exc:
            msg = f"Could not remove PowerDNS zone {domain_name}: {exc}"
            raise PublishError(msg, stage=PublishStage.ACTIVATE, retryable=True) from exc
        if zone is None:
            return False
        self._book.delete(zone)
        log.info("Removed zone %s", domain_name)
        return True

    def reset_zone(self, zone: DnsZone) -> DnsZone:
        current = self._book.require(zone.name)
        return self._commit(current, self._book.default_records(current))

    def add_record(self, zone: DnsZone, record: DnsRecord) -> DnsRecord:
        current = self._book.require(zone.name)
        records, added = self._book.with_record(current, self._book.records_of(current), record)
        self._commit(current, records)
        return added

    def update_record(self, zone: DnsZone, record: DnsRecord) -> DnsRecord:
        current = self._book.require(zone.name)
        records, updated = self._book.with_replaced(current, self._book.records_of(current), record)
        self._commit(current, records)
        return updated

    def remove_record(self, zone: DnsZone, record: DnsRecord) -> bool:
        current = self._book.require(zone.name)
        records = self._book.without_record(current, self._book.records_of(current), record)
        if records is None:
            return False
        self._commit(current, records)
        return True

    def list_records(self, zone: DnsZone) -> list[DnsRecord]:
        db = Database.get_instance()
        rows = db.fetch_all(
            f"SELECT r.name, r.type, r.content, r.ttl, r.prio "  # noqa: S608
            f"FROM {self._records_table} r "
            f"JOIN {self._domains_table} d ON d.id = r.domain_id "
            "WHERE d.name = %s AND NOT r.disabled "
            "ORDER BY r.type, r.name",
            (zone.name,),
            as_dict=True,
        )
        return [self._record_from_row(zone, row) for row in rows]

    def get_zone(self, domain_name: str) -> DnsZone | None:
        return self._book.find(domain_name)

    def check_zone(self, name: str, path: str | None = None) -> bool:  # noqa: ARG002
        if self._pdns.pdnsutil:
            try:
                result = self._ctx.runner.run(
                    [self._pdns.pdnsutil, "check-zone", name],
                    timeout=self._settings.command_timeout_seconds,
                )
            except ExternalProcessError as exc:
                log.warning("%s", exc.detail)
                return False
            return result.ok
        zone = self._book.find(name)
        if zone is None:
            return False
        try:
            records = [r for r in self.list_records(zone) if r.type is not RecordType.SOA]
            parse_zone(render_zone(self._ctx.renderer, zone, records), zone)
        except PublishError as exc:
            log.warning("%s", exc.detail)
            return False
        return True

    def reload(self) -> None:
        if not self._pdns.pdns_control:
            log.debug("PowerDNS serves from the database; nothing to reload")
            return
        self._ctx.runner.run(
            [self._pdns.pdns_control, "purge"],
            timeout=self._settings.command_timeout_seconds,
            check=True,
        )
