"""BIND 9 driver: one master file per zone plus a generated zone list.

Layout (Debian defaults)::

    /var/lib/bind/example.com.db         zone file
    /etc/bind/named.conf.local            zone statements for every zone

Both files are rendered in full on every change.  The zone file is
checked with ``named-checkzone`` and the zone list with
``named-checkconf`` while still staged, before either replaces the
live copy.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hostplane.core.errors import ConfigTestError, DriverError, ExternalProcessError
from hostplane.drivers.base import DnsDriver
from hostplane.drivers.publisher import Changeset, ConfigPublisher
from hostplane.drivers.zones import ZoneBook, parse_zone, render_zone

if TYPE_CHECKING:
    from collections.abc import Callable

    from hostplane.drivers.base import DriverContext
    from hostplane.models import DnsRecord, DnsZone, Domain

log = logging.getLogger(__name__)


class BindDriver(DnsDriver):
    name = "bind"

    def __init__(self, context: DriverContext) -> None:
        super().__init__(context)
        self._settings = context.settings.dns
        self._book = ZoneBook(
            panel=context.settings.panel,
            dns_settings=self._settings,
            zones=context.zones,
            records=context.records,
            clock=context.clock,
            soa_timers=self._settings.soa_timers,
        )
        self._publisher = ConfigPublisher(context.artifacts, label="bind")

    # -- paths & rendering ---------------------------------------------------

    def zone_path(self, zone_name: str) -> str:
        return f"{self._settings.zones_dir.rstrip('/')}/{zone_name}.db"

    def _render_zone_list(self, zones: list[DnsZone]) -> str:
        allow = "; ".join(self._settings.allow_transfer) or "none"
        return self._ctx.renderer.render(
            "bind/named.conf.j2",
            {
                "zones": [
                    {
                        "name": z.name,
                        "file": self._ctx.artifacts.real_path(self.zone_path(z.name)),
                    }
                    for z in sorted(zones, key=lambda z: z.name)
                ],
                "allow_transfer": allow,
            },
        )

    def _zone_checker(self, zone_name: str) -> Callable[[str], None]:
        def check(path: str) -> None:
            result = self._ctx.runner.run(
                [self._settings.checkzone_binary, zone_name, path],
                timeout=self._settings.command_timeout_seconds,
            )
            if not result.ok:
                msg = f"named-checkzone rejected {zone_name}: {result.output}"
                raise ConfigTestError(msg, output=result.output)

        return check

    def _check_zone_list(self, path: str) -> None:
        result = self._ctx.runner.run(
            [self._settings.checkconf_binary, path],
            timeout=self._settings.command_timeout_seconds,
        )
        if not result.ok:
            msg = f"named-checkconf rejected {self._settings.named_conf}: {result.output}"
            raise ConfigTestError(msg, output=result.output)

    def _publish(
        self,
        zone: DnsZone,
        records: list[DnsRecord],
        zones: list[DnsZone],
    ) -> None:
        text = render_zone(self._ctx.renderer, zone, records)
        parse_zone(text, zone)
        changes = Changeset()
        changes.write(self.zone_path(zone.name), text, check=self._zone_checker(zone.name))
        changes.write(
            self._settings.named_conf,
            self._render_zone_list(zones),
            check=self._check_zone_list,
        )
        self._publisher.publish(changes, reload=self._reload_action)

    def _with(self, zones: list[DnsZone], zone: DnsZone) -> list[DnsZone]:
        return [z for z in zones if z.name != zone.name] + [zone]

    def _commit(self, zone: DnsZone, records: list[DnsRecord]) -> DnsZone:
        bumped = self._book.bump(zone)
        with self._publisher.lock:
            self._publish(bumped, records, self._with(self._book.all_zones(), bumped))
            return self._book.save(bumped, records)

    # -- contract ------------------------------------------------------------

    def create_zone(self, domain: Domain) -> DnsZone:
        existing = self._book.find(domain.name)
        if existing is not None:
            log.info("Zone %s exists; re-publishing", domain.name)
            with self._publisher.lock:
                self._publish(existing, self._book.records_of(existing), self._book.all_zones())
            return existing

        zone = self._book.new_zone(domain)
        records = self._book.default_records(zone)
        self._ctx.artifacts.ensure_dir(self._settings.zones_dir)
        # The zone list is rendered from stored zones: save before releasing.
        with self._publisher.lock:
            self._publish(zone, records, self._with(self._book.all_zones(), zone))
            saved = self._book.save_new(zone, records)
        log.info("Created zone %s (serial %d)", zone.name, zone.serial)
        return saved

    def remove_zone(self, domain_name: str) -> bool:
        with self._publisher.lock:
            zone = self._book.find(domain_name)
            remaining = [z for z in self._book.all_zones() if z.name != domain_name]
            changes = Changeset()
            changes.remove(self.zone_path(domain_name))
            changes.write(
                self._settings.named_conf,
                self._render_zone_list(remaining),
                check=self._check_zone_list,
            )
            self._publisher.publish(changes, reload=self._reload_action)
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
        text = self._ctx.artifacts.read(self.zone_path(zone.name))
        if text is None:
            return []
        return parse_zone(text, zone)

    def get_zone(self, domain_name: str) -> DnsZone | None:
        return self._book.find(domain_name)

    def check_zone(self, name: str, path: str | None = None) -> bool:
        target = path or self._ctx.artifacts.real_path(self.zone_path(name))
        try:
            self._zone_checker(name)(target)
        except (ConfigTestError, ExternalProcessError) as exc:
            log.warning("%s", exc.detail)
            return False
        return True

    def _reload_action(self) -> str:
        self.reload()
        return "reload"

    def reload(self) -> None:
        self._ctx.services.reload(self._settings.service_name)

    def startup_check(self) -> None:
        if not self._settings.zones_dir:
            msg = "dns.zones_dir must be set for the bind driver"
            raise DriverError(msg)
