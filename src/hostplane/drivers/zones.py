"""Zone content shared by every DNS driver.

:class:`ZoneBook` owns the parts of zone management that do not depend
on how a zone is served: building a new zone and its default records,
validating and canonicalising records with dnspython, protecting the
system records, allocating serials and persisting the result.

Record content is kept in a canonical form: host names are fully
qualified without the trailing dot (``mail.example.com``), TXT data is
unquoted, and everything else is dnspython's presentation format.  A
record read back from a published zone therefore compares equal to the
record that was written.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

import dns.exception
import dns.name
import dns.rdata
import dns.rdataclass
import dns.rdatatype
import dns.zone

from hostplane.core.errors import (
    DriverError,
    ProtectedRecordError,
    PublishError,
    RecordValidationError,
)
from hostplane.core.serial import initial_serial, next_serial
from hostplane.core.types import (
    PRIORITY_RECORD_TYPES,
    USER_RECORD_TYPES,
    PublishStage,
    RecordType,
)
from hostplane.models.dns import DnsRecord, DnsZone

if TYPE_CHECKING:
    from collections.abc import Iterable

    from hostplane.config.settings import DnsSettings, PanelSettings
    from hostplane.core.clock import Clock
    from hostplane.drivers.renderer import TemplateRenderer
    from hostplane.models import Domain

log = logging.getLogger(__name__)

MIN_TTL = 60
MAX_TTL = 604800
NS_TTL = 86400
SPF_POLICY = "v=spf1 a mx ~all"

_HOST_TARGET_TYPES = frozenset({RecordType.CNAME, RecordType.NS, RecordType.PTR})
_TXT_CHUNK = 255


# ---------------------------------------------------------------------------
# dnspython conversions
# ---------------------------------------------------------------------------


def _qualify(name: str) -> str:
    """Make dotted host names absolute; leave single labels relative."""
    name = name.strip()
    if name == "@" or name.endswith("."):
        return name
    if "." in name:
        return f"{name}."
    return name


def _quote_txt(content: str) -> str:
    if content.startswith('"'):
        return content
    escaped = content.replace("\\", "\\\\").replace('"', '\\"')
    chunks = [escaped[i : i + _TXT_CHUNK] for i in range(0, len(escaped), _TXT_CHUNK)] or [""]
    return " ".join(f'"{c}"' for c in chunks)


def rdata_text(rtype: RecordType, content: str, priority: int | None) -> str:
    """Presentation text dnspython can parse for a record's data."""
    if rtype is RecordType.MX:
        return f"{priority} {_qualify(content)}"
    if rtype is RecordType.SRV:
        parts = content.split()
        if parts:
            parts[-1] = _qualify(parts[-1])
        return f"{priority} {' '.join(parts)}"
    if rtype in _HOST_TARGET_TYPES:
        return _qualify(content)
    if rtype is RecordType.TXT:
        return _quote_txt(content)
    return content


def to_rdata(
    origin: str,
    rtype: RecordType,
    content: str,
    priority: int | None = None,
) -> dns.rdata.Rdata:
    """Parse record data relative to *origin*.

    Raises
    ------
    RecordValidationError
        If the data is not valid for *rtype*.

    """
    if rtype in PRIORITY_RECORD_TYPES and priority is None:
        msg = f"{rtype} records require a priority"
        raise RecordValidationError(msg)
    try:
        return dns.rdata.from_text(
            dns.rdataclass.IN,
            dns.rdatatype.from_text(rtype.value),
            rdata_text(rtype, content, priority),
            origin=dns.name.from_text(origin),
            relativize=False,
        )
    except (dns.exception.DNSException, ValueError) as exc:
        msg = f"Invalid {rtype} content {content!r}: {exc}"
        raise RecordValidationError(msg) from exc


def canonical_content(rdata: dns.rdata.Rdata) -> tuple[str, int | None]:
    """Return ``(content, priority)`` in the canonical stored form."""
    rtype = RecordType(dns.rdatatype.to_text(rdata.rdtype))
    if rtype is RecordType.MX:
        return rdata.exchange.to_text(omit_final_dot=True), rdata.preference
    if rtype is RecordType.SRV:
        target = rdata.target.to_text(omit_final_dot=True)
        return f"{rdata.weight} {rdata.port} {target}", rdata.priority
    if rtype in _HOST_TARGET_TYPES:
        return rdata.target.to_text(omit_final_dot=True), None
    if rtype is RecordType.TXT:
        return b"".join(rdata.strings).decode("utf-8", errors="replace"), None
    return rdata.to_text(), None


def relative_owner(owner: dns.name.Name, origin: str) -> str:
    """``@`` for the apex, otherwise the owner relative to *origin*."""
    base = dns.name.from_text(origin)
    if owner == base:
        return "@"
    if owner.is_subdomain(base):
        return owner.relativize(base).to_text()
    return owner.to_text()


# ---------------------------------------------------------------------------
# ZoneBook
# ---------------------------------------------------------------------------


class ZoneBook:
    """Zone defaults, record rules, serials and persistence.

    Parameters
    ----------
    panel:
        Server-wide settings (IP address, name servers).
    dns_settings:
        The ``dns`` section; supplies SOA timers unless overridden.
    zones, records:
        Zone and record repositories.
    clock:
        Source of "today" for serial allocation.
    soa_timers:
        ``(refresh, retry, expire, minimum)`` for new zones.

    """

    def __init__(
        self,
        *,
        panel: PanelSettings,
        dns_settings: DnsSettings,
        zones,
        records,
        clock: Clock,
        soa_timers: tuple[int, int, int, int],
    ) -> None:
        self._panel = panel
        self._dns = dns_settings
        self._zones = zones
        self._records = records
        self._clock = clock
        self._timers = soa_timers

    # -- zones ---------------------------------------------------------------

    def find(self, domain_name: str) -> DnsZone | None:
        return self._zones.find_by_name(domain_name)

    def all_zones(self) -> list[DnsZone]:
        return sorted(self._zones.find_all(), key=lambda z: z.name)

    def records_of(self, zone: DnsZone) -> list[DnsRecord]:
        return self._records.find_by_zone(zone.id)

    def new_zone(self, domain: Domain) -> DnsZone:
        refresh, retry, expire, minimum = self._timers
        nameservers = list(self._panel.nameservers) or [
            f"ns1.{domain.name}",
            f"ns2.{domain.name}",
        ]
        primary = nameservers[0]
        secondary = nameservers[1] if len(nameservers) > 1 else nameservers[0]
        return DnsZone(
            domain_id=domain.id,
            name=domain.name,
            serial=initial_serial(self._clock.today()),
            primary_ns=primary.rstrip("."),
            secondary_ns=secondary.rstrip("."),
            admin_email=self._dns.soa_admin or f"admin@{domain.name}",
            refresh=refresh,
            retry=retry,
            expire=expire,
            minimum=minimum,
            default_ttl=self._dns.default_ttl,
        )

    def default_records(self, zone: DnsZone) -> list[DnsRecord]:
        """The record set every new or reset zone starts with."""
        ip = self._panel.server_ip
        ttl = zone.default_ttl
        raw = [
            ("@", RecordType.NS, zone.primary_ns, NS_TTL, None),
            ("@", RecordType.NS, zone.secondary_ns, NS_TTL, None),
            ("@", RecordType.A, ip, ttl, None),
            ("www", RecordType.A, ip, ttl, None),
            ("mail", RecordType.A, ip, ttl, None),
            ("@", RecordType.MX, f"mail.{zone.name}", ttl, 10),
            ("@", RecordType.TXT, SPF_POLICY, ttl, None),
        ]
        seen: set[tuple] = set()
        records = []
        for name, rtype, content, rttl, prio in raw:
            record = self.validate(
                zone,
                DnsRecord(zone_id=zone.id, name=name, type=rtype, content=content, ttl=rttl, priority=prio),
            )
            if record.key() in seen:
                continue
            seen.add(record.key())
            records.append(record)
        return records

    def bump(self, zone: DnsZone) -> DnsZone:
        """Return *zone* carrying the next serial."""
        serial = next_serial(zone.serial, self._clock.today())
        log.debug("Zone %s serial %d -> %d", zone.name, zone.serial, serial)
        return replace(zone, serial=serial)

    # -- records -------------------------------------------------------------

    def validate(self, zone: DnsZone, record: DnsRecord) -> DnsRecord:
        """Check *record* and return it in canonical form, bound to *zone*.

        Raises
        ------
        RecordValidationError
            Unknown type, bad owner name, TTL out of range or bad content.

        """
        if record.type not in USER_RECORD_TYPES:
            msg = f"Record type {record.type} cannot be managed directly"
            raise RecordValidationError(msg)
        if not MIN_TTL <= record.ttl <= MAX_TTL:
            msg = f"TTL {record.ttl} outside {MIN_TTL}..{MAX_TTL}"
            raise RecordValidationError(msg)

        owner = self._owner(zone, record.name)
        rdata = to_rdata(zone.origin, record.type, record.content, record.priority)
        content, priority = canonical_content(rdata)
        return replace(record, zone_id=zone.id, name=owner, content=content, priority=priority)

    def _owner(self, zone: DnsZone, name: str) -> str:
        name = name.strip().lower()
        if name in ("", "@", zone.origin, zone.name):
            return "@"
        if name.endswith(f".{zone.name}"):
            name = f"{name}."
        try:
            owner = dns.name.from_text(name, origin=dns.name.from_text(zone.origin))
        except dns.exception.DNSException as exc:
            msg = f"Invalid owner name {name!r}: {exc}"
            raise RecordValidationError(msg) from exc
        if not owner.is_subdomain(dns.name.from_text(zone.origin)):
            msg = f"Owner {name!r} is outside zone {zone.name}"
            raise RecordValidationError(msg)
        return relative_owner(owner, zone.origin)

    def check_conflicts(
        self,
        zone: DnsZone,
        existing: Iterable[DnsRecord],
        record: DnsRecord,
    ) -> None:
        """Reject duplicates and CNAMEs that would share an owner."""
        if record.type is RecordType.CNAME and record.name == "@":
            msg = f"A CNAME cannot be placed at the apex of {zone.name}"
            raise RecordValidationError(msg)
        for other in existing:
            if other.id == record.id:
                continue
            if other.key() == record.key():
                msg = f"{record.type} {record.name} -> {record.content} already exists"
                raise RecordValidationError(msg)
            same_owner = other.name.lower() == record.name.lower()
            if same_owner and RecordType.CNAME in (other.type, record.type):
                msg = f"{record.name} cannot hold a CNAME alongside other records"
                raise RecordValidationError(msg)

    def assert_mutable(self, zone: DnsZone, record: DnsRecord) -> None:
        """System records (SOA, apex NS) may not be changed or removed."""
        if record.type is RecordType.SOA or (
            record.type is RecordType.NS and record.name == "@"
        ):
            msg = f"{record.type} {record.name} is managed by the system for {zone.name}"
            raise ProtectedRecordError(msg)

    # -- record set changes ----------------------------------------------------

    def require(self, zone_name: str) -> DnsZone:
        """Return the stored zone (with its latest serial)."""
        zone = self.find(zone_name)
        if zone is None:
            msg = f"No zone exists for {zone_name}"
            raise DriverError(msg)
        return zone

    def with_record(
        self,
        zone: DnsZone,
        existing: list[DnsRecord],
        record: DnsRecord,
    ) -> tuple[list[DnsRecord], DnsRecord]:
        added = self.validate(zone, record)
        self.check_conflicts(zone, existing, added)
        return [*existing, added], added

    def with_replaced(
        self,
        zone: DnsZone,
        existing: list[DnsRecord],
        record: DnsRecord,
    ) -> tuple[list[DnsRecord], DnsRecord]:
        current = next((r for r in existing if r.id == record.id), None)
        if current is None:
            msg = f"Record {record.id} does not belong to {zone.name}"
            raise RecordValidationError(msg)
        self.assert_mutable(zone, current)
        updated = self.validate(zone, record)
        self.assert_mutable(zone, updated)
        self.check_conflicts(zone, existing, updated)
        return [updated if r.id == record.id else r for r in existing], updated

    def without_record(
        self,
        zone: DnsZone,
        existing: list[DnsRecord],
        record: DnsRecord,
    ) -> list[DnsRecord] | None:
        """The record set minus *record*, or ``None`` if it is not present.

        Matches by id first, then by owner/type/content.
        """
        match = next((r for r in existing if r.id == record.id), None)
        if match is None:
            try:
                wanted = self.validate(zone, record).key()
            except RecordValidationError:
                return None
            match = next((r for r in existing if r.key() == wanted), None)
        if match is None:
            return None
        self.assert_mutable(zone, match)
        return [r for r in existing if r.id != match.id]

    # -- persistence ---------------------------------------------------------

    def save_new(self, zone: DnsZone, records: list[DnsRecord]) -> DnsZone:
        created = self._zones.create(zone)
        self._records.replace_zone_records(zone.id, records)
        return created or zone

    def save(self, zone: DnsZone, records: list[DnsRecord]) -> DnsZone:
        """Persist *zone*'s new serial and its full record set."""
        self._records.replace_zone_records(zone.id, records)
        updated = self._zones.update_serial(zone.id, zone.serial)
        if updated is None:
            log.warning("Serial for %s was not advanced to %d", zone.name, zone.serial)
            return self._zones.find_by_id(zone.id) or zone
        return updated

    def delete(self, zone: DnsZone) -> None:
        self._records.delete_by_zone(zone.id)
        self._zones.delete(zone.id)


# ---------------------------------------------------------------------------
# Master-file text
# ---------------------------------------------------------------------------


def render_zone(renderer: TemplateRenderer, zone: DnsZone, records: Iterable[DnsRecord]) -> str:
    """Render the complete master file for *zone*."""
    lines = []
    for record in sorted(records, key=_render_order):
        rdata = to_rdata(zone.origin, record.type, record.content, record.priority)
        lines.append(
            {
                "name": record.name,
                "ttl": record.ttl,
                "type": record.type.value,
                "rdata": rdata.to_text(),
            }
        )
    return renderer.render(
        "bind/zone.db.j2",
        {
            "zone": zone,
            "soa_mname": f"{zone.primary_ns.rstrip('.')}.",
            "records": lines,
        },
    )


def parse_zone(text: str, zone: DnsZone) -> list[DnsRecord]:
    """Parse master-file *text* back into canonical records (SOA included).

    Raises
    ------
    PublishError
        At the ``validate`` stage, if the text is not a valid zone (bad
        syntax, missing SOA or apex NS).

    """
    try:
        parsed = dns.zone.from_text(
            text,
            origin=zone.origin,
            relativize=False,
            check_origin=True,
        )
    except (dns.exception.DNSException, ValueError) as exc:
        msg = f"Zone {zone.name} does not parse: {exc}"
        raise PublishError(msg, stage=PublishStage.VALIDATE) from exc

    records = []
    for owner, ttl, rdata in parsed.iterate_rdatas():
        content, priority = canonical_content(rdata)
        records.append(
            DnsRecord(
                zone_id=zone.id,
                name=relative_owner(owner, zone.origin),
                type=RecordType(dns.rdatatype.to_text(rdata.rdtype)),
                content=content,
                ttl=ttl,
                priority=priority,
            )
        )
    return records


def _render_order(record: DnsRecord) -> tuple:
    order = {RecordType.NS: 0, RecordType.A: 1, RecordType.AAAA: 2, RecordType.MX: 3}
    return (record.name != "@", order.get(record.type, 9), record.name, record.type.value)
