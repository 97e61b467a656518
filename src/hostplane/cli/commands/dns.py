"""DNS subcommands."""

from __future__ import annotations

from typing import TYPE_CHECKING

from hostplane.cli.commands import emit, fail
from hostplane.core.errors import RecordValidationError
from hostplane.core.types import RecordType
from hostplane.models import DnsRecord

if TYPE_CHECKING:
    import argparse

    from hostplane.app.context import Container
    from hostplane.models import DnsZone


def _record_dict(record: DnsRecord) -> dict:
    return {
        "name": record.name,
        "type": record.type.value,
        "content": record.content,
        "ttl": record.ttl,
        "priority": record.priority,
    }


def _record_from_args(zone: DnsZone, args: argparse.Namespace) -> DnsRecord:
    try:
        rtype = RecordType(args.rtype.upper())
    except ValueError:
        msg = f"unknown record type '{args.rtype}'"
        raise RecordValidationError(msg) from None
    return DnsRecord(
        zone_id=zone.id,
        name=args.name,
        type=rtype,
        content=args.content,
        ttl=args.ttl or zone.default_ttl,
        priority=args.priority,
    )


def run_dns(container: Container, args: argparse.Namespace) -> int:
    sub = args.dns_command
    svc = container.provisioning
    if sub == "records":
        emit([_record_dict(r) for r in svc.list_records(args.domain)])
        return 0
    if sub == "check":
        ok = svc.check_zone(args.domain)
        emit({"zone": args.domain, "valid": ok})
        return 0 if ok else 1
    if sub == "reset":
        zone = svc.reset_zone(args.domain)
        emit({"zone": zone.name, "serial": zone.serial})
        return 0
    if sub in ("add-record", "remove-record"):
        zone = container.dns.get_zone(args.domain)
        if zone is None:
            return fail(f"{args.domain} has no DNS zone")
        record = _record_from_args(zone, args)
        if sub == "add-record":
            emit(_record_dict(svc.add_record(args.domain, record)))
            return 0
        removed = svc.remove_record(args.domain, record)
        emit({"removed": removed, **_record_dict(record)})
        return 0 if removed else 1
    return fail("expected one of: reset, add-record, remove-record, records, check")
