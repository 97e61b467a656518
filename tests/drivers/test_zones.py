"""Tests for zone defaults, record validation and master-file rendering."""

from __future__ import annotations

from dataclasses import replace

import pytest

from hostplane.core.errors import (
    DriverError,
    ProtectedRecordError,
    PublishError,
    RecordValidationError,
)
from hostplane.core.types import PublishStage, RecordType
from hostplane.drivers.renderer import TemplateRenderer
from hostplane.drivers.zones import SPF_POLICY, ZoneBook, parse_zone, render_zone
from hostplane.models import DnsRecord
from hostplane.repositories.memory import MemoryRecordRepository, MemoryZoneRepository


@pytest.fixture()
def book(settings, clock):
    return ZoneBook(
        panel=settings.panel,
        dns_settings=settings.dns,
        zones=MemoryZoneRepository(),
        records=MemoryRecordRepository(),
        clock=clock,
        soa_timers=settings.dns.soa_timers,
    )


@pytest.fixture()
def zone(book, make_domain):
    return book.new_zone(make_domain())


def _rec(zone, name, rtype, content, ttl=3600, priority=None):
    return DnsRecord(zone_id=zone.id, name=name, type=rtype, content=content, ttl=ttl, priority=priority)


# ---------------------------------------------------------------------------
# New zones
# ---------------------------------------------------------------------------


class TestNewZone:
    def test_soa_fields(self, zone):
        assert zone.name == "example.com"
        assert zone.serial == 2025031401
        assert zone.primary_ns == "ns1.hostplane.test"
        assert zone.secondary_ns == "ns2.hostplane.test"
        assert zone.admin_email == "admin@example.com"
        assert (zone.refresh, zone.retry, zone.expire, zone.minimum) == (28800, 7200, 1209600, 86400)

    def test_nameservers_default_to_the_domain(self, settings_data, clock, make_domain):
        from hostplane.config.settings import build_settings

        settings_data["panel"].pop("nameservers")
        s = build_settings(settings_data)
        book = ZoneBook(
            panel=s.panel,
            dns_settings=s.dns,
            zones=MemoryZoneRepository(),
            records=MemoryRecordRepository(),
            clock=clock,
            soa_timers=s.dns.soa_timers,
        )
        zone = book.new_zone(make_domain("example.org"))
        assert (zone.primary_ns, zone.secondary_ns) == ("ns1.example.org", "ns2.example.org")

    def test_default_records(self, book, zone):
        records = book.default_records(zone)
        keys = {(r.name, r.type, r.content, r.priority) for r in records}
        assert keys == {
            ("@", RecordType.NS, "ns1.hostplane.test", None),
            ("@", RecordType.NS, "ns2.hostplane.test", None),
            ("@", RecordType.A, "203.0.113.10", None),
            ("www", RecordType.A, "203.0.113.10", None),
            ("mail", RecordType.A, "203.0.113.10", None),
            ("@", RecordType.MX, "mail.example.com", 10),
            ("@", RecordType.TXT, SPF_POLICY, None),
        }
        assert all(r.zone_id == zone.id for r in records)

    def test_bump_uses_clock(self, book, zone, clock):
        assert book.bump(zone).serial == 2025031402
        clock.advance(days=1)
        assert book.bump(zone).serial == 2025031501


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidate:
    def test_canonicalises_hosts(self, book, zone):
        rec = book.validate(zone, _rec(zone, "Blog.Example.com", RecordType.CNAME, "example.com."))
        assert rec.name == "blog"
        assert rec.content == "example.com"

    def test_apex_aliases(self, book, zone):
        for name in ("", "@", "example.com", "example.com."):
            assert book.validate(zone, _rec(zone, name, RecordType.A, "192.0.2.1")).name == "@"

    def test_relative_mx_target(self, book, zone):
        rec = book.validate(zone, _rec(zone, "@", RecordType.MX, "mx2", priority=20))
        assert rec.content == "mx2.example.com"
        assert rec.priority == 20

    def test_srv(self, book, zone):
        rec = book.validate(
            zone,
            _rec(zone, "_sip._tcp", RecordType.SRV, "5 5060 sip.example.com", priority=10),
        )
        assert rec.content == "5 5060 sip.example.com"
        assert rec.priority == 10

    def test_txt_is_unquoted(self, book, zone):
        rec = book.validate(zone, _rec(zone, "@", RecordType.TXT, '"google-site-verification=abc"'))
        assert rec.content == "google-site-verification=abc"

    def test_long_txt_round_trips(self, book, zone):
        value = "v=DKIM1; k=rsa; p=" + "A" * 400
        rec = book.validate(zone, _rec(zone, "mail._domainkey", RecordType.TXT, value))
        assert rec.content == value

    def test_caa(self, book, zone):
        rec = book.validate(zone, _rec(zone, "@", RecordType.CAA, '0 issue "letsencrypt.org"'))
        assert rec.content == '0 issue "letsencrypt.org"'

    @pytest.mark.parametrize(
        ("rtype", "content", "priority"),
        [
            (RecordType.A, "999.1.1.1", None),
            (RecordType.AAAA, "192.0.2.1", None),
            (RecordType.MX, "mail.example.com", None),
            (RecordType.SRV, "5 5060 sip.example.com", None),
        ],
    )
    def test_bad_content(self, book, zone, rtype, content, priority):
        with pytest.raises(RecordValidationError):
            book.validate(zone, _rec(zone, "x", rtype, content, priority=priority))

    @pytest.mark.parametrize("ttl", [0, 59, 604801])
    def test_ttl_range(self, book, zone, ttl):
        with pytest.raises(RecordValidationError, match="TTL"):
            book.validate(zone, _rec(zone, "x", RecordType.A, "192.0.2.1", ttl=ttl))

    def test_soa_cannot_be_managed(self, book, zone):
        with pytest.raises(RecordValidationError, match="cannot be managed"):
            book.validate(zone, _rec(zone, "@", RecordType.SOA, "a b 1 2 3 4 5"))

    def test_owner_outside_zone(self, book, zone):
        with pytest.raises(RecordValidationError, match="outside zone"):
            book.validate(zone, _rec(zone, "www.example.org.", RecordType.A, "192.0.2.1"))


class TestConflicts:
    def test_duplicate(self, book, zone):
        existing = book.default_records(zone)
        with pytest.raises(RecordValidationError, match="already exists"):
            book.with_record(zone, existing, _rec(zone, "www", RecordType.A, "203.0.113.10"))

    def test_cname_alongside_other_data(self, book, zone):
        existing = book.default_records(zone)
        with pytest.raises(RecordValidationError, match="CNAME"):
            book.with_record(zone, existing, _rec(zone, "www", RecordType.CNAME, "example.com"))

    def test_cname_at_apex(self, book, zone):
        with pytest.raises(RecordValidationError, match="apex"):
            book.with_record(zone, [], _rec(zone, "@", RecordType.CNAME, "example.net"))

    def test_same_name_different_type_is_fine(self, book, zone):
        existing = book.default_records(zone)
        records, added = book.with_record(zone, existing, _rec(zone, "www", RecordType.AAAA, "2001:db8::1"))
        assert len(records) == len(existing) + 1
        assert added.content == "2001:db8::1"


class TestProtectedRecords:
    def test_apex_ns_cannot_be_removed(self, book, zone):
        existing = book.default_records(zone)
        ns = next(r for r in existing if r.type is RecordType.NS)
        with pytest.raises(ProtectedRecordError):
            book.without_record(zone, existing, ns)

    def test_apex_ns_cannot_be_rewritten(self, book, zone):
        existing = book.default_records(zone)
        ns = next(r for r in existing if r.type is RecordType.NS)
        with pytest.raises(ProtectedRecordError):
            book.with_replaced(zone, existing, replace(ns, content="ns9.example.net"))

    def test_delegation_ns_is_mutable(self, book, zone):
        existing = book.default_records(zone)
        records, added = book.with_record(zone, existing, _rec(zone, "dev", RecordType.NS, "ns.dev-host.net"))
        assert book.without_record(zone, records, added) is not None

    def test_without_record_matches_by_content(self, book, zone):
        existing = book.default_records(zone)
        remaining = book.without_record(zone, existing, _rec(zone, "mail", RecordType.A, "203.0.113.10"))
        assert len(remaining) == len(existing) - 1

    def test_without_missing_record(self, book, zone):
        existing = book.default_records(zone)
        assert book.without_record(zone, existing, _rec(zone, "nope", RecordType.A, "192.0.2.9")) is None

    def test_replace_unknown_id(self, book, zone):
        with pytest.raises(RecordValidationError, match="does not belong"):
            book.with_replaced(zone, [], _rec(zone, "x", RecordType.A, "192.0.2.1"))


class TestPersistence:
    def test_save_advances_serial(self, book, zone):
        records = book.default_records(zone)
        book.save_new(zone, records)
        saved = book.save(book.bump(zone), records)
        assert saved.serial == 2025031402
        assert book.find("example.com").serial == 2025031402

    def test_require_unknown_zone(self, book):
        with pytest.raises(DriverError):
            book.require("nope.test")

    def test_delete(self, book, zone):
        book.save_new(zone, book.default_records(zone))
        book.delete(zone)
        assert book.find("example.com") is None
        assert book.records_of(zone) == []


# ---------------------------------------------------------------------------
# Master files
# ---------------------------------------------------------------------------


class TestRenderZone:
    def test_render_then_parse_preserves_records(self, book, zone):
        records = book.default_records(zone)
        text = render_zone(TemplateRenderer(), zone, records)
        assert "$ORIGIN example.com." in text
        assert "2025031401\t; serial" in text

        parsed = parse_zone(text, zone)
        soa = [r for r in parsed if r.type is RecordType.SOA]
        assert len(soa) == 1
        assert soa[0].content.startswith("ns1.hostplane.test. admin.example.com. 2025031401 ")
        assert {r.key() for r in parsed if r.type is not RecordType.SOA} == {r.key() for r in records}

    def test_parse_rejects_zone_without_ns(self, zone):
        text = (
            "$ORIGIN example.com.\n$TTL 3600\n"
            "@ IN SOA ns1.example.com. admin.example.com. 1 2 3 4 5\n"
            "@ IN A 192.0.2.1\n"
        )
        with pytest.raises(PublishError) as exc_info:
            parse_zone(text, zone)
        assert exc_info.value.stage is PublishStage.VALIDATE
