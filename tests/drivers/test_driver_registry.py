"""Tests for driver loading by name."""

from __future__ import annotations

import pytest

from hostplane.config.settings import build_settings
from hostplane.core.errors import DriverError
from hostplane.drivers.apache import ApacheDriver
from hostplane.drivers.base import DriverContext
from hostplane.drivers.bind import BindDriver
from hostplane.drivers.nginx import NginxDriver
from hostplane.drivers.powerdns import PowerDnsDriver
from hostplane.drivers.registry import load_dns_driver, load_web_server_driver
from hostplane.drivers.renderer import TemplateRenderer
from hostplane.repositories.memory import MemoryRecordRepository, MemoryZoneRepository
from hostplane.system.services import ServiceManager


@pytest.fixture()
def make_context(settings_data, artifacts, runner, clock):
    def _make(*, web: str | None = None, dns: str | None = None) -> DriverContext:
        if web is not None:
            settings_data["web_server"] = {"driver": web}
        if dns is not None:
            settings_data["dns"] = {"driver": dns}
        return DriverContext(
            settings=build_settings(settings_data),
            artifacts=artifacts,
            runner=runner,
            services=ServiceManager(runner),
            renderer=TemplateRenderer(),
            clock=clock,
            zones=MemoryZoneRepository(),
            records=MemoryRecordRepository(),
        )

    return _make


# ---------------------------------------------------------------------------
# Built-ins
# ---------------------------------------------------------------------------


class TestBuiltins:
    def test_defaults(self, make_context):
        ctx = make_context()
        assert isinstance(load_web_server_driver(ctx), ApacheDriver)
        assert isinstance(load_dns_driver(ctx), BindDriver)

    def test_nginx_and_powerdns(self, make_context):
        ctx = make_context(web="nginx", dns="powerdns")
        assert isinstance(load_web_server_driver(ctx), NginxDriver)
        assert isinstance(load_dns_driver(ctx), PowerDnsDriver)

    def test_unknown_name(self, make_context):
        with pytest.raises(DriverError, match="Unknown web server driver 'lighttpd'"):
            load_web_server_driver(make_context(web="lighttpd"))

    def test_unknown_dns_name_lists_options(self, make_context):
        with pytest.raises(DriverError, match="bind"):
            load_dns_driver(make_context(dns="djbdns"))


# ---------------------------------------------------------------------------
# ext: drivers
# ---------------------------------------------------------------------------


class TestExternal:
    def test_loads_fully_qualified_class(self, make_context):
        driver = load_web_server_driver(make_context(web="ext:hostplane.drivers.nginx.NginxDriver"))
        assert isinstance(driver, NginxDriver)

    def test_requires_module_path(self, make_context):
        with pytest.raises(DriverError, match="must be fully qualified"):
            load_web_server_driver(make_context(web="ext:NginxDriver"))

    def test_missing_module(self, make_context):
        with pytest.raises(DriverError, match="Failed to load"):
            load_dns_driver(make_context(dns="ext:hostplane.drivers.nope.Driver"))

    def test_missing_class(self, make_context):
        with pytest.raises(DriverError, match="Failed to load"):
            load_dns_driver(make_context(dns="ext:hostplane.drivers.bind.Nope"))

    def test_wrong_base_class(self, make_context):
        with pytest.raises(DriverError, match="not a subclass of DnsDriver"):
            load_dns_driver(make_context(dns="ext:hostplane.drivers.apache.ApacheDriver"))

    def test_abstract_methods_rejected(self, make_context):
        with pytest.raises(DriverError, match="does not implement 'create_virtual_host\\(\\)'"):
            load_web_server_driver(make_context(web="ext:hostplane.drivers.base.WebServerDriver"))
