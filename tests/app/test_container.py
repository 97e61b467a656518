"""Tests for the dependency container in hostplane.app.context.

The memory store needs no database; the PostgreSQL branch gets a
MagicMock database, which the repositories only store.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from hostplane.acme.self_signed import SelfSignedTransport
from hostplane.app.context import Container
from hostplane.config.settings import build_settings
from hostplane.drivers.apache import ApacheDriver
from hostplane.drivers.bind import BindDriver
from hostplane.repositories import CertificateRepository, DomainRepository, ZoneRepository
from hostplane.repositories.memory import MemoryDomainRepository
from hostplane.system.artifacts import FileArtifactStore


class TestWiring:
    def test_memory_store(self, container):
        assert isinstance(container.domains, MemoryDomainRepository)
        assert isinstance(container.web, ApacheDriver)
        assert isinstance(container.dns, BindDriver)
        assert isinstance(container.transport, SelfSignedTransport)

    def test_collaborators_are_shared(self, container, runner, artifacts, clock):
        assert container.runner is runner
        assert container.artifacts is artifacts
        assert container.clock is clock
        assert container.driver_context.zones is container.zones
        assert container.driver_context.records is container.records

    def test_default_artifact_store(self, settings_data, tmp_path):
        settings_data["artifacts"] = {"root": str(tmp_path)}
        c = Container(build_settings(settings_data))
        try:
            assert isinstance(c.artifacts, FileArtifactStore)
        finally:
            c.shutdown(timeout=1.0)

    def test_nginx_selected(self, settings_data, artifacts, runner, clock):
        settings_data["web_server"] = {"driver": "nginx"}
        c = Container(build_settings(settings_data), artifacts=artifacts, runner=runner, clock=clock)
        try:
            assert c.web.name == "nginx"
        finally:
            c.shutdown(timeout=1.0)

    def test_overrides(self, settings, artifacts, runner, clock):
        web, dns, transport, hooks = MagicMock(), MagicMock(), MagicMock(), MagicMock()
        c = Container(
            settings,
            artifacts=artifacts,
            runner=runner,
            clock=clock,
            web=web,
            dns=dns,
            transport=transport,
            hooks=hooks,
        )
        assert c.web is web
        assert c.dns is dns
        assert c.transport is transport
        assert c.hooks is hooks
        c.shutdown(timeout=1.0)
        hooks.shutdown.assert_called_once()


class TestPostgresStore:
    def test_requires_database(self, settings_data):
        settings_data["store"] = {"backend": "postgres"}
        with pytest.raises(RuntimeError, match="initialised database"):
            Container(build_settings(settings_data))

    def test_uses_sql_repositories(self, settings_data, artifacts, runner, clock):
        settings_data["store"] = {"backend": "postgres"}
        db = MagicMock()
        c = Container(build_settings(settings_data), db=db, artifacts=artifacts, runner=runner, clock=clock)
        try:
            assert isinstance(c.domains, DomainRepository)
            assert isinstance(c.zones, ZoneRepository)
            assert isinstance(c.certificates, CertificateRepository)
            assert c.renewal_worker._db is db
        finally:
            c.shutdown(timeout=1.0)


class TestLifecycle:
    def test_startup_check_runs_every_check(self, settings, artifacts, runner, clock, caplog):
        web, dns, transport = MagicMock(), MagicMock(), MagicMock()
        web.name, dns.name, transport.name = "apache", "bind", "self_signed"
        c = Container(settings, artifacts=artifacts, runner=runner, clock=clock, web=web, dns=dns, transport=transport)
        with caplog.at_level("INFO", logger="hostplane.app.context"):
            c.startup_check()
        web.startup_check.assert_called_once_with()
        dns.startup_check.assert_called_once_with()
        transport.startup_check.assert_called_once_with()
        assert "Ready: web=apache dns=bind transport=self_signed store=memory" in caplog.text
        c.shutdown(timeout=1.0)

    def test_shutdown_stops_worker(self, container):
        container.renewal_worker.start()
        assert container.renewal_worker.running
        container.shutdown(timeout=2.0)
        assert not container.renewal_worker.running
