"""Tests for the Apache and Nginx vhost drivers."""

from __future__ import annotations

from dataclasses import replace

import pytest

from hostplane.config.settings import build_settings
from hostplane.core.errors import ConfigTestError, PublishError
from hostplane.core.types import PublishStage
from hostplane.drivers.apache import ApacheDriver
from hostplane.drivers.base import DriverContext
from hostplane.drivers.nginx import NginxDriver
from hostplane.drivers.renderer import TemplateRenderer
from hostplane.models import Subdomain
from hostplane.repositories.memory import MemoryRecordRepository, MemoryZoneRepository
from hostplane.system.services import ServiceManager

A_AVAIL = "/etc/apache2/sites-available"
A_ENABLED = "/etc/apache2/sites-enabled"
N_AVAIL = "/etc/nginx/sites-available"
N_ENABLED = "/etc/nginx/sites-enabled"


def _context(settings, artifacts, runner, clock):
    return DriverContext(
        settings=settings,
        artifacts=artifacts,
        runner=runner,
        services=ServiceManager(runner),
        renderer=TemplateRenderer(),
        clock=clock,
        zones=MemoryZoneRepository(),
        records=MemoryRecordRepository(),
    )


@pytest.fixture()
def apache(settings, artifacts, runner, clock):
    return ApacheDriver(_context(settings, artifacts, runner, clock))


@pytest.fixture()
def nginx(settings_data, artifacts, runner, clock):
    settings_data["web_server"] = {"driver": "nginx"}
    return NginxDriver(_context(build_settings(settings_data), artifacts, runner, clock))


def _install_material(artifacts, paths):
    artifacts.write(paths.certificate, "CERT")
    artifacts.write(paths.private_key, "KEY", mode=0o600)
    artifacts.write(paths.chain, "CHAIN")
    artifacts.write(paths.fullchain, "CERT\nCHAIN")


# ---------------------------------------------------------------------------
# Apache
# ---------------------------------------------------------------------------


class TestApacheCreate:
    def test_writes_and_links_vhost(self, apache, make_domain, artifacts):
        result = apache.create_virtual_host(make_domain())
        assert result.changed
        conf = artifacts.read(f"{A_AVAIL}/example.com.conf")
        assert "<VirtualHost *:80>" in conf
        assert "ServerName example.com" in conf
        assert "ServerAlias www.example.com" in conf
        assert "DocumentRoot /home/alice/example.com/public_html" in conf
        assert "ErrorLog /home/alice/logs/example.com-error.log" in conf
        assert "RewriteEngine" not in conf
        assert artifacts.links == {f"{A_ENABLED}/example.com.conf": f"{A_AVAIL}/example.com.conf"}

    def test_prepares_directories(self, apache, make_domain, artifacts):
        apache.create_virtual_host(make_domain())
        assert artifacts.exists("/home/alice/logs")
        assert artifacts.exists("/home/alice/example.com/public_html")

    def test_config_test_then_reload(self, apache, make_domain, runner):
        apache.create_virtual_host(make_domain())
        assert runner.calls == [("apache2ctl", "-t"), ("systemctl", "reload", "apache2")]

    def test_php_socket(self, apache, make_domain, artifacts):
        apache.create_virtual_host(make_domain(php_version="8.3"))
        conf = artifacts.read(f"{A_AVAIL}/example.com.conf")
        assert "proxy:unix:/run/php/php8.3-fpm-alice.sock|fcgi://localhost" in conf

    def test_rejected_config_is_rolled_back(self, apache, make_domain, artifacts, runner):
        runner.fail("apache2ctl", output="Syntax error on line 3")
        with pytest.raises(ConfigTestError, match="Syntax error"):
            apache.create_virtual_host(make_domain())
        assert not artifacts.exists(f"{A_AVAIL}/example.com.conf")
        assert artifacts.links == {}
        assert not runner.commands("systemctl")

    def test_recreate_is_noop(self, apache, make_domain, runner):
        domain = make_domain()
        apache.create_virtual_host(domain)
        runner.calls.clear()
        assert apache.create_virtual_host(domain).changed is False
        assert runner.calls == []

    def test_has_virtual_host(self, apache, make_domain):
        assert not apache.has_virtual_host("example.com")
        apache.create_virtual_host(make_domain())
        assert apache.has_virtual_host("example.com")


class TestApacheSsl:
    @pytest.fixture()
    def domain(self, apache, make_domain, runner):
        d = make_domain()
        apache.create_virtual_host(d)
        runner.calls.clear()
        return d

    def test_certificate_paths(self, apache, domain):
        paths = apache.certificate_paths(domain)
        assert paths.directory == "/etc/ssl/hostplane/example.com"
        assert paths.certificate == "/etc/ssl/hostplane/example.com/cert.pem"
        assert paths.private_key == "/etc/ssl/hostplane/example.com/key.pem"
        assert paths.fullchain == "/etc/ssl/hostplane/example.com/fullchain.pem"

    def test_enable_requires_material(self, apache, domain):
        with pytest.raises(PublishError) as exc_info:
            apache.enable_ssl(domain, apache.certificate_paths(domain))
        assert exc_info.value.stage is PublishStage.RENDER

    def test_enable_publishes_tls_vhost_and_redirect(self, apache, domain, artifacts):
        paths = apache.certificate_paths(domain)
        _install_material(artifacts, paths)
        apache.enable_ssl(replace(domain, ssl_enabled=True), paths)

        tls = artifacts.read(f"{A_AVAIL}/example.com-ssl.conf")
        assert "<VirtualHost *:443>" in tls
        assert f"SSLCertificateFile {paths.certificate}" in tls
        assert f"SSLCertificateKeyFile {paths.private_key}" in tls
        assert 'Strict-Transport-Security "max-age=31536000"' in tls
        assert "RewriteRule" in artifacts.read(f"{A_AVAIL}/example.com.conf")
        assert artifacts.read_link(f"{A_ENABLED}/example.com-ssl.conf") == f"{A_AVAIL}/example.com-ssl.conf"

    def test_update_keeps_tls_when_material_present(self, apache, domain, artifacts):
        paths = apache.certificate_paths(domain)
        _install_material(artifacts, paths)
        enabled = replace(domain, ssl_enabled=True)
        apache.enable_ssl(enabled, paths)
        apache.update_virtual_host(replace(enabled, php_version="8.2"))
        assert artifacts.exists(f"{A_AVAIL}/example.com-ssl.conf")

    def test_update_without_material_falls_back_to_http(self, apache, domain, artifacts):
        apache.update_virtual_host(replace(domain, ssl_enabled=True))
        assert not artifacts.exists(f"{A_AVAIL}/example.com-ssl.conf")
        assert "RewriteRule" not in artifacts.read(f"{A_AVAIL}/example.com.conf")

    def test_disable(self, apache, domain, artifacts):
        paths = apache.certificate_paths(domain)
        _install_material(artifacts, paths)
        apache.enable_ssl(replace(domain, ssl_enabled=True), paths)
        apache.disable_ssl(domain)
        assert not artifacts.exists(f"{A_AVAIL}/example.com-ssl.conf")
        assert f"{A_ENABLED}/example.com-ssl.conf" not in artifacts.links
        assert "RewriteRule" not in artifacts.read(f"{A_AVAIL}/example.com.conf")


class TestApacheRemoveAndToggle:
    def test_remove(self, apache, make_domain, artifacts):
        domain = make_domain()
        apache.create_virtual_host(domain)
        apache.remove_virtual_host(domain)
        assert artifacts.files == {}
        assert artifacts.links == {}

    def test_remove_missing_is_noop(self, apache, make_domain, runner):
        assert apache.remove_virtual_host(make_domain()).changed is False
        assert runner.calls == []

    def test_disable_and_enable(self, apache, make_domain, artifacts):
        domain = make_domain()
        apache.create_virtual_host(domain)
        apache.disable_virtual_host(domain)
        assert artifacts.links == {}
        assert artifacts.exists(f"{A_AVAIL}/example.com.conf")
        apache.enable_virtual_host(domain)
        assert f"{A_ENABLED}/example.com.conf" in artifacts.links

    def test_shared_directory_parks_disabled_vhost(self, settings_data, artifacts, runner, clock, make_domain):
        settings_data["web_server"] = {
            "driver": "apache",
            "sites_available": "/etc/httpd/conf.d",
            "sites_enabled": "/etc/httpd/conf.d",
            "binary": "apachectl",
            "service_name": "httpd",
        }
        driver = ApacheDriver(_context(build_settings(settings_data), artifacts, runner, clock))
        domain = make_domain()
        driver.create_virtual_host(domain)
        assert artifacts.links == {}

        driver.disable_virtual_host(domain)
        assert not artifacts.exists("/etc/httpd/conf.d/example.com.conf")
        assert artifacts.exists("/etc/httpd/conf.d/example.com.conf.disabled")
        assert driver.has_virtual_host("example.com")

        driver.enable_virtual_host(domain)
        assert artifacts.exists("/etc/httpd/conf.d/example.com.conf")
        assert not artifacts.exists("/etc/httpd/conf.d/example.com.conf.disabled")
        assert ("apachectl", "-t") in runner.calls


class TestApacheSubdomain:
    def test_create_and_remove(self, apache, make_domain, artifacts):
        domain = make_domain()
        sub = Subdomain(
            domain_id=domain.id,
            label="blog",
            parent_name=domain.name,
            document_root="/home/alice/example.com/blog",
        )
        apache.create_subdomain_virtual_host(sub, domain)
        conf = artifacts.read(f"{A_AVAIL}/blog.example.com.conf")
        assert "ServerName blog.example.com" in conf
        assert "DocumentRoot /home/alice/example.com/blog" in conf
        assert f"{A_ENABLED}/blog.example.com.conf" in artifacts.links
        assert artifacts.exists("/home/alice/example.com/blog")

        apache.remove_subdomain_virtual_host(sub)
        assert not artifacts.exists(f"{A_AVAIL}/blog.example.com.conf")
        assert artifacts.links == {}


class TestApacheDaemon:
    def test_test_config(self, apache, runner):
        assert apache.test_config() is True
        runner.fail("apache2ctl")
        assert apache.test_config() is False

    def test_reload_falls_back_to_restart(self, apache, runner):
        runner.fail("systemctl", "reload")
        assert apache.reload() == "restart"

    def test_version(self, apache, runner):
        runner.respond("apache2ctl", "Server version: Apache/2.4.58 (Ubuntu)\nServer built: 2024\n")
        assert apache.get_version() == "2.4.58"
        assert runner.calls[-1] == ("apache2ctl", "-v")

    def test_version_unknown(self, apache):
        assert apache.get_version() == "unknown"


# ---------------------------------------------------------------------------
# Nginx
# ---------------------------------------------------------------------------


class TestNginx:
    def test_create(self, nginx, make_domain, artifacts, runner):
        nginx.create_virtual_host(make_domain())
        conf = artifacts.read(f"{N_AVAIL}/example.com.conf")
        assert "server_name example.com www.example.com;" in conf
        assert "root /home/alice/example.com/public_html;" in conf
        assert "return 301" not in conf
        assert f"{N_ENABLED}/example.com.conf" in artifacts.links
        assert runner.calls == [("nginx", "-t", "-q"), ("systemctl", "reload", "nginx")]

    def test_enable_ssl_uses_fullchain(self, nginx, make_domain, artifacts):
        domain = make_domain()
        nginx.create_virtual_host(domain)
        paths = nginx.certificate_paths(domain)
        _install_material(artifacts, paths)
        nginx.enable_ssl(replace(domain, ssl_enabled=True), paths)

        tls = artifacts.read(f"{N_AVAIL}/example.com-ssl.conf")
        assert "listen 443 ssl http2;" in tls
        assert f"ssl_certificate {paths.fullchain};" in tls
        assert f"ssl_certificate_key {paths.private_key};" in tls
        http = artifacts.read(f"{N_AVAIL}/example.com.conf")
        assert "return 301 https://$host$request_uri;" in http
        assert "/.well-known/acme-challenge/" in http

    def test_version(self, nginx, runner):
        runner.respond("nginx", "nginx version: nginx/1.24.0\n")
        assert nginx.get_version() == "1.24.0"
