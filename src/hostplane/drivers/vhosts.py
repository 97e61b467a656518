"""File-based virtual-host publishing shared by the Apache and Nginx drivers.

Both servers use the same layout: one ``<name>.conf`` per domain in
``sites_available``, a parallel ``<name>-ssl.conf`` while TLS is on, and
symlinks in ``sites_enabled``.  When both directories are the same
(RHEL ``conf.d`` style) a disabled vhost is kept as
``<name>.conf.disabled`` instead.

Subclasses provide the template directory, the config-test command and
the version parser.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, ClassVar

from hostplane.core.errors import ConfigTestError, PublishError
from hostplane.core.types import PublishStage
from hostplane.drivers.base import CertificatePaths, WebServerDriver
from hostplane.drivers.publisher import Changeset, ConfigPublisher

if TYPE_CHECKING:
    from hostplane.drivers.base import DriverContext
    from hostplane.drivers.publisher import PublishResult
    from hostplane.models import Domain, Subdomain

log = logging.getLogger(__name__)

_DISABLED_SUFFIX = ".disabled"


class ConfigFileWebServer(WebServerDriver):
    """Vhost lifecycle over a ``sites-available``/``sites-enabled`` tree."""

    template_dir: ClassVar[str] = ""
    version_pattern: ClassVar[re.Pattern[str]] = re.compile(r"/([0-9][0-9.]*)")

    def __init__(self, context: DriverContext) -> None:
        super().__init__(context)
        self._settings = context.settings.web_server
        self._panel = context.settings.panel
        self._artifacts = context.artifacts
        self._publisher = ConfigPublisher(context.artifacts, label=self.name)

    # -- layout --------------------------------------------------------------

    @property
    def _uses_links(self) -> bool:
        return self._settings.sites_available.rstrip("/") != self._settings.sites_enabled.rstrip("/")

    def _available(self, name: str) -> str:
        return f"{self._settings.sites_available.rstrip('/')}/{name}.conf"

    def _enabled(self, name: str) -> str:
        return f"{self._settings.sites_enabled.rstrip('/')}/{name}.conf"

    def certificate_paths(self, domain: Domain) -> CertificatePaths:
        directory = f"{self._settings.ssl_dir.rstrip('/')}/{domain.name}"
        return CertificatePaths(
            directory=directory,
            certificate=f"{directory}/cert.pem",
            private_key=f"{directory}/key.pem",
            chain=f"{directory}/chain.pem",
            fullchain=f"{directory}/fullchain.pem",
        )

    def has_virtual_host(self, domain_name: str) -> bool:
        path = self._available(domain_name)
        return self._artifacts.exists(path) or self._artifacts.exists(path + _DISABLED_SUFFIX)

    # -- rendering -----------------------------------------------------------

    def _log_dir(self, domain: Domain) -> str:
        return self._settings.log_dir.format(
            home=domain.account.home_dir.rstrip("/"),
            user=domain.account.username,
            domain=domain.name,
        )

    def _php_socket(self, domain: Domain) -> str | None:
        version = domain.php_version or self._panel.default_php_version
        if not version:
            return None
        return self._settings.php_socket.format(version=version, user=domain.account.username)

    def _context(self, domain: Domain, *, ssl: CertificatePaths | None) -> dict:
        return {
            "server_name": domain.name,
            "server_aliases": [domain.www_name],
            "document_root": domain.document_root,
            "log_dir": self._log_dir(domain),
            "php_socket": self._php_socket(domain),
            "redirect_to_https": ssl is not None,
            "ssl": ssl,
            "ssl_ciphers": self._settings.ssl_ciphers,
            "hsts_max_age": self._settings.hsts_max_age,
        }

    def _render(self, template: str, context: dict) -> str:
        return self._ctx.renderer.render(f"{self.template_dir}/{template}", context)

    # -- publishing ----------------------------------------------------------

    def _changeset_for(self, domain: Domain, ssl: CertificatePaths | None) -> Changeset:
        name = domain.name
        ssl_name = f"{name}-ssl"
        context = self._context(domain, ssl=ssl)
        changes = Changeset()
        changes.write(self._available(name), self._render("vhost.conf.j2", context))
        if self._uses_links:
            changes.link(self._available(name), self._enabled(name))
        else:
            changes.remove(self._available(name) + _DISABLED_SUFFIX)

        if ssl is not None:
            changes.write(self._available(ssl_name), self._render("vhost-ssl.conf.j2", context))
            if self._uses_links:
                changes.link(self._available(ssl_name), self._enabled(ssl_name))
        else:
            if self._uses_links:
                changes.unlink(self._enabled(ssl_name))
            changes.remove(self._available(ssl_name))
        return changes

    def _publish(self, changes: Changeset) -> PublishResult:
        return self._publisher.publish(changes, validate=self._check_config, reload=self.reload)

    def _prepare_dirs(self, domain: Domain) -> None:
        self._artifacts.ensure_dir(self._log_dir(domain))
        self._artifacts.ensure_dir(domain.document_root)

    def _live_ssl(self, domain: Domain) -> CertificatePaths | None:
        if not domain.ssl_enabled:
            return None
        paths = self.certificate_paths(domain)
        if not self._artifacts.exists(paths.certificate):
            log.warning(
                "%s is marked TLS-enabled but %s is missing; publishing plain HTTP",
                domain.name,
                paths.certificate,
            )
            return None
        return paths

    def create_virtual_host(self, domain: Domain) -> PublishResult:
        self._prepare_dirs(domain)
        return self._publish(self._changeset_for(domain, self._live_ssl(domain)))

    def update_virtual_host(self, domain: Domain) -> PublishResult:
        return self._publish(self._changeset_for(domain, self._live_ssl(domain)))

    def remove_virtual_host(self, domain: Domain) -> PublishResult:
        changes = Changeset()
        for name in (domain.name, f"{domain.name}-ssl"):
            if self._uses_links:
                changes.unlink(self._enabled(name))
            changes.remove(self._available(name))
            changes.remove(self._available(name) + _DISABLED_SUFFIX)
        return self._publish(changes)

    def enable_virtual_host(self, domain: Domain) -> PublishResult:
        changes = Changeset()
        for name in (domain.name, f"{domain.name}-ssl"):
            self._toggle(changes, name, enabled=True)
        return self._publish(changes)

    def disable_virtual_host(self, domain: Domain) -> PublishResult:
        changes = Changeset()
        for name in (domain.name, f"{domain.name}-ssl"):
            self._toggle(changes, name, enabled=False)
        return self._publish(changes)

    def _toggle(self, changes: Changeset, name: str, *, enabled: bool) -> None:
        available = self._available(name)
        if self._uses_links:
            if enabled and self._artifacts.exists(available):
                changes.link(available, self._enabled(name))
            elif not enabled:
                changes.unlink(self._enabled(name))
            return
        parked = available + _DISABLED_SUFFIX
        source, destination = (parked, available) if enabled else (available, parked)
        content = self._artifacts.read(source)
        if content is not None:
            changes.write(destination, content)
            changes.remove(source)

    def create_subdomain_virtual_host(self, subdomain: Subdomain, domain: Domain) -> PublishResult:
        context = self._context(domain, ssl=None)
        context.update(
            server_name=subdomain.fqdn,
            server_aliases=[],
            document_root=subdomain.document_root,
            parent_name=domain.name,
        )
        self._artifacts.ensure_dir(subdomain.document_root)
        changes = Changeset().write(
            self._available(subdomain.fqdn),
            self._render("subdomain.conf.j2", context),
        )
        if self._uses_links:
            changes.link(self._available(subdomain.fqdn), self._enabled(subdomain.fqdn))
        return self._publish(changes)

    def remove_subdomain_virtual_host(self, subdomain: Subdomain) -> PublishResult:
        changes = Changeset()
        if self._uses_links:
            changes.unlink(self._enabled(subdomain.fqdn))
        changes.remove(self._available(subdomain.fqdn))
        return self._publish(changes)

    def enable_ssl(self, domain: Domain, paths: CertificatePaths) -> PublishResult:
        if not self._artifacts.exists(paths.certificate) or not self._artifacts.exists(
            paths.private_key,
        ):
            msg = f"Certificate material for {domain.name} is not installed at {paths.directory}"
            raise PublishError(msg, stage=PublishStage.RENDER)
        return self._publish(self._changeset_for(domain, paths))

    def disable_ssl(self, domain: Domain) -> PublishResult:
        return self._publish(self._changeset_for(domain, None))

    # -- daemon --------------------------------------------------------------

    def _test_command(self) -> list[str]:
        return [self._settings.binary, "-t"]

    def _check_config(self) -> None:
        result = self._ctx.runner.run(
            self._test_command(),
            timeout=self._settings.command_timeout_seconds,
        )
        if not result.ok:
            msg = f"{self.name} rejected the configuration: {result.output or result.returncode}"
            raise ConfigTestError(msg, output=result.output)

    def test_config(self) -> bool:
        try:
            self._check_config()
        except ConfigTestError as exc:
            log.warning("%s", exc.detail)
            return False
        return True

    def reload(self) -> str:
        return self._ctx.services.reload_or_restart(self._settings.service_name)

    def get_version(self) -> str:
        result = self._ctx.runner.run(
            [self._settings.binary, "-v"],
            timeout=self._settings.command_timeout_seconds,
        )
        match = self.version_pattern.search(result.output)
        return match.group(1) if match else "unknown"
