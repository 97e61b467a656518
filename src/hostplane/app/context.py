"""Dependency injection container.

Created once at start-up by the CLI from the typed settings tree.  Every
collaborator the workflows need is built here, in dependency order, so
that a test can swap any of them by passing an override.

Usage::

    from hostplane.app.context import Container

    c = Container(settings)
    c.provisioning.provision_domain(domain)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from hostplane.acme.registry import load_acme_transport
from hostplane.certificates.installer import CertificateInstaller
from hostplane.certificates.manager import CertificateManager
from hostplane.certificates.sealing import KeySealer
from hostplane.core.clock import Clock
from hostplane.core.locks import DomainLocks
from hostplane.drivers.base import DriverContext
from hostplane.drivers.registry import load_dns_driver, load_web_server_driver
from hostplane.drivers.renderer import TemplateRenderer
from hostplane.hooks.registry import HookRegistry
from hostplane.services.provisioning import ProvisioningService
from hostplane.services.renewal_worker import RenewalWorker
from hostplane.system.artifacts import ArtifactStore, FileArtifactStore
from hostplane.system.runner import CommandRunner
from hostplane.system.services import ServiceManager

if TYPE_CHECKING:
    from pypgkit import Database

    from hostplane.acme.base import AcmeTransport
    from hostplane.config.settings import HostplaneSettings
    from hostplane.drivers.base import DnsDriver, WebServerDriver

log = logging.getLogger(__name__)


class Container:
    """Application-wide dependency container.

    Parameters
    ----------
    settings:
        The typed settings tree.
    db:
        Initialised database, required when ``store.backend`` is
        ``postgres``.
    overrides:
        Prebuilt collaborators keyed by attribute name (``runner``,
        ``artifacts``, ``clock``, ``transport``, ...).  Used by tests.

    """

    def __init__(  # noqa: PLR0915
        self,
        settings: HostplaneSettings,
        db: Database | None = None,
        **overrides: Any,
    ) -> None:
        self.settings = settings
        self.db = db

        # Repositories
        if settings.store.backend == "memory":
            from hostplane.repositories.memory import (  # noqa: PLC0415
                MemoryCertificateRepository,
                MemoryDomainRepository,
                MemoryRecordRepository,
                MemorySubdomainRepository,
                MemoryZoneRepository,
            )

            self.domains = MemoryDomainRepository()
            self.subdomains = MemorySubdomainRepository()
            self.zones = MemoryZoneRepository()
            self.records = MemoryRecordRepository()
            self.certificates = MemoryCertificateRepository()
        else:
            if db is None:
                msg = "store.backend 'postgres' needs an initialised database"
                raise RuntimeError(msg)
            from hostplane.repositories import (  # noqa: PLC0415
                CertificateRepository,
                DomainRepository,
                RecordRepository,
                SubdomainRepository,
                ZoneRepository,
            )

            self.domains = DomainRepository(db)
            self.subdomains = SubdomainRepository(db)
            self.zones = ZoneRepository(db)
            self.records = RecordRepository(db)
            self.certificates = CertificateRepository(db)

        # Capabilities
        self.clock: Clock = overrides.get("clock") or Clock()
        self.runner: CommandRunner = overrides.get("runner") or CommandRunner()
        self.artifacts: ArtifactStore = overrides.get("artifacts") or FileArtifactStore(
            settings.artifacts.root,
        )
        self.services: ServiceManager = overrides.get("services") or ServiceManager(
            self.runner,
            systemctl=settings.artifacts.systemctl,
            timeout=settings.artifacts.service_timeout_seconds,
        )
        self.renderer = TemplateRenderer(settings.web_server.templates_path)
        self.locks = DomainLocks(timeout=settings.locks.acquire_timeout_seconds)
        self.hooks: HookRegistry = overrides.get("hooks") or HookRegistry(settings.hooks)

        # Drivers
        self.driver_context = DriverContext(
            settings=settings,
            artifacts=self.artifacts,
            runner=self.runner,
            services=self.services,
            renderer=self.renderer,
            clock=self.clock,
            zones=self.zones,
            records=self.records,
        )
        self.web: WebServerDriver = overrides.get("web") or load_web_server_driver(self.driver_context)
        self.dns: DnsDriver = overrides.get("dns") or load_dns_driver(self.driver_context)

        # Certificates
        self.transport: AcmeTransport = overrides.get("transport") or load_acme_transport(
            settings.ssl.acme,
            self.runner,
            self.clock,
        )
        self.sealer = KeySealer(settings.ssl.sealing_key)
        self.installer = CertificateInstaller(self.artifacts)
        self.certificate_manager = CertificateManager(
            certificates=self.certificates,
            domains=self.domains,
            web=self.web,
            transport=self.transport,
            installer=self.installer,
            sealer=self.sealer,
            locks=self.locks,
            clock=self.clock,
            renewal=settings.renewal,
            hooks=self.hooks,
        )

        # Facade
        self.provisioning = ProvisioningService(
            dns=self.dns,
            web=self.web,
            certificates=self.certificate_manager,
            domains=self.domains,
            subdomains=self.subdomains,
            locks=self.locks,
            panel=settings.panel,
            issue_certificates=settings.ssl.issue_on_provision,
            hooks=self.hooks,
        )
        self.renewal_worker = RenewalWorker(self.provisioning, settings.renewal, db)

    def startup_check(self) -> None:
        """Run every driver's and the transport's health check."""
        self.web.startup_check()
        self.dns.startup_check()
        self.transport.startup_check()
        log.info(
            "Ready: web=%s dns=%s transport=%s store=%s",
            self.web.name,
            self.dns.name,
            self.transport.name,
            self.settings.store.backend,
        )

    def shutdown(self, timeout: float = 10.0) -> None:
        self.renewal_worker.stop(timeout)
        self.hooks.shutdown()
