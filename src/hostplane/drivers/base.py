"""Driver contracts.

The orchestration layer talks to exactly one :class:`WebServerDriver`
and one :class:`DnsDriver`, chosen at start-up from configuration (see
:mod:`hostplane.drivers.registry`).  Variants are flat implementations
of these interfaces.

Contract shared by every mutating method: on return, the external
system reflects the call; on a raised :class:`~hostplane.core.errors.HostplaneError`,
the previously published configuration is still the active one (or,
for a ``reload``-stage error, the new configuration is on disk but the
daemon has not picked it up).  Invalid configuration is never left
active.  Removals of things that do not exist succeed as no-ops.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from hostplane.config.settings import HostplaneSettings
    from hostplane.core.clock import Clock
    from hostplane.drivers.publisher import PublishResult
    from hostplane.drivers.renderer import TemplateRenderer
    from hostplane.models import DnsRecord, DnsZone, Domain, Subdomain
    from hostplane.system.artifacts import ArtifactStore
    from hostplane.system.runner import CommandRunner
    from hostplane.system.services import ServiceManager


@dataclass(frozen=True)
class DriverContext:
    """Capabilities handed to every driver at construction."""

    settings: HostplaneSettings
    artifacts: ArtifactStore
    runner: CommandRunner
    services: ServiceManager
    renderer: TemplateRenderer
    clock: Clock
    zones: Any
    records: Any


@dataclass(frozen=True)
class CertificatePaths:
    """Where a web server expects a domain's certificate material."""

    directory: str
    certificate: str
    private_key: str
    chain: str
    fullchain: str


# ---------------------------------------------------------------------------
# Web server
# ---------------------------------------------------------------------------


class WebServerDriver(abc.ABC):
    """Virtual-host management for one web-server technology."""

    name: str = ""

    def __init__(self, context: DriverContext) -> None:
        self._ctx = context

    @abc.abstractmethod
    def create_virtual_host(self, domain: Domain) -> PublishResult:
        """Publish and enable the plain-HTTP vhost for *domain*.

        Re-entrant: calling it for an existing vhost re-renders it.
        """

    @abc.abstractmethod
    def update_virtual_host(self, domain: Domain) -> PublishResult:
        """Re-render the vhost (and the TLS vhost when enabled)."""

    @abc.abstractmethod
    def remove_virtual_host(self, domain: Domain) -> PublishResult:
        """Remove every vhost artifact of *domain*; no-op if absent."""

    @abc.abstractmethod
    def enable_virtual_host(self, domain: Domain) -> PublishResult: ...

    @abc.abstractmethod
    def disable_virtual_host(self, domain: Domain) -> PublishResult: ...

    @abc.abstractmethod
    def create_subdomain_virtual_host(
        self,
        subdomain: Subdomain,
        domain: Domain,
    ) -> PublishResult: ...

    @abc.abstractmethod
    def remove_subdomain_virtual_host(self, subdomain: Subdomain) -> PublishResult: ...

    @abc.abstractmethod
    def enable_ssl(self, domain: Domain, paths: CertificatePaths) -> PublishResult:
        """Publish the TLS vhost and switch the HTTP vhost to a redirect.

        Certificate files must already be at *paths*.
        """

    @abc.abstractmethod
    def disable_ssl(self, domain: Domain) -> PublishResult:
        """Remove the TLS vhost and re-publish the plain-HTTP vhost."""

    @abc.abstractmethod
    def certificate_paths(self, domain: Domain) -> CertificatePaths:
        """Location this server reads *domain*'s certificate material from."""

    @abc.abstractmethod
    def has_virtual_host(self, domain_name: str) -> bool: ...

    @abc.abstractmethod
    def test_config(self) -> bool:
        """Run the server's native configuration test."""

    @abc.abstractmethod
    def reload(self) -> str:
        """Reload the server, restarting it if the reload fails.

        Returns ``"reload"`` or ``"restart"``.
        """

    @abc.abstractmethod
    def get_version(self) -> str: ...

    def startup_check(self) -> None:
        """Optional start-up health check.

        Raises
        ------
        DriverError
            If the driver is misconfigured.

        """


# ---------------------------------------------------------------------------
# DNS
# ---------------------------------------------------------------------------


class DnsDriver(abc.ABC):
    """Authoritative zone management for one DNS server technology.

    Every record mutation allocates a new serial before the zone is
    republished, and persists it only once the publish succeeded.
    """

    name: str = ""

    def __init__(self, context: DriverContext) -> None:
        self._ctx = context

    @abc.abstractmethod
    def create_zone(self, domain: Domain) -> DnsZone:
        """Create and publish *domain*'s zone with the default record set.

        Re-entrant: an existing zone is re-published and returned.
        """

    @abc.abstractmethod
    def remove_zone(self, domain_name: str) -> bool:
        """Unpublish and delete the zone.  ``False`` if it did not exist."""

    @abc.abstractmethod
    def reset_zone(self, zone: DnsZone) -> DnsZone:
        """Replace every record with the default set."""

    @abc.abstractmethod
    def add_record(self, zone: DnsZone, record: DnsRecord) -> DnsRecord: ...

    @abc.abstractmethod
    def update_record(self, zone: DnsZone, record: DnsRecord) -> DnsRecord:
        """Replace the record whose ``id`` matches *record*."""

    @abc.abstractmethod
    def remove_record(self, zone: DnsZone, record: DnsRecord) -> bool:
        """Remove *record*; ``False`` if the zone did not contain it."""

    @abc.abstractmethod
    def list_records(self, zone: DnsZone) -> list[DnsRecord]:
        """Read the published zone back, SOA included."""

    @abc.abstractmethod
    def get_zone(self, domain_name: str) -> DnsZone | None: ...

    @abc.abstractmethod
    def check_zone(self, name: str, path: str | None = None) -> bool:
        """Run the native zone checker against *path* (or the live zone)."""

    @abc.abstractmethod
    def reload(self) -> None: ...

    def startup_check(self) -> None:
        """Optional start-up health check."""
