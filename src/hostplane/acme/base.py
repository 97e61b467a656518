"""Certificate transports.

A transport obtains certificate material for a set of host names whose
HTTP traffic is served from a webroot the caller controls.  How it does
so (an ACME library, the certbot CLI, a local self-signed key) is its
own business; the lifecycle manager only sees
:class:`ObtainedCertificate` or :class:`~hostplane.core.errors.AcmeError`.

Custom transports subclass :class:`AcmeTransport` and are configured as
``ssl.acme.transport: ext:package.module.ClassName``.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import TYPE_CHECKING

from hostplane.core.types import CertificateKind

if TYPE_CHECKING:
    from hostplane.config.settings import AcmeSettings
    from hostplane.core.clock import Clock
    from hostplane.system.runner import CommandRunner


@dataclass(frozen=True)
class ObtainedCertificate:
    """Material returned by a transport.

    Attributes
    ----------
    certificate:
        PEM of the leaf certificate alone.
    private_key:
        PEM of the matching private key (not sealed).
    ca_bundle:
        PEM of the intermediates, or ``None``.

    """

    certificate: str
    private_key: str
    ca_bundle: str | None = None


class AcmeTransport(abc.ABC):
    """Base class for certificate transports.

    Parameters
    ----------
    settings:
        The ``ssl.acme`` configuration section.
    runner:
        For transports that shell out.
    clock:
        Time source for locally generated material.

    """

    kind: CertificateKind = CertificateKind.ACME
    name: str = ""

    def __init__(self, settings: AcmeSettings, runner: CommandRunner, clock: Clock) -> None:
        self._settings = settings
        self._runner = runner
        self._clock = clock

    def startup_check(self) -> None:
        """Verify the transport is usable; raise ``AcmeError`` if not."""

    @abc.abstractmethod
    def obtain(self, hostnames: list[str], webroot: str) -> ObtainedCertificate:
        """Obtain a new certificate covering *hostnames*.

        The first host name is the primary one.  Proof of control is
        served from *webroot* (HTTP-01).

        Raises
        ------
        AcmeError
            On any failure, with ``retryable`` set for transient ones.

        """

    def renew(
        self,
        hostnames: list[str],
        webroot: str,
        *,
        current: str | None = None,  # noqa: ARG002
    ) -> ObtainedCertificate:
        """Renew the certificate for *hostnames*.

        The default obtains a fresh certificate.
        """
        return self.obtain(hostnames, webroot)

    @abc.abstractmethod
    def revoke(self, certificate_pem: str, hostnames: list[str]) -> None:
        """Ask the issuer to revoke *certificate_pem*."""
