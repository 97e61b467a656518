"""Self-signed transport: no issuer, no network."""

from __future__ import annotations

import logging

from hostplane.acme.base import AcmeTransport, ObtainedCertificate
from hostplane.certificates.material import generate_self_signed
from hostplane.core.types import CertificateKind

log = logging.getLogger(__name__)


class SelfSignedTransport(AcmeTransport):
    kind = CertificateKind.SELF_SIGNED
    name = "self_signed"

    def obtain(self, hostnames: list[str], webroot: str) -> ObtainedCertificate:  # noqa: ARG002
        cert_pem, key_pem = generate_self_signed(
            hostnames,
            days=self._settings.self_signed_days,
            now=self._clock.now(),
            key_type=self._settings.key_type,
        )
        log.info("Generated self-signed certificate for %s", ", ".join(hostnames))
        return ObtainedCertificate(certificate=cert_pem, private_key=key_pem)

    def revoke(self, certificate_pem: str, hostnames: list[str]) -> None:  # noqa: ARG002
        log.debug("Self-signed certificates have no issuer to notify")
