"""ACME transport that drives the certbot CLI.

certbot keeps its own state under ``/etc/letsencrypt``; this transport
only runs it in webroot mode and reads the resulting files back from
``<certbot_live_dir>/<primary host>/``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from hostplane.acme.base import AcmeTransport, ObtainedCertificate
from hostplane.core.errors import AcmeError, ExternalProcessError

log = logging.getLogger(__name__)

_KEY_TYPES = {
    "rsa2048": ["--key-type", "rsa", "--rsa-key-size", "2048"],
    "rsa3072": ["--key-type", "rsa", "--rsa-key-size", "3072"],
    "rsa4096": ["--key-type", "rsa", "--rsa-key-size", "4096"],
    "ec256": ["--key-type", "ecdsa", "--elliptic-curve", "secp256r1"],
    "ec384": ["--key-type", "ecdsa", "--elliptic-curve", "secp384r1"],
}


class CertbotTransport(AcmeTransport):
    name = "certbot"

    def startup_check(self) -> None:
        try:
            result = self._runner.run([self._settings.certbot_binary, "--version"], timeout=30)
        except ExternalProcessError as exc:
            raise AcmeError(exc.detail) from exc
        if not result.ok:
            msg = f"{self._settings.certbot_binary} --version failed: {result.output}"
            raise AcmeError(msg)

    def _base(self) -> list[str]:
        return [self._settings.certbot_binary]

    def _common_flags(self) -> list[str]:
        flags = ["--non-interactive", "--agree-tos"]
        if self._settings.email:
            flags += ["--email", self._settings.email]
        else:
            flags.append("--register-unsafely-without-email")
        if self._settings.directory_url:
            flags += ["--server", self._settings.directory_url]
        return flags

    def _certbot(self, label: str, argv: list[str]) -> None:
        try:
            self._runner.run(argv, timeout=self._settings.timeout_seconds, check=True)
        except ExternalProcessError as exc:
            msg = f"certbot {label} failed: {exc.output or exc.detail}"
            raise AcmeError(msg, retryable=exc.retryable) from exc

    def _read_live(self, primary: str) -> ObtainedCertificate:
        live = Path(self._settings.certbot_live_dir) / primary
        try:
            cert = (live / "cert.pem").read_text(encoding="utf-8")
            key = (live / "privkey.pem").read_text(encoding="utf-8")
            chain_file = live / "chain.pem"
            chain = chain_file.read_text(encoding="utf-8") if chain_file.exists() else None
        except OSError as exc:
            msg = f"certbot output for {primary} could not be read from {live}: {exc}"
            raise AcmeError(msg) from exc
        return ObtainedCertificate(certificate=cert, private_key=key, ca_bundle=chain or None)

    def obtain(self, hostnames: list[str], webroot: str) -> ObtainedCertificate:
        primary = hostnames[0]
        argv = [
            *self._base(),
            "certonly",
            "--webroot",
            "-w",
            webroot,
            "--cert-name",
            primary,
            *self._common_flags(),
            *_KEY_TYPES.get(self._settings.key_type, []),
        ]
        for host in hostnames:
            argv += ["-d", host]
        self._certbot("certonly", argv)
        log.info("certbot issued a certificate for %s", primary)
        return self._read_live(primary)

    def renew(
        self,
        hostnames: list[str],
        webroot: str,  # noqa: ARG002
        *,
        current: str | None = None,  # noqa: ARG002
    ) -> ObtainedCertificate:
        primary = hostnames[0]
        self._certbot(
            "renew",
            [*self._base(), "renew", "--cert-name", primary, "--force-renewal", "--non-interactive"],
        )
        log.info("certbot renewed the certificate for %s", primary)
        return self._read_live(primary)

    def revoke(self, certificate_pem: str, hostnames: list[str]) -> None:  # noqa: ARG002
        primary = hostnames[0]
        self._certbot(
            "revoke",
            [
                *self._base(),
                "revoke",
                "--cert-name",
                primary,
                "--non-interactive",
                "--no-delete-after-revoke",
            ],
        )
        log.info("certbot revoked the certificate for %s", primary)
