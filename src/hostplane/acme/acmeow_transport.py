"""ACME transport built on ACMEOW (HTTP-01 through a webroot).

The ACMEOW client is stateful (one open order at a time), so every
operation holds a lock.  Each order runs on a worker thread and is
abandoned after ``ssl.acme.timeout_seconds`` (300 by default); the
account key and registration live under ``ssl.acme.storage_path``.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path
from typing import TYPE_CHECKING, Any

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from hostplane.acme.base import AcmeTransport, ObtainedCertificate
from hostplane.certificates.material import (
    build_csr,
    generate_private_key,
    private_key_pem,
    split_chain,
)
from hostplane.core.errors import AcmeError

if TYPE_CHECKING:
    from collections.abc import Callable

    from hostplane.config.settings import AcmeSettings
    from hostplane.core.clock import Clock
    from hostplane.system.runner import CommandRunner

log = logging.getLogger(__name__)

_RETRYABLE_PATTERNS = ("timeout", "connection", "network", "server", "503", "429", "ratelimit")


def _is_retryable(exc: Exception) -> bool:
    name = type(exc).__name__.lower()
    text = str(exc).lower()
    return any(p in name or p in text for p in _RETRYABLE_PATTERNS)


class AcmeowTransport(AcmeTransport):
    name = "acmeow"

    def __init__(self, settings: AcmeSettings, runner: CommandRunner, clock: Clock) -> None:
        super().__init__(settings, runner, clock)
        self._client: Any = None
        self._lock = threading.Lock()
        self._executor = self._new_executor()

    @staticmethod
    def _new_executor() -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=1, thread_name_prefix="hostplane-acme")

    def startup_check(self) -> None:
        if not self._settings.directory_url:
            msg = "ssl.acme.directory_url is required for the acmeow transport"
            raise AcmeError(msg)
        if not self._settings.email:
            msg = "ssl.acme.email is required for the acmeow transport"
            raise AcmeError(msg)

    def _ensure_client(self) -> Any:
        if self._client is not None:
            return self._client
        from acmeow import AcmeClient  # noqa: PLC0415

        storage = Path(self._settings.storage_path)
        try:
            storage.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Failed to create ACME storage directory '{storage}': {exc}"
            raise AcmeError(msg) from exc

        client = AcmeClient(directory_url=self._settings.directory_url, storage_path=str(storage))
        client.create_account(email=self._settings.email)
        log.info("ACME: registered account %s with %s", self._settings.email, self._settings.directory_url)
        self._client = client
        return client

    def _run(self, label: str, fn: Callable[[], Any]) -> Any:
        """Run *fn* under the client lock with the configured time limit."""
        timeout = self._settings.timeout_seconds
        with self._lock:
            future = self._executor.submit(fn)
            try:
                return future.result(timeout=timeout)
            except FutureTimeout as exc:
                # The stuck worker cannot be interrupted; later calls get a new one.
                self._executor.shutdown(wait=False, cancel_futures=True)
                self._executor = self._new_executor()
                self._client = None
                msg = f"ACME {label} did not finish within {timeout:g}s"
                raise AcmeError(msg, retryable=True) from exc
            except AcmeError:
                raise
            except Exception as exc:  # noqa: BLE001
                msg = f"ACME {label} failed ({type(exc).__name__}): {exc}"
                raise AcmeError(msg, retryable=_is_retryable(exc)) from exc

    def obtain(self, hostnames: list[str], webroot: str) -> ObtainedCertificate:
        key = generate_private_key(self._settings.key_type)
        csr_der = build_csr(key, hostnames).public_bytes(serialization.Encoding.DER)

        def flow() -> str:
            from acmeow.handlers import FileHttpHandler  # noqa: PLC0415

            client = self._ensure_client()
            log.info("ACME: creating order for %s", ", ".join(hostnames))
            client.create_order(hostnames)
            client.complete_challenges(
                FileHttpHandler(webroot=Path(webroot)),
                challenge_type=self._settings.challenge_type,
            )
            client.finalize_order(csr=csr_der)
            cert_pem, _ = client.get_certificate()
            return cert_pem

        chain = split_chain(self._run("order", flow))
        if not chain:
            msg = f"ACME server returned no certificate for {hostnames[0]}"
            raise AcmeError(msg)
        log.info("ACME: certificate issued for %s", hostnames[0])
        return ObtainedCertificate(
            certificate=chain[0],
            private_key=private_key_pem(key),
            ca_bundle="".join(chain[1:]) or None,
        )

    def revoke(self, certificate_pem: str, hostnames: list[str]) -> None:
        cert = x509.load_pem_x509_certificate(certificate_pem.encode())
        cert_der = cert.public_bytes(serialization.Encoding.DER)

        def flow() -> None:
            self._ensure_client().revoke_certificate(cert_der, reason=0)

        self._run("revocation", flow)
        log.info("ACME: revoked certificate for %s", ", ".join(hostnames))

