"""Certificate lifecycle: issue, install, renew, uninstall, revoke.

State machine (see :mod:`hostplane.core.state`)::

    requested → issued → installed → expiring → renewing → renewed → installed
                                                         ↘ failed → expiring

A certificate only becomes ``installed`` after the web server accepted
the TLS vhost and reloaded.  A failed renewal is parked in ``expiring``
with ``last_error`` set so the next sweep picks it up again.

Validity dates are always parsed from the certificate itself.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import TYPE_CHECKING

from hostplane.acme.base import ObtainedCertificate
from hostplane.certificates.material import (
    CertificateInfo,
    keys_match,
    parse_certificate,
    verify_pair,
)
from hostplane.core.errors import CertificateError, HostplaneError
from hostplane.core.state import assert_transition, log_transition
from hostplane.core.types import CertificateKind, CertificateStatus, StepOutcome
from hostplane.logging import operation_context
from hostplane.models.certificate import SslCertificate

if TYPE_CHECKING:
    from hostplane.acme.base import AcmeTransport
    from hostplane.certificates.installer import CertificateInstaller
    from hostplane.certificates.sealing import KeySealer
    from hostplane.config.settings import RenewalSettings
    from hostplane.core.clock import Clock
    from hostplane.core.locks import DomainLocks
    from hostplane.drivers.base import WebServerDriver
    from hostplane.hooks.registry import HookRegistry
    from hostplane.models import Domain

log = logging.getLogger(__name__)

_LIVE_STATES = frozenset(
    {
        CertificateStatus.ISSUED,
        CertificateStatus.INSTALLED,
        CertificateStatus.RENEWED,
    }
)


@dataclass(frozen=True)
class RenewalOutcome:
    domain: str
    outcome: StepOutcome
    detail: str | None = None
    stage: str | None = None


@dataclass
class SweepReport:
    """What a renewal sweep looked at and what happened to each domain."""

    threshold_days: int
    dry_run: bool = False
    candidates: list[str] = field(default_factory=list)
    outcomes: list[RenewalOutcome] = field(default_factory=list)

    @property
    def renewed(self) -> list[str]:
        return [o.domain for o in self.outcomes if o.outcome is StepOutcome.OK]

    @property
    def failed(self) -> dict[str, str]:
        return {o.domain: o.detail or "" for o in self.outcomes if o.outcome is StepOutcome.FAILED}

    def to_dict(self) -> dict:
        return {
            "threshold_days": self.threshold_days,
            "dry_run": self.dry_run,
            "candidates": list(self.candidates),
            "renewed": self.renewed,
            "failed": self.failed,
            "skipped": [o.domain for o in self.outcomes if o.outcome is StepOutcome.SKIPPED],
        }


class CertificateManager:
    """Owns every certificate state change.

    Parameters
    ----------
    certificates, domains:
        Certificate and domain repositories.
    web:
        The active web-server driver.
    transport:
        Where new material comes from.
    installer:
        Writes material to the driver's certificate paths.
    sealer:
        Seals private keys before they reach the repository.
    locks:
        Per-domain locks; renewal takes the domain's lock.
    clock:
        Time source for renewal selection.
    renewal:
        The ``renewal`` configuration section.
    hooks:
        Optional lifecycle hook registry.

    """

    def __init__(
        self,
        *,
        certificates,
        domains,
        web: WebServerDriver,
        transport: AcmeTransport,
        installer: CertificateInstaller,
        sealer: KeySealer,
        locks: DomainLocks,
        clock: Clock,
        renewal: RenewalSettings,
        hooks: HookRegistry | None = None,
    ) -> None:
        self._certs = certificates
        self._domains = domains
        self._web = web
        self._transport = transport
        self._installer = installer
        self._sealer = sealer
        self._locks = locks
        self._clock = clock
        self._renewal = renewal
        self._hooks = hooks

    # -- helpers -------------------------------------------------------------

    def _emit(self, event: str, ctx: dict) -> None:
        if self._hooks is not None:
            self._hooks.dispatch(event, ctx)

    def _transition(
        self,
        cert: SslCertificate,
        target: CertificateStatus,
        *,
        reason: str | None = None,
        last_error: str | None = None,
    ) -> SslCertificate:
        assert_transition(cert.status, target)
        updated = self._certs.update_status(cert.id, target, last_error=last_error)
        log_transition("certificate", cert.domain_name, cert.status, target, reason=reason)
        return updated or replace(cert, status=target, last_error=last_error)

    def _record(
        self,
        domain: Domain,
        obtained: ObtainedCertificate,
        *,
        kind: CertificateKind,
        status: CertificateStatus,
        auto_renew: bool,
        existing: SslCertificate | None,
    ) -> SslCertificate:
        info = verify_pair(obtained.certificate, obtained.private_key)
        entity = SslCertificate(
            domain_id=domain.id,
            domain_name=domain.name,
            kind=kind,
            status=status,
            certificate=obtained.certificate,
            private_key=self._sealer.seal(obtained.private_key),
            ca_bundle=obtained.ca_bundle,
            hostnames=info.hostnames,
            issued_at=info.not_before,
            expires_at=info.not_after,
            auto_renew=auto_renew,
            fingerprint=info.fingerprint,
        )
        if existing is not None:
            entity = replace(entity, id=existing.id, created_at=existing.created_at)
        return self._certs.save(entity)

    def _require(self, domain: Domain) -> SslCertificate:
        cert = self._certs.find_by_domain(domain.id)
        if cert is None:
            msg = f"{domain.name} has no certificate"
            raise CertificateError(msg)
        return cert

    def hostnames_for(self, domain: Domain, *, include_www: bool = True) -> list[str]:
        names = [domain.name]
        if include_www:
            names.append(domain.www_name)
        return names

    # -- queries -------------------------------------------------------------

    def get(self, domain: Domain) -> SslCertificate | None:
        return self._certs.find_by_domain(domain.id)

    def info(self, domain: Domain) -> CertificateInfo:
        """Details parsed from *domain*'s stored certificate."""
        return parse_certificate(self._require(domain).certificate)

    def current(self, domain: Domain, cert: SslCertificate | None = None) -> SslCertificate | None:
        """*domain*'s certificate if it is live and outside the renewal window."""
        cert = cert or self._certs.find_by_domain(domain.id)
        if cert is None or cert.status not in _LIVE_STATES:
            return None
        if cert.days_remaining(self._clock.now()) <= self._renewal.threshold_days:
            return None
        return cert

    @staticmethod
    def verify(certificate: str, private_key: str, ca_bundle: str | None = None) -> bool:
        """``True`` only if *private_key* belongs to an intact *certificate*."""
        return keys_match(certificate, private_key, ca_bundle)

    def renewal_candidates(self, threshold_days: int | None = None) -> list[SslCertificate]:
        """Auto-renewing certificates expiring within the threshold."""
        days = self._renewal.threshold_days if threshold_days is None else threshold_days
        return self._certs.find_renewal_candidates(self._clock.now() + timedelta(days=days))

    # -- issue ---------------------------------------------------------------

    def issue(self, domain: Domain, *, include_www: bool = True, force: bool = False) -> SslCertificate:
        """Obtain a certificate for *domain* and record it as ``issued``.

        Refuses while the current certificate is still valid for longer
        than the renewal threshold, unless *force* is set.  On failure
        nothing is recorded and any existing certificate stays as it was.

        Raises
        ------
        CertificateError
            If a valid certificate exists and *force* is not set.
        AcmeError
            If the transport fails.

        """
        existing = self._certs.find_by_domain(domain.id)
        if not force and self.current(domain, existing) is not None:
            remaining = existing.days_remaining(self._clock.now())
            msg = (
                f"{domain.name} already has a certificate valid for {remaining:.0f} more "
                "days; use force to replace it"
            )
            raise CertificateError(msg)

        hostnames = self.hostnames_for(domain, include_www=include_www)
        log.info("Requesting certificate for %s", ", ".join(hostnames))
        obtained = self._transport.obtain(hostnames, domain.document_root)

        assert_transition(CertificateStatus.REQUESTED, CertificateStatus.ISSUED)
        cert = self._record(
            domain,
            obtained,
            kind=self._transport.kind,
            status=CertificateStatus.ISSUED,
            auto_renew=True,
            existing=existing,
        )
        log_transition("certificate", domain.name, CertificateStatus.REQUESTED, CertificateStatus.ISSUED)
        self._emit(
            "certificate.issued",
            {
                "domain": domain.name,
                "kind": cert.kind.value,
                "hostnames": list(cert.hostnames),
                "not_after": cert.expires_at.isoformat(),
                "fingerprint": cert.fingerprint,
            },
        )
        return cert

    def upload_custom(
        self,
        domain: Domain,
        certificate: str,
        private_key: str,
        ca_bundle: str | None = None,
        *,
        install: bool = True,
    ) -> SslCertificate:
        """Record operator-supplied material, then optionally install it.

        The pair is verified before anything else happens.  Custom
        certificates are never auto-renewed.

        Raises
        ------
        CertificateMismatchError
            If the key does not belong to the certificate.

        """
        info = verify_pair(certificate, private_key, ca_bundle or None)
        if domain.name not in info.hostnames:
            log.warning(
                "Uploaded certificate for %s covers %s only",
                domain.name,
                ", ".join(info.hostnames),
            )
        cert = self._record(
            domain,
            ObtainedCertificate(certificate, private_key, ca_bundle or None),
            kind=CertificateKind.CUSTOM,
            status=CertificateStatus.ISSUED,
            auto_renew=False,
            existing=self._certs.find_by_domain(domain.id),
        )
        log_transition(
            "certificate",
            domain.name,
            CertificateStatus.REQUESTED,
            CertificateStatus.ISSUED,
            reason="uploaded",
        )
        if install:
            cert = self.install(domain, cert)
        return cert

    # -- install / uninstall -------------------------------------------------

    def install(self, domain: Domain, certificate: SslCertificate | None = None) -> SslCertificate:
        """Write the material and enable TLS on the web server.

        The certificate advances to ``installed`` only once the driver
        has published and reloaded the TLS vhost.

        Raises
        ------
        CertificateError
            If there is no certificate or the stored pair does not match.
        PublishError
            If writing the files or publishing the vhost failed.

        """
        cert = certificate or self._require(domain)
        if cert.status is CertificateStatus.REVOKED:
            msg = f"The certificate of {domain.name} has been revoked"
            raise CertificateError(msg)
        private_key = self._sealer.unseal(cert.private_key)
        verify_pair(cert.certificate, private_key)

        paths = self._web.certificate_paths(domain)
        self._installer.write(paths, cert.certificate, private_key, cert.ca_bundle)
        self._web.enable_ssl(replace(domain, ssl_enabled=True), paths)
        self._domains.set_ssl_enabled(domain.id, True)

        if cert.status in (CertificateStatus.ISSUED, CertificateStatus.RENEWED):
            cert = self._transition(cert, CertificateStatus.INSTALLED, reason="tls vhost live")
        self._emit("certificate.installed", {"domain": domain.name, "fingerprint": cert.fingerprint})
        return cert

    def _unpublish(self, domain: Domain) -> bool:
        changed = False
        if self._web.has_virtual_host(domain.name):
            changed = self._web.disable_ssl(replace(domain, ssl_enabled=False)).changed
        removed = self._installer.remove(self._web.certificate_paths(domain))
        self._domains.set_ssl_enabled(domain.id, False)
        return changed or removed

    def uninstall(self, domain: Domain) -> bool:
        """Disable TLS, delete the material and forget the certificate.

        Returns ``False`` when there was nothing to remove.
        """
        cert = self._certs.find_by_domain(domain.id)
        touched = self._unpublish(domain)
        if cert is not None:
            self._certs.delete_by_domain(domain.id)
            log.info("Removed certificate of %s", domain.name)
        if cert is None and not touched:
            return False
        self._emit("certificate.removed", {"domain": domain.name, "revoked": False})
        return True

    def revoke(self, domain: Domain) -> SslCertificate:
        """Revoke through the transport, then take TLS down.

        The row is kept in the ``revoked`` state as a record.
        """
        cert = self._require(domain)
        assert_transition(cert.status, CertificateStatus.REVOKED)
        self._transport.revoke(cert.certificate, list(cert.hostnames) or [domain.name])
        self._unpublish(domain)
        cert = self._transition(cert, CertificateStatus.REVOKED, reason="revoked by operator")
        self._emit("certificate.removed", {"domain": domain.name, "revoked": True})
        return cert

    # -- renewal -------------------------------------------------------------

    def renewal_sweep(self, threshold_days: int | None = None, *, dry_run: bool = False) -> SweepReport:
        """Renew every auto-renewing certificate close to expiry.

        Each candidate is renewed independently under its domain's lock;
        a failure or timeout for one never affects the others.  With
        *dry_run*, candidates are reported and nothing is changed.
        """
        days = self._renewal.threshold_days if threshold_days is None else threshold_days
        candidates = self.renewal_candidates(days)
        report = SweepReport(
            threshold_days=days,
            dry_run=dry_run,
            candidates=[c.domain_name for c in candidates],
        )
        log.info(
            "Renewal sweep: %d candidate(s) within %d day(s)%s",
            len(candidates),
            days,
            " (dry run)" if dry_run else "",
        )
        if dry_run or not candidates:
            return report

        workers = max(1, min(self._renewal.max_workers, len(candidates)))
        budget = self._renewal.candidate_timeout_seconds * math.ceil(len(candidates) / workers)
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="hostplane-renew")
        try:
            futures = {executor.submit(self._renew_one, cert): cert for cert in candidates}
            done, _ = wait(futures, timeout=budget)
            for future, cert in futures.items():
                if future not in done:
                    future.cancel()
                    log.error("Renewal of %s did not finish within %gs", cert.domain_name, budget)
                    report.outcomes.append(
                        RenewalOutcome(cert.domain_name, StepOutcome.FAILED, "timed out"),
                    )
                    continue
                exc = future.exception()
                if exc is not None:
                    log.error(
                        "Renewal of %s crashed",
                        cert.domain_name,
                        exc_info=(type(exc), exc, exc.__traceback__),
                    )
                    report.outcomes.append(
                        RenewalOutcome(cert.domain_name, StepOutcome.FAILED, str(exc)),
                    )
                    continue
                report.outcomes.append(future.result())
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        log.info(
            "Renewal sweep finished: %d renewed, %d failed",
            len(report.renewed),
            len(report.failed),
        )
        return report

    def _renew_one(self, candidate: SslCertificate) -> RenewalOutcome:
        name = candidate.domain_name
        with operation_context(name, "renew"), self._locks.hold(name):
            cert = self._certs.find_by_domain(candidate.domain_id)
            domain = self._domains.find_by_id(candidate.domain_id)
            if cert is None or domain is None or cert.id != candidate.id:
                return RenewalOutcome(name, StepOutcome.SKIPPED, "certificate changed or removed")
            if cert.status not in (
                CertificateStatus.ISSUED,
                CertificateStatus.INSTALLED,
                CertificateStatus.EXPIRING,
                CertificateStatus.FAILED,
            ):
                return RenewalOutcome(name, StepOutcome.SKIPPED, f"status is {cert.status}")

            if cert.status is not CertificateStatus.EXPIRING:
                cert = self._transition(cert, CertificateStatus.EXPIRING, last_error=cert.last_error)
                self._emit(
                    "certificate.expiring",
                    {
                        "domain": name,
                        "not_after": cert.expires_at.isoformat(),
                        "days_remaining": int(cert.days_remaining(self._clock.now())),
                    },
                )
            cert = self._transition(cert, CertificateStatus.RENEWING)
            try:
                hostnames = list(cert.hostnames) or self.hostnames_for(domain)
                obtained = self._transport.renew(
                    hostnames,
                    domain.document_root,
                    current=cert.certificate,
                )
                cert = self._record(
                    domain,
                    obtained,
                    kind=self._transport.kind,
                    status=CertificateStatus.RENEWED,
                    auto_renew=cert.auto_renew,
                    existing=cert,
                )
                log_transition("certificate", name, CertificateStatus.RENEWING, CertificateStatus.RENEWED)
                cert = self.install(domain, cert)
            except HostplaneError as exc:
                self._park_failure(cert, exc)
                return RenewalOutcome(
                    name,
                    StepOutcome.FAILED,
                    exc.detail,
                    exc.stage.value if exc.stage is not None else None,
                )

        self._emit(
            "certificate.renewed",
            {
                "domain": name,
                "not_after": cert.expires_at.isoformat(),
                "fingerprint": cert.fingerprint,
            },
        )
        return RenewalOutcome(name, StepOutcome.OK, f"valid until {cert.expires_at.isoformat()}")

    def _park_failure(self, cert: SslCertificate, exc: HostplaneError) -> None:
        """renewing/renewed → failed → expiring, keeping the error."""
        log.warning("Renewal of %s failed: %s", cert.domain_name, exc.detail)
        current = self._certs.find_by_id(cert.id) or cert
        failed = self._transition(
            current,
            CertificateStatus.FAILED,
            reason="renewal failed",
            last_error=exc.detail,
        )
        self._transition(failed, CertificateStatus.EXPIRING, reason="retry next sweep", last_error=exc.detail)
        self._emit(
            "certificate.renewal_failed",
            {
                "domain": cert.domain_name,
                "error": exc.detail,
                "stage": exc.stage.value if exc.stage is not None else None,
            },
        )
