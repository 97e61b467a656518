"""Orchestration facade.

Entry points for the workflows external callers trigger: a domain
being created or deleted, DNS edits, certificate operations and the
scheduled renewal sweep.  Every workflow holds the domain's lock, runs
inside an :func:`~hostplane.logging.operation_context`, and writes one
record to the ``hostplane.audit`` logger.

There are no cross-system transactions.  Provisioning runs its steps in
order and stops at the first failure, reporting which steps were
committed; every step is re-entrant, so re-running the workflow
completes the rest.  Deprovisioning attempts every removal and
forgets the domain only once all of them succeeded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from hostplane.core.errors import HostplaneError, UnknownDomainError
from hostplane.core.types import RecordType, StepOutcome
from hostplane.logging import operation_context
from hostplane.models import DnsRecord, Subdomain

if TYPE_CHECKING:
    from collections.abc import Callable

    from hostplane.certificates.manager import CertificateManager, SweepReport
    from hostplane.config.settings import PanelSettings
    from hostplane.core.locks import DomainLocks
    from hostplane.drivers.base import DnsDriver, WebServerDriver
    from hostplane.hooks.registry import HookRegistry
    from hostplane.models import DnsZone, Domain, SslCertificate

log = logging.getLogger(__name__)
audit = logging.getLogger("hostplane.audit")


@dataclass(frozen=True)
class StepResult:
    name: str
    outcome: StepOutcome
    detail: str | None = None
    error: dict | None = None

    def to_dict(self) -> dict:
        data: dict = {"step": self.name, "outcome": self.outcome.value}
        if self.detail:
            data["detail"] = self.detail
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class WorkflowResult:
    """Per-step outcome of one workflow run."""

    workflow: str
    domain: str
    steps: list[StepResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(s.outcome is not StepOutcome.FAILED for s in self.steps)

    @property
    def completed(self) -> list[str]:
        return [s.name for s in self.steps if s.outcome is StepOutcome.OK]

    @property
    def failed_step(self) -> StepResult | None:
        return next((s for s in self.steps if s.outcome is StepOutcome.FAILED), None)

    def step(self, name: str) -> StepResult | None:
        return next((s for s in self.steps if s.name == name), None)

    def to_dict(self) -> dict:
        return {
            "workflow": self.workflow,
            "domain": self.domain,
            "succeeded": self.succeeded,
            "steps": [s.to_dict() for s in self.steps],
        }


class ProvisioningService:
    """Composes the DNS driver, web-server driver and certificate manager.

    Parameters
    ----------
    dns, web:
        The drivers selected at start-up.
    certificates:
        Certificate lifecycle manager bound to *web*.
    domains, subdomains:
        Domain repositories.
    locks:
        Per-domain locks.
    panel:
        Server-wide settings (server IP for subdomain records).
    issue_certificates:
        Whether provisioning issues a certificate by default.
    hooks:
        Optional lifecycle hook registry.

    """

    def __init__(
        self,
        *,
        dns: DnsDriver,
        web: WebServerDriver,
        certificates: CertificateManager,
        domains,
        subdomains,
        locks: DomainLocks,
        panel: PanelSettings,
        issue_certificates: bool = True,
        hooks: HookRegistry | None = None,
    ) -> None:
        self._dns = dns
        self._web = web
        self._certs = certificates
        self._domains = domains
        self._subdomains = subdomains
        self._locks = locks
        self._panel = panel
        self._issue_certificates = issue_certificates
        self._hooks = hooks

    # -- helpers -------------------------------------------------------------

    def _emit(self, event: str, ctx: dict) -> None:
        if self._hooks is not None:
            self._hooks.dispatch(event, ctx)

    @staticmethod
    def _step(result: WorkflowResult, name: str, fn: Callable[[], str | None]) -> bool:
        try:
            detail = fn()
        except HostplaneError as exc:
            log.error("Step '%s' failed: %s", name, exc.detail)
            result.steps.append(StepResult(name, StepOutcome.FAILED, exc.detail, exc.to_dict()))
            return False
        result.steps.append(StepResult(name, StepOutcome.OK, detail))
        return True

    @staticmethod
    def _skip(result: WorkflowResult, name: str, reason: str) -> None:
        result.steps.append(StepResult(name, StepOutcome.SKIPPED, reason))

    def _audit(self, result: WorkflowResult) -> None:
        audit.info(
            "%s %s: %s",
            result.workflow,
            result.domain,
            "ok" if result.succeeded else f"failed at {result.failed_step.name}",
            extra={"workflow": result.to_dict()},
        )

    def find_domain(self, name: str) -> Domain:
        domain = self._domains.find_by_name(name.lower().rstrip("."))
        if domain is None:
            msg = f"Unknown domain '{name}'"
            raise UnknownDomainError(msg)
        return domain

    def _zone(self, domain_name: str) -> DnsZone:
        zone = self._dns.get_zone(domain_name)
        if zone is None:
            msg = f"{domain_name} has no DNS zone"
            raise UnknownDomainError(msg)
        return zone

    # -- domains -------------------------------------------------------------

    def provision_domain(
        self,
        domain: Domain,
        *,
        issue_certificate: bool | None = None,
        include_www: bool = True,
    ) -> WorkflowResult:
        """Record the domain, create its zone and vhost, then TLS.

        Re-entrant: provisioning an already provisioned domain
        re-publishes everything and leaves a valid certificate alone.
        """
        want_cert = self._issue_certificates if issue_certificate is None else issue_certificate
        result = WorkflowResult("provision", domain.name)

        with operation_context(domain.name, "provision"), self._locks.hold(domain.name):
            stored = self._domains.find_by_name(domain.name)

            def record() -> str:
                nonlocal stored
                if stored is not None:
                    return "already recorded"
                stored = self._domains.create(domain)
                return "recorded"

            def zone() -> str:
                created = self._dns.create_zone(stored)
                self._emit("zone.created", {"domain": stored.name, "serial": created.serial})
                return f"serial {created.serial}"

            def vhost() -> str:
                published = self._web.create_virtual_host(stored)
                self._emit(
                    "vhost.created",
                    {"domain": stored.name, "document_root": stored.document_root},
                )
                return published.reload_action or ("published" if published.changed else "unchanged")

            def certificate() -> str:
                cert = self._certs.current(stored)
                kept = cert is not None
                if cert is None:
                    cert = self._certs.issue(stored, include_www=include_www)
                cert = self._certs.install(stored, cert)
                verb = "kept" if kept else "issued"
                return f"{verb}, valid until {cert.expires_at.isoformat()}"

            plan: list[tuple[str, Callable[[], str | None]]] = [
                ("record", record),
                ("zone", zone),
                ("vhost", vhost),
            ]
            if want_cert:
                plan.append(("certificate", certificate))

            for idx, (name, fn) in enumerate(plan):
                if not self._step(result, name, fn):
                    for later, _ in plan[idx + 1 :]:
                        self._skip(result, later, f"not attempted after '{name}' failed")
                    break
            if not want_cert:
                self._skip(result, "certificate", "not requested")

        self._emit(
            "domain.provisioned",
            {"domain": domain.name, "succeeded": result.succeeded, "steps": result.to_dict()["steps"]},
        )
        self._audit(result)
        return result

    def deprovision_domain(self, domain_name: str) -> WorkflowResult:
        """Remove vhost, certificate and zone, then forget the domain.

        Each removal is attempted even if another failed.  Removing
        what is already gone succeeds, so the workflow can be re-run.
        """
        name = domain_name.lower().rstrip(".")
        result = WorkflowResult("deprovision", name)

        with operation_context(name, "deprovision"), self._locks.hold(name):
            domain = self._domains.find_by_name(name)
            if domain is None:
                self._skip(result, "vhost", "unknown domain")
                self._step(result, "zone", lambda: "removed" if self._dns.remove_zone(name) else "absent")
                self._skip(result, "record", "unknown domain")
            else:
                self._deprovision(domain, result)

        self._emit(
            "domain.deprovisioned",
            {"domain": name, "succeeded": result.succeeded, "steps": result.to_dict()["steps"]},
        )
        self._audit(result)
        return result

    def _deprovision(self, domain: Domain, result: WorkflowResult) -> None:
        def subdomains() -> str:
            subs = self._subdomains.find_by_domain(domain.id)
            for sub in subs:
                self._web.remove_subdomain_virtual_host(sub)
            self._subdomains.delete_by_domain(domain.id)
            return f"{len(subs)} removed"

        def vhost() -> str:
            published = self._web.remove_virtual_host(domain)
            self._emit("vhost.removed", {"domain": domain.name})
            return "removed" if published.changed else "absent"

        def certificate() -> str:
            return "removed" if self._certs.uninstall(domain) else "absent"

        def zone() -> str:
            removed = self._dns.remove_zone(domain.name)
            if removed:
                self._emit("zone.removed", {"domain": domain.name})
            return "removed" if removed else "absent"

        for name, fn in (
            ("subdomains", subdomains),
            ("vhost", vhost),
            ("certificate", certificate),
            ("zone", zone),
        ):
            self._step(result, name, fn)

        if result.succeeded:
            self._step(result, "record", lambda: "deleted" if self._domains.delete(domain.id) else "absent")
        else:
            self._skip(result, "record", "kept until every removal succeeds")

    def update_domain(self, domain_name: str, **changes) -> Domain:
        """Apply attribute *changes* (document root, PHP version) and re-publish."""
        with operation_context(domain_name, "update"), self._locks.hold(domain_name):
            current = self.find_domain(domain_name)
            updated = replace(current, **changes)
            self._web.update_virtual_host(updated)
            return self._domains.update(updated)

    def add_subdomain(self, domain_name: str, label: str, document_root: str | None = None) -> Subdomain:
        """Create a subdomain vhost plus an ``A`` record for it."""
        with operation_context(domain_name, "add-subdomain"), self._locks.hold(domain_name):
            domain = self.find_domain(domain_name)
            label = label.lower().strip(".")
            sub = self._subdomains.find_by_label(domain.id, label) or Subdomain(
                domain_id=domain.id,
                label=label,
                parent_name=domain.name,
                document_root=document_root or f"{domain.document_root.rstrip('/')}/{label}",
            )
            self._web.create_subdomain_virtual_host(sub, domain)
            zone = self._zone(domain.name)
            wanted = DnsRecord(zone_id=zone.id, name=label, type=RecordType.A, content=self._panel.server_ip)
            if not any(r.key() == wanted.key() for r in self._dns.list_records(zone)):
                self._dns.add_record(zone, wanted)
            if self._subdomains.find_by_id(sub.id) is None:
                sub = self._subdomains.create(sub)
            return sub

    def remove_subdomain(self, domain_name: str, label: str) -> bool:
        with operation_context(domain_name, "remove-subdomain"), self._locks.hold(domain_name):
            domain = self.find_domain(domain_name)
            sub = self._subdomains.find_by_label(domain.id, label.lower())
            if sub is None:
                return False
            self._web.remove_subdomain_virtual_host(sub)
            zone = self._dns.get_zone(domain.name)
            if zone is not None:
                self._dns.remove_record(
                    zone,
                    DnsRecord(zone_id=zone.id, name=sub.label, type=RecordType.A, content=self._panel.server_ip),
                )
            self._subdomains.delete(sub.id)
            return True

    # -- DNS -----------------------------------------------------------------

    def _zone_changed(self, domain_name: str, action: str) -> None:
        zone = self._dns.get_zone(domain_name)
        self._emit(
            "zone.updated",
            {"domain": domain_name, "serial": zone.serial if zone else None, "action": action},
        )

    def add_record(self, domain_name: str, record: DnsRecord) -> DnsRecord:
        with operation_context(domain_name, "add-record"), self._locks.hold(domain_name):
            added = self._dns.add_record(self._zone(domain_name), record)
            self._zone_changed(domain_name, "add")
            return added

    def update_record(self, domain_name: str, record: DnsRecord) -> DnsRecord:
        with operation_context(domain_name, "update-record"), self._locks.hold(domain_name):
            updated = self._dns.update_record(self._zone(domain_name), record)
            self._zone_changed(domain_name, "update")
            return updated

    def remove_record(self, domain_name: str, record: DnsRecord) -> bool:
        with operation_context(domain_name, "remove-record"), self._locks.hold(domain_name):
            removed = self._dns.remove_record(self._zone(domain_name), record)
            if removed:
                self._zone_changed(domain_name, "remove")
            return removed

    def reset_zone(self, domain_name: str) -> DnsZone:
        with operation_context(domain_name, "reset-zone"), self._locks.hold(domain_name):
            zone = self._dns.reset_zone(self._zone(domain_name))
            self._zone_changed(domain_name, "reset")
            return zone

    def list_records(self, domain_name: str) -> list[DnsRecord]:
        return self._dns.list_records(self._zone(domain_name))

    def check_zone(self, domain_name: str) -> bool:
        return self._dns.check_zone(domain_name)

    # -- certificates --------------------------------------------------------

    def issue_certificate(
        self,
        domain_name: str,
        *,
        include_www: bool = True,
        force: bool = False,
    ) -> SslCertificate:
        """Issue and install a certificate for a provisioned domain."""
        with operation_context(domain_name, "issue"), self._locks.hold(domain_name):
            domain = self.find_domain(domain_name)
            cert = self._certs.issue(domain, include_www=include_www, force=force)
            return self._certs.install(domain, cert)

    def upload_certificate(
        self,
        domain_name: str,
        certificate: str,
        private_key: str,
        ca_bundle: str | None = None,
    ) -> SslCertificate:
        with operation_context(domain_name, "upload"), self._locks.hold(domain_name):
            return self._certs.upload_custom(self.find_domain(domain_name), certificate, private_key, ca_bundle)

    def uninstall_certificate(self, domain_name: str) -> bool:
        with operation_context(domain_name, "uninstall"), self._locks.hold(domain_name):
            return self._certs.uninstall(self.find_domain(domain_name))

    def revoke_certificate(self, domain_name: str) -> SslCertificate:
        with operation_context(domain_name, "revoke"), self._locks.hold(domain_name):
            return self._certs.revoke(self.find_domain(domain_name))

    def run_renewal(self, threshold_days: int | None = None, *, dry_run: bool = False) -> SweepReport:
        """The scheduled workflow: the renewal sweep and nothing else."""
        with operation_context("-", "renewal"):
            report = self._certs.renewal_sweep(threshold_days, dry_run=dry_run)
        audit.info(
            "renewal sweep: %d candidate(s), %d renewed, %d failed",
            len(report.candidates),
            len(report.renewed),
            len(report.failed),
            extra={"sweep": report.to_dict()},
        )
        return report
