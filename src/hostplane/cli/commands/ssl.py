"""Certificate subcommands."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from hostplane.certificates.material import CsrSubject, generate_csr, keys_match
from hostplane.cli.commands import emit, fail

if TYPE_CHECKING:
    import argparse

    from hostplane.app.context import Container
    from hostplane.models import SslCertificate


def _read(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def _summary(cert: SslCertificate) -> dict:
    return {
        "domain": cert.domain_name,
        "kind": cert.kind.value,
        "status": cert.status.value,
        "hostnames": list(cert.hostnames),
        "issued_at": cert.issued_at.isoformat(),
        "expires_at": cert.expires_at.isoformat(),
        "fingerprint": cert.fingerprint,
        "auto_renew": cert.auto_renew,
    }


def run_ssl(container: Container, args: argparse.Namespace) -> int:
    sub = args.ssl_command
    svc = container.provisioning
    if sub == "issue":
        cert = svc.issue_certificate(args.domain, include_www=not args.no_www, force=args.force)
        emit(_summary(cert))
        return 0
    if sub == "upload":
        try:
            certificate, key = _read(args.cert), _read(args.key)
            chain = _read(args.chain) if args.chain else None
        except OSError as exc:
            return fail(str(exc))
        emit(_summary(svc.upload_certificate(args.domain, certificate, key, chain)))
        return 0
    if sub == "info":
        domain = svc.find_domain(args.domain)
        emit(container.certificate_manager.info(domain).to_dict())
        return 0
    if sub == "uninstall":
        emit({"domain": args.domain, "removed": svc.uninstall_certificate(args.domain)})
        return 0
    if sub == "revoke":
        emit(_summary(svc.revoke_certificate(args.domain)))
        return 0
    return fail("expected one of: issue, upload, verify, info, csr, uninstall, revoke")


def run_verify(args: argparse.Namespace) -> int:
    try:
        certificate, key = _read(args.cert), _read(args.key)
        chain = _read(args.chain) if args.chain else None
    except OSError as exc:
        return fail(str(exc))
    ok = keys_match(certificate, key, chain)
    emit({"match": ok})
    return 0 if ok else 1


def run_csr(args: argparse.Namespace) -> int:
    subject = CsrSubject(
        common_name=args.common_name,
        organization=args.organization,
        organizational_unit=args.organizational_unit,
        country=args.country,
        state=args.state,
        locality=args.locality,
        email=args.email,
    )
    csr_pem, key_pem = generate_csr(subject, [args.common_name, *args.san])
    if args.out_csr and args.out_key:
        Path(args.out_key).touch(mode=0o600)
        Path(args.out_key).write_text(key_pem, encoding="utf-8")
        Path(args.out_csr).write_text(csr_pem, encoding="utf-8")
        emit({"csr": args.out_csr, "key": args.out_key})
    else:
        emit({"csr": csr_pem, "key": key_pem})
    return 0
