"""Domain subcommands."""

from __future__ import annotations

import pwd
from typing import TYPE_CHECKING

from hostplane.cli.commands import emit, fail
from hostplane.core.errors import HostplaneError
from hostplane.models import Account, Domain

if TYPE_CHECKING:
    import argparse

    from hostplane.app.context import Container


def run_domain(container: Container, args: argparse.Namespace) -> int:
    sub = args.domain_command
    if sub == "provision":
        return _provision(container, args)
    if sub == "deprovision":
        result = container.provisioning.deprovision_domain(args.domain)
        emit(result.to_dict())
        return 0 if result.succeeded else 1
    if sub == "show":
        return _show(container, args.domain)
    if sub == "update":
        changes = {}
        if args.docroot:
            changes["document_root"] = args.docroot
        if args.php_version:
            changes["php_version"] = args.php_version
        if not changes:
            return fail("nothing to update; pass --docroot and/or --php")
        domain = container.provisioning.update_domain(args.domain, **changes)
        emit({"domain": domain.name, "document_root": domain.document_root, "php_version": domain.php_version})
        return 0
    if sub == "subdomain-add":
        sub_domain = container.provisioning.add_subdomain(args.domain, args.label, args.docroot)
        emit({"subdomain": sub_domain.fqdn, "document_root": sub_domain.document_root})
        return 0
    if sub == "subdomain-remove":
        removed = container.provisioning.remove_subdomain(args.domain, args.label)
        emit({"subdomain": f"{args.label}.{args.domain}", "removed": removed})
        return 0
    return fail("expected one of: provision, deprovision, show, update, subdomain-add, subdomain-remove")


def _account(container: Container, args: argparse.Namespace) -> Account:
    uid, gid = args.uid, args.gid
    if uid is None or gid is None:
        try:
            entry = pwd.getpwnam(args.user)
        except KeyError:
            msg = f"no system user '{args.user}'; pass --uid and --gid"
            raise HostplaneError(msg) from None
        uid = entry.pw_uid if uid is None else uid
        gid = entry.pw_gid if gid is None else gid
    home = args.home or f"{container.settings.panel.home_base.rstrip('/')}/{args.user}"
    return Account(username=args.user, uid=uid, gid=gid, home_dir=home)


def _provision(container: Container, args: argparse.Namespace) -> int:
    account = _account(container, args)
    name = args.domain.lower().rstrip(".")
    domain = Domain(
        name=name,
        account=account,
        document_root=args.docroot or f"{account.home_dir}/{name}/public_html",
        php_version=args.php_version,
    )
    result = container.provisioning.provision_domain(
        domain,
        issue_certificate=False if args.no_ssl else None,
        include_www=not args.no_www,
    )
    emit(result.to_dict())
    return 0 if result.succeeded else 1


def _show(container: Container, name: str) -> int:
    domain = container.provisioning.find_domain(name)
    zone = container.dns.get_zone(domain.name)
    cert = container.certificate_manager.get(domain)
    subdomains = container.subdomains.find_by_domain(domain.id)
    emit(
        {
            "domain": domain.name,
            "account": domain.account.username,
            "document_root": domain.document_root,
            "php_version": domain.php_version,
            "ssl_enabled": domain.ssl_enabled,
            "vhost": container.web.has_virtual_host(domain.name),
            "zone_serial": zone.serial if zone else None,
            "subdomains": sorted(s.fqdn for s in subdomains),
            "certificate": None
            if cert is None
            else {
                "kind": cert.kind.value,
                "status": cert.status.value,
                "expires_at": cert.expires_at.isoformat(),
                "auto_renew": cert.auto_renew,
                "last_error": cert.last_error,
            },
        },
    )
    return 0
