"""hostplane command-line entry point.

Usage::

    hostplane -c /etc/hostplane/config.yaml --validate-only
    hostplane -c config.yaml domain provision example.com --user alice
    hostplane -c config.yaml domain subdomain-add example.com blog
    hostplane -c config.yaml dns add-record example.com --name api --type A --content 203.0.113.7
    hostplane -c config.yaml ssl issue example.com --force
    hostplane -c config.yaml renew --days 14 --dry-run
    hostplane -c config.yaml worker
    python -m hostplane -c config.yaml versions
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

log = logging.getLogger(__name__)


def _get_version() -> str:
    from hostplane import __version__  # noqa: PLC0415

    return __version__


def _add_record_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("domain")
    parser.add_argument("--name", default="@", help="Owner name relative to the zone ('@' for the apex)")
    parser.add_argument("--type", required=True, dest="rtype", help="Record type (A, MX, TXT, ...)")
    parser.add_argument("--content", required=True)
    parser.add_argument("--ttl", type=int, default=None)
    parser.add_argument("--priority", type=int, default=None, help="Required for MX and SRV")


def _build_parser() -> argparse.ArgumentParser:  # noqa: PLR0915
    parser = argparse.ArgumentParser(
        prog="hostplane",
        description="hostplane: DNS, virtual-host and TLS provisioning for hosted domains",
    )
    parser.add_argument(
        "-c",
        "--config",
        required=True,
        metavar="PATH",
        help="Path to the configuration file (YAML or JSON).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug output (full tracebacks, verbose logging).",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Validate the configuration file and exit.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # domain
    domain_parser = subparsers.add_parser("domain", help="Domain provisioning")
    domain_sub = domain_parser.add_subparsers(dest="domain_command")
    provision = domain_sub.add_parser("provision", help="Create zone, vhost and certificate")
    provision.add_argument("domain")
    provision.add_argument("--user", required=True, help="Owning system account")
    provision.add_argument("--uid", type=int, default=None)
    provision.add_argument("--gid", type=int, default=None)
    provision.add_argument("--home", default=None, help="Account home (default: panel.home_base/<user>)")
    provision.add_argument("--docroot", default=None, help="Document root (default: <home>/<domain>/public_html)")
    provision.add_argument("--php", default=None, dest="php_version", help="PHP-FPM version, e.g. 8.2")
    provision.add_argument("--no-ssl", action="store_true", default=False)
    provision.add_argument("--no-www", action="store_true", default=False)
    deprovision = domain_sub.add_parser("deprovision", help="Remove vhost, certificate and zone")
    deprovision.add_argument("domain")
    show = domain_sub.add_parser("show", help="Show a domain and its certificate")
    show.add_argument("domain")
    update = domain_sub.add_parser("update", help="Change document root or PHP version")
    update.add_argument("domain")
    update.add_argument("--docroot", default=None)
    update.add_argument("--php", default=None, dest="php_version")
    sub_add = domain_sub.add_parser("subdomain-add", help="Create a subdomain vhost and A record")
    sub_add.add_argument("domain")
    sub_add.add_argument("label")
    sub_add.add_argument("--docroot", default=None)
    sub_remove = domain_sub.add_parser("subdomain-remove", help="Remove a subdomain")
    sub_remove.add_argument("domain")
    sub_remove.add_argument("label")

    # dns
    dns_parser = subparsers.add_parser("dns", help="DNS zone management")
    dns_sub = dns_parser.add_subparsers(dest="dns_command")
    dns_sub.add_parser("reset", help="Restore the default record set").add_argument("domain")
    _add_record_args(dns_sub.add_parser("add-record", help="Add a record"))
    _add_record_args(dns_sub.add_parser("remove-record", help="Remove a record"))
    dns_sub.add_parser("records", help="List published records").add_argument("domain")
    dns_sub.add_parser("check", help="Run the native zone checker").add_argument("domain")

    # ssl
    ssl_parser = subparsers.add_parser("ssl", help="Certificate management")
    ssl_sub = ssl_parser.add_subparsers(dest="ssl_command")
    issue = ssl_sub.add_parser("issue", help="Issue and install a certificate")
    issue.add_argument("domain")
    issue.add_argument("--no-www", action="store_true", default=False)
    issue.add_argument("--force", action="store_true", default=False)
    upload = ssl_sub.add_parser("upload", help="Install an operator-supplied certificate")
    upload.add_argument("domain")
    upload.add_argument("--cert", required=True, metavar="PATH")
    upload.add_argument("--key", required=True, metavar="PATH")
    upload.add_argument("--chain", default=None, metavar="PATH")
    verify = ssl_sub.add_parser("verify", help="Check that a key belongs to a certificate")
    verify.add_argument("--cert", required=True, metavar="PATH")
    verify.add_argument("--key", required=True, metavar="PATH")
    verify.add_argument("--chain", default=None, metavar="PATH", help="Issuer certificate(s), leaf issuer first")
    ssl_sub.add_parser("info", help="Show certificate details").add_argument("domain")
    csr = ssl_sub.add_parser("csr", help="Generate a CSR and RSA 2048 key")
    csr.add_argument("common_name")
    csr.add_argument("--san", action="append", default=[], help="Additional DNS name (repeatable)")
    csr.add_argument("--org", default=None, dest="organization")
    csr.add_argument("--unit", default=None, dest="organizational_unit")
    csr.add_argument("--country", default=None)
    csr.add_argument("--state", default=None)
    csr.add_argument("--locality", default=None)
    csr.add_argument("--email", default=None)
    csr.add_argument("--out-csr", default=None, metavar="PATH")
    csr.add_argument("--out-key", default=None, metavar="PATH")
    ssl_sub.add_parser("uninstall", help="Disable TLS and delete the certificate").add_argument("domain")
    ssl_sub.add_parser("revoke", help="Revoke the certificate").add_argument("domain")

    # renew / worker
    renew = subparsers.add_parser("renew", help="Run one renewal sweep")
    renew.add_argument("--days", type=int, default=None, help="Renewal threshold in days")
    renew.add_argument("--dry-run", action="store_true", default=False)
    subparsers.add_parser("worker", help="Run the renewal loop in the foreground")

    subparsers.add_parser("versions", help="Show web server and panel versions")

    return parser


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    print(f"error: {message}", file=sys.stderr)  # noqa: T201


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, loads config, runs a command."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    config_path = Path(args.config)
    if not config_path.is_file():
        _print_error(f"configuration file not found: {config_path}")
        sys.exit(1)

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        from hostplane.config import ConfigValidationError, HostplaneConfig  # noqa: PLC0415

        config = HostplaneConfig(config_file=str(config_path))
    except ConfigValidationError as exc:
        _print_error(str(exc))
        sys.exit(1)

    from hostplane.logging import configure_logging  # noqa: PLC0415

    configure_logging(config.settings.logging)

    if args.validate_only:
        _print_settings_summary(config)
        sys.exit(0)

    command = args.command
    if command is None:
        parser.print_help()
        sys.exit(1)

    from hostplane.cli.commands import run_command  # noqa: PLC0415

    sys.exit(run_command(config, args))


def _print_settings_summary(config) -> None:
    """Print a short summary of the loaded configuration."""
    s = config.settings
    lines = [
        f"config:      {config!r}",
        f"web server:  {s.web_server.driver} ({s.web_server.sites_available})",
        f"dns:         {s.dns.driver}",
        f"transport:   {s.ssl.acme.transport}",
        f"store:       {s.store.backend}",
        f"renewal:     every {s.renewal.interval_seconds}s, threshold {s.renewal.threshold_days}d",
        f"hooks:       {len(s.hooks.registered)} registered",
    ]
    print("\n".join(lines))  # noqa: T201
