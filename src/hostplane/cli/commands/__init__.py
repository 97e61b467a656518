"""Subcommand dispatch.

Every handler takes ``(container, args)`` and returns the process exit
code.  A :class:`~hostplane.core.errors.HostplaneError` escaping a
handler is printed to stderr and turns into exit code 1.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import TYPE_CHECKING, Any

from hostplane.core.errors import HostplaneError

if TYPE_CHECKING:
    import argparse

    from hostplane.app.context import Container
    from hostplane.config import HostplaneConfig

log = logging.getLogger(__name__)


def emit(data: Any) -> None:  # noqa: ANN401
    """Print *data* as indented JSON on stdout."""
    print(json.dumps(data, indent=2, default=str))  # noqa: T201


def fail(message: str) -> int:
    print(f"error: {message}", file=sys.stderr)  # noqa: T201
    return 1


def build_container(config: HostplaneConfig) -> Container:
    """Initialise the store and wire every collaborator."""
    from hostplane.app.context import Container  # noqa: PLC0415

    settings = config.settings
    db = None
    if settings.store.backend == "postgres":
        from hostplane.db.init import init_database  # noqa: PLC0415

        db = init_database(settings.database)
    container = Container(settings, db)
    container.startup_check()
    return container


def run_command(config: HostplaneConfig, args: argparse.Namespace) -> int:
    from hostplane.cli.commands.dns import run_dns  # noqa: PLC0415
    from hostplane.cli.commands.domain import run_domain  # noqa: PLC0415
    from hostplane.cli.commands.renewal import run_renew, run_worker  # noqa: PLC0415
    from hostplane.cli.commands.ssl import run_csr, run_ssl, run_verify  # noqa: PLC0415

    # Offline commands need neither the store nor the drivers.
    if args.command == "ssl" and args.ssl_command == "csr":
        return run_csr(args)
    if args.command == "ssl" and args.ssl_command == "verify":
        return run_verify(args)

    handlers = {
        "domain": run_domain,
        "dns": run_dns,
        "ssl": run_ssl,
        "renew": run_renew,
        "worker": run_worker,
        "versions": run_versions,
    }
    handler = handlers.get(args.command)
    if handler is None:
        return fail(f"unknown command '{args.command}'")

    try:
        container = build_container(config)
    except HostplaneError as exc:
        return fail(exc.detail)

    try:
        return handler(container, args)
    except HostplaneError as exc:
        if getattr(args, "debug", False):
            log.exception("Command failed")
        return fail(exc.detail)
    finally:
        container.shutdown()


def run_versions(container: Container, args: argparse.Namespace) -> int:  # noqa: ARG001
    from hostplane import __version__  # noqa: PLC0415

    emit(
        {
            "hostplane": __version__,
            "web_server": {"driver": container.web.name, "version": container.web.get_version()},
            "dns": container.dns.name,
            "transport": container.transport.name,
        },
    )
    return 0
