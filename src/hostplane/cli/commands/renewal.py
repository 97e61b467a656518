"""Renewal subcommands: one-shot sweep and the foreground worker."""

from __future__ import annotations

import logging
import signal
from typing import TYPE_CHECKING

from hostplane.cli.commands import emit

if TYPE_CHECKING:
    import argparse

    from hostplane.app.context import Container

log = logging.getLogger(__name__)


def run_renew(container: Container, args: argparse.Namespace) -> int:
    report = container.provisioning.run_renewal(args.days, dry_run=args.dry_run)
    emit(report.to_dict())
    return 1 if report.failed else 0


def run_worker(container: Container, args: argparse.Namespace) -> int:  # noqa: ARG001
    worker = container.renewal_worker

    def _stop(signum, frame) -> None:  # noqa: ARG001
        log.info("Received signal %d, stopping renewal worker", signum)
        worker.stop()

    signal.signal(signal.SIGTERM, _stop)
    signal.signal(signal.SIGINT, _stop)

    worker.start()
    worker.wait()
    return 0
