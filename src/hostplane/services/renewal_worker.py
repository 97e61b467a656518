"""Scheduled certificate renewal.

Daemon thread that runs the renewal sweep every
``renewal.interval_seconds`` (daily by default).  When the store is
PostgreSQL, a ``pg_try_advisory_lock`` makes sure only one panel node
sweeps at a time.

Usage::

    worker = RenewalWorker(provisioning, settings.renewal, db)
    worker.start()
    ...
    worker.stop()
"""

from __future__ import annotations

import contextlib
import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pypgkit import Database

    from hostplane.config.settings import RenewalSettings
    from hostplane.services.provisioning import ProvisioningService

log = logging.getLogger(__name__)


class RenewalWorker:
    """Daemon thread running :meth:`ProvisioningService.run_renewal`."""

    # Advisory lock ID for leader election (arbitrary but stable)
    _ADVISORY_LOCK_ID = 731_001

    def __init__(
        self,
        provisioning: ProvisioningService,
        settings: RenewalSettings,
        db: Database | None = None,
    ) -> None:
        self._provisioning = provisioning
        self._settings = settings
        self._db = db
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._consecutive_failures = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if not self._settings.enabled:
            log.info("Renewal worker disabled by configuration")
            return
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="renewal-worker", daemon=True)
        self._thread.start()
        log.info(
            "Renewal worker started (threshold=%dd, interval=%ds)",
            self._settings.threshold_days,
            self._settings.interval_seconds,
        )

    def stop(self, timeout: float | None = None) -> None:
        """Signal the worker to stop and wait for the current sweep."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            log.info("Renewal worker stopped")

    def wait(self) -> None:
        """Block until :meth:`stop` is called (for the foreground CLI)."""
        while self.running:
            self._stop_event.wait(timeout=1.0)

    def _try_acquire_leader(self) -> bool:
        if self._db is None:
            return True
        try:
            return bool(
                self._db.fetch_value("SELECT pg_try_advisory_lock(%s)", (self._ADVISORY_LOCK_ID,)),
            )
        except Exception:  # noqa: BLE001
            log.debug("Advisory lock check failed, skipping this cycle")
            return False

    def _release_leader(self) -> None:
        if self._db is None:
            return
        with contextlib.suppress(Exception):
            self._db.execute("SELECT pg_advisory_unlock(%s)", (self._ADVISORY_LOCK_ID,))

    def run_once(self) -> bool:
        """One sweep; ``False`` when it raised."""
        if not self._try_acquire_leader():
            log.debug("Another node holds the renewal lock; skipping")
            return True
        try:
            self._provisioning.run_renewal()
        except Exception:
            self._consecutive_failures += 1
            log.exception("Renewal sweep failed (consecutive: %d)", self._consecutive_failures)
            return False
        finally:
            self._release_leader()
        self._consecutive_failures = 0
        return True

    def _next_delay(self) -> float:
        interval = self._settings.interval_seconds
        if self._consecutive_failures == 0:
            return interval
        # Back off from a tenth of the interval, capped at the interval
        return min(interval / 10 * (2 ** (self._consecutive_failures - 1)), interval)

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.run_once()
            self._stop_event.wait(timeout=self._next_delay())
