"""Per-domain mutual exclusion.

Two mutations of the same zone or vhost can race on serial allocation
and publish ordering, so every workflow that touches a domain holds that
domain's lock.  Different domains never contend.

Usage::

    locks = DomainLocks(timeout=600)

    with locks.hold("example.com"):
        dns.add_record(zone, record)
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

from hostplane.core.errors import LockTimeoutError

if TYPE_CHECKING:
    from collections.abc import Generator

log = logging.getLogger(__name__)


class DomainLocks:
    """Registry of re-entrant locks keyed by lower-cased domain name.

    Parameters
    ----------
    timeout:
        Default seconds to wait for a lock before raising
        :class:`LockTimeoutError`.  ``None`` waits forever.

    """

    def __init__(self, timeout: float | None = 600.0) -> None:
        self._timeout = timeout
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def _lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, domain: str, timeout: float | None = None) -> Generator[None, None, None]:
        """Hold the lock for *domain* for the duration of the block.

        Re-entrant: a workflow holding the lock may call operations that
        acquire it again on the same thread.

        Raises
        ------
        LockTimeoutError
            If the lock is not acquired within the timeout.

        """
        key = domain.lower().rstrip(".")
        wait = self._timeout if timeout is None else timeout
        lock = self._lock_for(key)

        acquired = lock.acquire(timeout=-1 if wait is None else wait)
        if not acquired:
            raise LockTimeoutError(key, wait or 0)
        log.debug("Acquired domain lock '%s'", key)
        try:
            yield
        finally:
            lock.release()
            log.debug("Released domain lock '%s'", key)
