"""Clock injection.

Business logic asks a :class:`Clock` for the current time instead of
calling :func:`datetime.now` so serial allocation and renewal selection
can be tested deterministically.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta


class Clock:
    """Wall-clock time source (UTC)."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def today(self) -> date:
        return self.now().date()


class FixedClock(Clock):
    """A manually driven clock.

    Parameters
    ----------
    instant:
        The initial time.  Naive values are interpreted as UTC.

    """

    def __init__(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def advance(self, **kwargs: float) -> None:
        """Move the clock forward by a :class:`timedelta` built from *kwargs*."""
        self._instant = self._instant + timedelta(**kwargs)

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        self._instant = instant
