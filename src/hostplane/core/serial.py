"""DNS zone serial allocation.

Serials use the date-coded ``YYYYMMDDnn`` convention.  Secondaries only
re-transfer a zone when its serial increases, so :func:`next_serial` must
never return a value lower than or equal to the current one.
"""

from __future__ import annotations

from datetime import date

_MAX_DAILY_COUNTER = 99


def date_prefix(today: date) -> int:
    """Return *today* as the integer ``YYYYMMDD``."""
    return int(today.strftime("%Y%m%d"))


def initial_serial(today: date) -> int:
    """Return the first serial of a new zone created on *today*."""
    return date_prefix(today) * 100 + 1


def next_serial(current: int, today: date) -> int:
    """Allocate the serial that follows *current* on *today*.

    Parameters
    ----------
    current:
        The zone's current serial.
    today:
        The calendar day of the mutation (UTC).

    Returns
    -------
    int
        ``YYYYMMDD(nn+1)`` when *current* was already allocated today,
        ``YYYYMMDD01`` on a new day.  When the daily counter is exhausted,
        or *current* is ahead of the date-coded value (clock skew, a serial
        imported from elsewhere), the result falls through to
        ``current + 1`` so the sequence never goes backward.

    """
    prefix = date_prefix(today)
    current_prefix, counter = divmod(current, 100)

    if current_prefix == prefix and counter < _MAX_DAILY_COUNTER:
        candidate = prefix * 100 + counter + 1
    else:
        candidate = prefix * 100 + 1

    if candidate <= current:
        return current + 1
    return candidate
