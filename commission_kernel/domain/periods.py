"""
Payout periods -- biweekly buckets anchored to a fixed Monday.

Responsibility:
    Maps a calendar date to the start of its payout period and describes the
    period (inclusive end, payout date).  Converts instants to calendar dates
    in an explicit timezone so bucketing never depends on the timezone of the
    process that happens to run it.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - period_start(d) = anchor + floor((d - anchor) / length) * length days.
      Floor division keeps dates before the anchor in the right bucket.
    - Functions take calendar dates, never instants.  Passing a datetime to
      period_start() is a TypeError; use calendar_date() first.

Failure modes:
    - ZoneInfoNotFoundError for an unknown timezone name.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

DEFAULT_ANCHOR = date(2024, 12, 16)
PERIOD_LENGTH_DAYS = 14
# Periods end on a Sunday; payout is the following Friday.
PAYOUT_LAG_DAYS = 5


def calendar_date(instant: datetime | date, tz: str | tzinfo = "UTC") -> date:
    """
    Calendar date of ``instant`` as seen in ``tz``.

    Naive datetimes are taken to be UTC (that is how they are stored).
    Plain dates pass through unchanged.
    """
    if not isinstance(instant, datetime):
        return instant
    zone = ZoneInfo(tz) if isinstance(tz, str) else tz
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant.astimezone(zone).date()


def period_index(
    d: date,
    anchor: date = DEFAULT_ANCHOR,
    length_days: int = PERIOD_LENGTH_DAYS,
) -> int:
    """Number of whole periods between the anchor period and ``d``'s period."""
    if isinstance(d, datetime):
        raise TypeError(
            "period functions expect a calendar date; convert instants with calendar_date()"
        )
    return (d - anchor).days // length_days


def period_start(
    d: date,
    anchor: date = DEFAULT_ANCHOR,
    length_days: int = PERIOD_LENGTH_DAYS,
) -> date:
    """
    First day of the payout period containing ``d``.

    >>> period_start(date(2024, 12, 29))
    datetime.date(2024, 12, 16)
    >>> period_start(date(2024, 12, 30))
    datetime.date(2024, 12, 30)
    """
    return anchor + timedelta(days=period_index(d, anchor, length_days) * length_days)


@dataclass(frozen=True)
class PayoutPeriod:
    """One payout period: [start, end] inclusive, paid on payout_date."""

    start: date
    end: date
    payout_date: date

    def contains(self, d: date) -> bool:
        return self.start <= d <= self.end

    @property
    def label(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


def payout_period_for(
    d: date,
    anchor: date = DEFAULT_ANCHOR,
    length_days: int = PERIOD_LENGTH_DAYS,
    payout_lag_days: int = PAYOUT_LAG_DAYS,
) -> PayoutPeriod:
    start = period_start(d, anchor, length_days)
    end = start + timedelta(days=length_days - 1)
    return PayoutPeriod(
        start=start,
        end=end,
        payout_date=end + timedelta(days=payout_lag_days),
    )


def periods_around(
    d: date,
    back: int = 2,
    forward: int = 1,
    anchor: date = DEFAULT_ANCHOR,
    length_days: int = PERIOD_LENGTH_DAYS,
    payout_lag_days: int = PAYOUT_LAG_DAYS,
) -> list[PayoutPeriod]:
    """Periods from ``forward`` ahead to ``back`` behind ``d``, newest first."""
    current = period_start(d, anchor, length_days)
    periods = []
    for offset in range(forward, -back - 1, -1):
        start = current + timedelta(days=offset * length_days)
        periods.append(payout_period_for(start, anchor, length_days, payout_lag_days))
    return periods
