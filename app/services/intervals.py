"""Half-open time ranges and the conversions between stored and working datetimes.

Every conflict check in the booking engine goes through :func:`overlaps`, so
back-to-back ranges (``a.end == b.start``) never conflict, at read time or at
write time.
"""

from datetime import UTC, datetime, timedelta
from typing import NamedTuple


class Interval(NamedTuple):
    start: datetime
    end: datetime


def overlaps(a: Interval, b: Interval) -> bool:
    return a.start < b.end and a.end > b.start


def contains(outer: Interval, inner: Interval) -> bool:
    return outer.start <= inner.start and inner.end <= outer.end


def expand(interval: Interval, before_minutes: int, after_minutes: int) -> Interval:
    """Widen an interval by buffer minutes on each side."""
    return Interval(
        interval.start - timedelta(minutes=before_minutes),
        interval.end + timedelta(minutes=after_minutes),
    )


def as_utc(dt: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to be UTC (as stored in the DB)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert to naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def stored_interval(start_time: datetime, end_time: datetime) -> Interval:
    return Interval(as_utc(start_time), as_utc(end_time))
