import re
from collections.abc import Iterable
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import NamedTuple, Protocol

from app.core.config import settings
from app.core.errors import ValidationFailedError
from app.services.intervals import Interval, expand, overlaps

_WALL_TIME = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class TimeWindow(Protocol):
    start_time: str  # HH:mm
    end_time: str  # HH:mm


class Slot(NamedTuple):
    start: datetime  # aware UTC
    formatted: str  # "14:30" in the host timezone

    def interval(self, duration_minutes: int) -> Interval:
        return Interval(self.start, self.start + timedelta(minutes=duration_minutes))


def parse_wall_time(value: str) -> time:
    match = _WALL_TIME.match(value or "")
    if not match:
        raise ValidationFailedError(f"Malformed wall-clock time {value!r}, expected HH:mm")
    return time(int(match.group(1)), int(match.group(2)))


def window_bounds(window: TimeWindow, day: date, tz: tzinfo) -> Interval:
    """UTC instants of a wall-clock window applied to a local calendar day."""
    start = parse_wall_time(window.start_time)
    end = parse_wall_time(window.end_time)
    if start >= end:
        raise ValidationFailedError(
            f"Availability window {window.start_time}-{window.end_time} must start before it ends"
        )
    return Interval(
        datetime.combine(day, start, tzinfo=tz).astimezone(UTC),
        datetime.combine(day, end, tzinfo=tz).astimezone(UTC),
    )


def local_day_bounds(day: date, tz: tzinfo) -> Interval:
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return Interval(start.astimezone(UTC), end.astimezone(UTC))


def generate_slots(
    window: TimeWindow,
    day: date,
    duration_minutes: int,
    step_minutes: int | None = None,
    tz: tzinfo = UTC,
) -> list[Slot]:
    """Candidate starts every ``step_minutes`` whose full duration fits inside the window.

    Candidates overlap each other when the step is shorter than the duration,
    so guests can pick any step-aligned start. Stepping happens on UTC
    instants, which keeps the spacing exact across DST changes.
    """
    step_minutes = settings.slot_step_minutes if step_minutes is None else step_minutes
    if duration_minutes <= 0 or step_minutes <= 0:
        raise ValidationFailedError(
            f"Duration ({duration_minutes}) and step ({step_minutes}) must be positive"
        )
    bounds = window_bounds(window, day, tz)
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)

    slots: list[Slot] = []
    current = bounds.start
    while current < bounds.end:
        if current + duration <= bounds.end:
            slots.append(Slot(current, current.astimezone(tz).strftime("%H:%M")))
        current += step
    return slots


def filter_slots(
    slots: Iterable[Slot],
    duration_minutes: int,
    buffer_before: int,
    buffer_after: int,
    min_notice_hours: int,
    now: datetime,
    bookings: Iterable[Interval] = (),
    busy: Iterable[Interval] = (),
    latest_start: datetime | None = None,
) -> list[Slot]:
    """Drop slots inside the notice period, past the horizon, or clashing with blocked time.

    Existing bookings get the same buffers as the candidate; external busy
    intervals are used as-is.
    """
    earliest_start = now + timedelta(hours=min_notice_hours)
    blocked = [expand(b, buffer_before, buffer_after) for b in bookings]
    blocked.extend(busy)

    available: list[Slot] = []
    for slot in slots:
        if slot.start < earliest_start:
            continue
        if latest_start is not None and slot.start > latest_start:
            continue
        candidate = expand(slot.interval(duration_minutes), buffer_before, buffer_after)
        if any(overlaps(candidate, other) for other in blocked):
            continue
        available.append(slot)
    return available
