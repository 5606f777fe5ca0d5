import asyncio
import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, date, datetime, timedelta, tzinfo

from app.core.config import settings
from app.core.errors import NotFoundError, ValidationFailedError
from app.models.availability import Availability
from app.models.booking import BLOCKING_STATUSES
from app.services.calendar_service import CalendarConnector, record_degraded
from app.services.intervals import Interval, as_utc, contains, stored_interval
from app.services.slot_service import (
    Slot,
    TimeWindow,
    filter_slots,
    generate_slots,
    local_day_bounds,
    parse_wall_time,
    window_bounds,
)
from app.services.store import BookingStore

logger = logging.getLogger(__name__)


def sunday_based_weekday(day: date) -> int:
    """0 = Sunday ... 6 = Saturday, as stored on availability windows."""
    return day.isoweekday() % 7


async def list_availability(store: BookingStore, host_id: int) -> list[Availability]:
    return await store.list_all_availability(host_id)


async def replace_availability(
    store: BookingStore, host_id: int, windows: Iterable[Availability]
) -> list[Availability]:
    """Validate and replace the host's whole weekly schedule (delete-all-then-insert)."""
    rows: list[Availability] = []
    for window in windows:
        if not 0 <= window.day_of_week <= 6:
            raise ValidationFailedError(f"day_of_week must be 0-6, got {window.day_of_week}")
        if parse_wall_time(window.start_time) >= parse_wall_time(window.end_time):
            raise ValidationFailedError(
                f"Window {window.start_time}-{window.end_time} must start before it ends"
            )
        rows.append(
            Availability(
                user_id=host_id,
                day_of_week=window.day_of_week,
                start_time=window.start_time,
                end_time=window.end_time,
            )
        )
    saved = await store.replace_availability(host_id, rows)
    logger.info("Host %s saved %d availability window(s)", host_id, len(saved))
    return saved


async def fits_availability(
    store: BookingStore, host_id: int, interval: Interval, tz: tzinfo
) -> bool:
    """True if the interval lies inside one of the host's windows on its local day."""
    local_day = interval.start.astimezone(tz).date()
    windows = await store.list_availability(host_id, sunday_based_weekday(local_day))
    return any(contains(window_bounds(w, local_day, tz), interval) for w in windows)


async def _access_token(calendar: CalendarConnector, host_id: int) -> str | None:
    try:
        return await calendar.get_valid_access_token(host_id, "google")
    except Exception as e:
        record_degraded("access_token", host_id, e)
        return None


async def _busy_intervals(
    calendar: CalendarConnector, access_token: str | None, host_id: int, day: Interval
) -> list[Interval]:
    if not access_token:
        return []
    try:
        return await asyncio.wait_for(
            calendar.get_busy_intervals(access_token, day.start, day.end),
            timeout=settings.calendar_timeout_seconds,
        )
    except TimeoutError:
        record_degraded("timeout", host_id)
    except Exception as e:
        record_degraded("freebusy", host_id, e)
    return []


def _ordered(windows: Sequence[TimeWindow]) -> list[TimeWindow]:
    return sorted(windows, key=lambda w: (w.start_time, w.end_time))


async def get_available_slots(
    store: BookingStore,
    calendar: CalendarConnector,
    host_id: int,
    event_type_id: int,
    day: date,
    tz: tzinfo,
    now: datetime | None = None,
) -> list[Slot]:
    """Bookable slots for ``day`` (a calendar day in the host timezone ``tz``).

    Returns [] when the host has no availability on that weekday. Raises
    NotFoundError when the event type does not exist or is not the host's.
    External calendar data is best-effort: if it cannot be fetched the slots
    are computed without it.
    """
    windows = await store.list_availability(host_id, sunday_based_weekday(day))
    if not windows:
        return []

    event_type = await store.get_event_type(event_type_id)
    if event_type is None or event_type.user_id != host_id:
        raise NotFoundError(f"Event type {event_type_id} not found for host {host_id}")

    now = as_utc(now) if now is not None else datetime.now(UTC)
    day_range = local_day_bounds(day, tz)
    pad = timedelta(minutes=event_type.buffer_before + event_type.buffer_after)

    access_token = await _access_token(calendar, host_id)
    bookings, busy = await asyncio.gather(
        store.list_bookings(host_id, day_range.start - pad, day_range.end + pad, BLOCKING_STATUSES),
        _busy_intervals(calendar, access_token, host_id, day_range),
    )

    candidates: dict[datetime, Slot] = {}
    for window in _ordered(windows):
        for slot in generate_slots(window, day, event_type.duration, settings.slot_step_minutes, tz):
            candidates.setdefault(slot.start, slot)

    available = filter_slots(
        candidates.values(),
        duration_minutes=event_type.duration,
        buffer_before=event_type.buffer_before,
        buffer_after=event_type.buffer_after,
        min_notice_hours=event_type.min_notice,
        now=now,
        bookings=[stored_interval(b.start_time, b.end_time) for b in bookings],
        busy=busy,
        latest_start=now + timedelta(days=event_type.max_future),
    )
    return sorted(available, key=lambda s: s.start)
