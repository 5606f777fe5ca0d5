import logging
from collections.abc import Awaitable
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, InactiveError, NotFoundError, ValidationFailedError
from app.models.booking import Booking, BookingDetails, BookingStatus, GuestDetails
from app.models.event_type import EventType
from app.services.availability_service import fits_availability
from app.services.calendar_service import CalendarConnector
from app.services.email_service import Notifier
from app.services.intervals import Interval, as_utc, expand, to_naive_utc
from app.services.store import BookingStore

logger = logging.getLogger(__name__)


async def _best_effort(what: str, booking_id: int | None, call: Awaitable[object]) -> None:
    try:
        await call
    except Exception as e:
        logger.exception("Failed to send %s for booking %s: %s", what, booking_id, e)


async def _load_details(store: BookingStore, booking: Booking) -> BookingDetails | None:
    event_type = await store.get_event_type(booking.event_type_id)
    host = await store.get_host(booking.user_id)
    if event_type is None or host is None:
        logger.warning("Booking %s has no event type or host, skipping notifications", booking.id)
        return None
    return BookingDetails(booking=booking, event_type=event_type, host=host)


async def _create_calendar_event(
    store: BookingStore, calendar: CalendarConnector, details: BookingDetails
) -> None:
    booking = details.booking
    try:
        access_token = await calendar.get_valid_access_token(details.host.id, "google")
        if not access_token:
            return
        event_id = await calendar.create_event(access_token, details)
        if event_id:
            await store.set_calendar_event_id(booking.id, event_id)
            booking.calendar_event_id = event_id
    except Exception as e:
        logger.exception("Failed to create calendar event for booking %s: %s", booking.id, e)


async def create_booking(
    store: BookingStore,
    calendar: CalendarConnector,
    notifier: Notifier,
    event_type_id: int,
    guest: GuestDetails,
    start_time: datetime,
    tz: tzinfo,
    now: datetime | None = None,
) -> Booking:
    """Reserve ``start_time`` for a guest.

    The request is re-validated against the current event type: notice period,
    booking horizon, the host's availability and, atomically with the insert,
    overlap with the host's pending and confirmed bookings. Once the booking is
    stored it counts as made; the calendar event and emails are best-effort.
    """
    event_type = await store.get_event_type(event_type_id)
    if event_type is None:
        raise NotFoundError(f"Event type {event_type_id} not found")
    if not event_type.is_active:
        raise InactiveError(f"Event type {event_type_id} is inactive")
    host = await store.get_host(event_type.user_id)
    if host is None:
        raise NotFoundError(f"Host {event_type.user_id} of event type {event_type_id} not found")

    now = as_utc(now) if now is not None else datetime.now(UTC)
    start = as_utc(start_time)
    requested = Interval(start, start + timedelta(minutes=event_type.duration))

    if start < now + timedelta(hours=event_type.min_notice):
        raise ConflictError(f"{start} is inside the {event_type.min_notice}h notice period")
    if start > now + timedelta(days=event_type.max_future):
        raise ConflictError(f"{start} is beyond the {event_type.max_future}-day booking horizon")
    if not await fits_availability(store, host.id, requested, tz):
        raise ConflictError(f"{requested.start}-{requested.end} is outside host {host.id} availability")

    # Buffering both the candidate and each existing booking by (before, after)
    # equals widening the candidate alone by before+after on each side.
    pad = event_type.buffer_before + event_type.buffer_after
    guard = expand(requested, pad, pad)

    booking = Booking(
        event_type_id=event_type.id,
        user_id=host.id,
        guest_name=guest.name,
        guest_email=guest.email,
        guest_phone=guest.phone or None,
        guest_notes=guest.notes or None,
        start_time=to_naive_utc(requested.start),
        end_time=to_naive_utc(requested.end),
        status=(BookingStatus.PENDING if event_type.requires_confirmation else BookingStatus.CONFIRMED).value,
    )
    booking = await store.insert_booking_if_free(booking, guard)
    logger.info(
        "Booking %s created for host %s at %s (%s)",
        booking.id,
        host.id,
        requested.start.isoformat(),
        booking.status,
    )

    details = BookingDetails(booking=booking, event_type=event_type, host=host)
    await _create_calendar_event(store, calendar, details)
    await _best_effort("booking confirmation", booking.id, notifier.send_booking_confirmation(details))
    await _best_effort("booking notification", booking.id, notifier.send_booking_notification(details))
    return booking


async def _owned_booking(store: BookingStore, booking_id: int, host_id: int) -> Booking:
    booking = await store.get_booking(booking_id)
    if booking is None or booking.user_id != host_id:
        raise NotFoundError(f"Booking {booking_id} not found for host {host_id}")
    return booking


async def cancel_booking(
    store: BookingStore,
    calendar: CalendarConnector,
    notifier: Notifier,
    booking_id: int,
    host_id: int,
    reason: str | None = None,
) -> Booking:
    booking = await _owned_booking(store, booking_id, host_id)
    if booking.status == BookingStatus.CANCELLED:
        raise ValidationFailedError(
            f"Booking {booking_id} is already cancelled", public_message="Booking is already cancelled"
        )

    if booking.calendar_event_id:
        try:
            access_token = await calendar.get_valid_access_token(host_id, "google")
            if access_token:
                await calendar.delete_event(access_token, booking.calendar_event_id)
        except Exception as e:
            logger.exception("Failed to delete calendar event for booking %s: %s", booking_id, e)

    booking = await store.update_booking_status(booking_id, BookingStatus.CANCELLED, cancel_reason=reason)
    logger.info("Booking %s cancelled by host %s", booking_id, host_id)

    details = await _load_details(store, booking)
    if details:
        await _best_effort(
            "booking cancellation", booking_id, notifier.send_booking_cancellation(details, reason)
        )
    return booking


async def confirm_booking(
    store: BookingStore, notifier: Notifier, booking_id: int, host_id: int
) -> Booking:
    booking = await _owned_booking(store, booking_id, host_id)
    if booking.status == BookingStatus.CONFIRMED:
        raise ValidationFailedError(
            f"Booking {booking_id} is already confirmed", public_message="Booking is already confirmed"
        )
    if booking.status != BookingStatus.PENDING:
        raise ValidationFailedError(
            f"Booking {booking_id} is {booking.status}", public_message=f"Booking is {booking.status}"
        )

    booking = await store.update_booking_status(booking_id, BookingStatus.CONFIRMED)
    logger.info("Booking %s confirmed by host %s", booking_id, host_id)

    details = await _load_details(store, booking)
    if details:
        await _best_effort("booking confirmation", booking_id, notifier.send_booking_confirmation(details))
    return booking


async def list_host_bookings(
    session: AsyncSession,
    host_id: int,
    status: BookingStatus | None = None,
    from_date: date | None = None,
) -> list[Booking]:
    q = select(Booking).where(Booking.user_id == host_id).order_by(Booking.start_time)
    if status:
        q = q.where(Booking.status == status.value)
    if from_date:
        q = q.where(Booking.start_time >= datetime.combine(from_date, time.min))
    result = await session.execute(q)
    return list(result.scalars().all())


def _confirmed_for(host_id: int) -> tuple:
    return (Booking.user_id == host_id, Booking.status == BookingStatus.CONFIRMED.value)


async def get_booking_stats(
    session: AsyncSession, host_id: int, tz: tzinfo, now: datetime | None = None
) -> dict[str, int]:
    """Confirmed bookings starting today, this week, this month and in total.

    Periods are calendar periods in the host timezone ``tz``; weeks start on Monday.
    """
    now = as_utc(now) if now is not None else datetime.now(UTC)
    today = now.astimezone(tz).date()
    week_start = today - timedelta(days=today.weekday())
    month_start = today.replace(day=1)
    next_month = (month_start + timedelta(days=32)).replace(day=1)
    periods = {
        "today": (today, today + timedelta(days=1)),
        "this_week": (week_start, week_start + timedelta(days=7)),
        "this_month": (month_start, next_month),
    }

    stats: dict[str, int] = {}
    for name, (first_day, end_day) in periods.items():
        start = to_naive_utc(datetime.combine(first_day, time.min, tzinfo=tz))
        end = to_naive_utc(datetime.combine(end_day, time.min, tzinfo=tz))
        result = await session.execute(
            select(func.count())
            .select_from(Booking)
            .where(*_confirmed_for(host_id), Booking.start_time >= start, Booking.start_time < end)
        )
        stats[name] = result.scalar_one()
    result = await session.execute(select(func.count()).select_from(Booking).where(*_confirmed_for(host_id)))
    stats["total"] = result.scalar_one()
    return stats


async def list_upcoming_bookings(
    session: AsyncSession, host_id: int, limit: int = 10, now: datetime | None = None
) -> list[tuple[Booking, EventType]]:
    """Next confirmed bookings with their event type, soonest first."""
    now = as_utc(now) if now is not None else datetime.now(UTC)
    result = await session.execute(
        select(Booking, EventType)
        .join(EventType, EventType.id == Booking.event_type_id)
        .where(*_confirmed_for(host_id), Booking.start_time >= to_naive_utc(now))
        .order_by(Booking.start_time)
        .limit(limit)
    )
    return [(booking, event_type) for booking, event_type in result.all()]
