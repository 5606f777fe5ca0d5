from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_calendar, get_current_user, get_notifier, get_session, get_store, host_timezone
from app.api.schemas.booking import (
    BookingStats,
    CancelBookingRequest,
    UpcomingBooking,
    to_booking_public,
    to_upcoming_booking,
)
from app.models.booking import BookingPublic, BookingStatus
from app.models.user import User
from app.services.booking_service import (
    cancel_booking,
    confirm_booking,
    get_booking_stats,
    list_host_bookings,
    list_upcoming_bookings,
)
from app.services.calendar_service import CalendarConnector
from app.services.email_service import Notifier
from app.services.store import BookingStore

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("", response_model=list[BookingPublic])
async def list_my_bookings(
    status_filter: BookingStatus | None = Query(None, alias="status"),
    from_date: date | None = Query(None, alias="from_date"),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[BookingPublic]:
    bookings = await list_host_bookings(session, current_user.id, status=status_filter, from_date=from_date)
    return [to_booking_public(b) for b in bookings]


@router.get("/stats", response_model=BookingStats)
async def my_booking_stats(
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> BookingStats:
    """Confirmed bookings counted by calendar period in the host's timezone."""
    stats = await get_booking_stats(session, current_user.id, host_timezone(current_user))
    return BookingStats(**stats)


@router.get("/upcoming", response_model=list[UpcomingBooking])
async def my_upcoming_bookings(
    limit: int = Query(10, ge=1, le=50),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[UpcomingBooking]:
    rows = await list_upcoming_bookings(session, current_user.id, limit=limit)
    return [to_upcoming_booking(booking, event_type) for booking, event_type in rows]


@router.post("/{booking_id}/confirm", response_model=BookingPublic)
async def confirm_my_booking(
    booking_id: int,
    store: BookingStore = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user),
) -> BookingPublic:
    booking = await confirm_booking(store, notifier, booking_id, current_user.id)
    return to_booking_public(booking)


@router.post("/{booking_id}/cancel", response_model=BookingPublic)
async def cancel_my_booking(
    booking_id: int,
    body: CancelBookingRequest | None = None,
    store: BookingStore = Depends(get_store),
    calendar: CalendarConnector = Depends(get_calendar),
    notifier: Notifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user),
) -> BookingPublic:
    reason = body.reason if body else None
    booking = await cancel_booking(store, calendar, notifier, booking_id, current_user.id, reason)
    return to_booking_public(booking)
