"""Guest-facing endpoints: no authentication, host addressed by username."""

from datetime import date, timedelta

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from app.api.deps import get_calendar, get_notifier, get_store, host_timezone
from app.api.schemas.booking import BookingRequest, to_booking_public
from app.api.schemas.slots import AvailableSlotsResponse, SlotInfo
from app.core.errors import InactiveError, NotFoundError
from app.models.booking import BookingPublic, GuestDetails
from app.models.event_type import EventType, EventTypePublic
from app.models.user import User
from app.services.availability_service import get_available_slots
from app.services.booking_service import create_booking
from app.services.calendar_service import CalendarConnector
from app.services.email_service import Notifier
from app.services.store import BookingStore

router = APIRouter(prefix="/public", tags=["public"])


class HostProfile(BaseModel):
    username: str
    full_name: str | None = None
    timezone: str
    event_types: list[EventTypePublic] = []


async def _host(store: BookingStore, username: str) -> User:
    host = await store.get_host_by_username(username)
    if host is None:
        raise NotFoundError(f"No host with username {username!r}")
    return host


async def _active_event_type(store: BookingStore, host: User, slug: str) -> EventType:
    event_type = await store.get_event_type_by_slug(host.id, slug)
    if event_type is None:
        raise NotFoundError(f"No event type {slug!r} for host {host.id}")
    if not event_type.is_active:
        raise InactiveError(f"Event type {event_type.id} is inactive")
    return event_type


@router.get("/{username}", response_model=HostProfile)
async def host_profile(
    username: str,
    store: BookingStore = Depends(get_store),
) -> HostProfile:
    """Host card for the booking page with the event types guests can book."""
    host = await _host(store, username)
    event_types = await store.list_active_event_types(host.id)
    return HostProfile(
        username=host.username,
        full_name=host.full_name,
        timezone=host.timezone,
        event_types=[EventTypePublic.model_validate(e, from_attributes=True) for e in event_types],
    )


@router.get("/{username}/{slug}", response_model=EventTypePublic)
async def public_event_type(
    username: str,
    slug: str,
    store: BookingStore = Depends(get_store),
) -> EventTypePublic:
    host = await _host(store, username)
    event_type = await _active_event_type(store, host, slug)
    return EventTypePublic.model_validate(event_type, from_attributes=True)


@router.get("/{username}/{slug}/slots", response_model=AvailableSlotsResponse)
async def available_slots(
    username: str,
    slug: str,
    date_param: date = Query(..., alias="date"),
    store: BookingStore = Depends(get_store),
    calendar: CalendarConnector = Depends(get_calendar),
) -> AvailableSlotsResponse:
    """Open start times on ``date`` (a calendar day in the host's timezone)."""
    host = await _host(store, username)
    event_type = await _active_event_type(store, host, slug)
    tz = host_timezone(host)
    slots = await get_available_slots(store, calendar, host.id, event_type.id, date_param, tz)
    duration = timedelta(minutes=event_type.duration)
    return AvailableSlotsResponse(
        date=date_param.isoformat(),
        timezone=tz.key,
        duration=event_type.duration,
        slots=[SlotInfo(start=s.start, end=s.start + duration, time=s.formatted) for s in slots],
    )


@router.post(
    "/{username}/{slug}/bookings",
    response_model=BookingPublic,
    status_code=status.HTTP_201_CREATED,
)
async def book(
    username: str,
    slug: str,
    body: BookingRequest,
    store: BookingStore = Depends(get_store),
    calendar: CalendarConnector = Depends(get_calendar),
    notifier: Notifier = Depends(get_notifier),
) -> BookingPublic:
    host = await _host(store, username)
    event_type = await _active_event_type(store, host, slug)
    guest = GuestDetails(name=body.name, email=body.email, phone=body.phone, notes=body.notes)
    tz = host_timezone(host)
    start_time = body.start_time
    if start_time.tzinfo is None:
        # Wall-clock time as listed by the slots endpoint
        start_time = start_time.replace(tzinfo=tz)
    booking = await create_booking(store, calendar, notifier, event_type.id, guest, start_time, tz)
    return to_booking_public(booking)
