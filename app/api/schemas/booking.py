from datetime import datetime

from pydantic import BaseModel, Field

from app.models.booking import Booking, BookingPublic, GuestDetails
from app.models.event_type import EventType
from app.services.intervals import as_utc


class BookingRequest(GuestDetails):
    start_time: datetime


class CancelBookingRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


def to_booking_public(booking: Booking) -> BookingPublic:
    """Public shape with stored naive-UTC timestamps made explicit UTC."""
    public = BookingPublic.model_validate(booking, from_attributes=True)
    public.start_time = as_utc(public.start_time)
    public.end_time = as_utc(public.end_time)
    public.created_at = as_utc(public.created_at)
    if public.cancelled_at is not None:
        public.cancelled_at = as_utc(public.cancelled_at)
    return public


class BookingStats(BaseModel):
    today: int
    this_week: int
    this_month: int
    total: int


class UpcomingBooking(BookingPublic):
    event_type_title: str
    event_type_duration: int


def to_upcoming_booking(booking: Booking, event_type: EventType) -> UpcomingBooking:
    return UpcomingBooking(
        **to_booking_public(booking).model_dump(),
        event_type_title=event_type.title,
        event_type_duration=event_type.duration,
    )
