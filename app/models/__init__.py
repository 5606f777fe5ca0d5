from app.models.user import User, UserCreate, UserPublic, UserUpdate
from app.models.event_type import EventType, EventTypePublic
from app.models.availability import Availability, AvailabilityPublic
from app.models.booking import (
    BLOCKING_STATUSES,
    Booking,
    BookingDetails,
    BookingPublic,
    BookingStatus,
)
from app.models.calendar_connection import CalendarConnection, CalendarConnectionPublic

__all__ = [
    "User",
    "UserCreate",
    "UserPublic",
    "UserUpdate",
    "EventType",
    "EventTypePublic",
    "Availability",
    "AvailabilityPublic",
    "BLOCKING_STATUSES",
    "Booking",
    "BookingDetails",
    "BookingPublic",
    "BookingStatus",
    "CalendarConnection",
    "CalendarConnectionPublic",
]
