import re
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import EmailStr, field_validator
from sqlmodel import Field, SQLModel

from app.models.event_type import EventType
from app.models.user import User

_PHONE = re.compile(r"^\+?[\d\s-]{6,20}$")


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class BookingStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Only these statuses occupy the host's time.
BLOCKING_STATUSES: tuple[BookingStatus, ...] = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"
    id: int | None = Field(default=None, primary_key=True)
    event_type_id: int = Field(foreign_key="event_types.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    guest_name: str = Field(max_length=200)
    guest_email: str = Field(max_length=255)
    guest_phone: str | None = Field(default=None, max_length=30)
    guest_notes: str | None = None
    # Naive UTC. end_time is fixed at creation and never recomputed from the event type.
    start_time: datetime = Field(index=True)
    end_time: datetime
    status: str = Field(default=BookingStatus.PENDING.value, max_length=20, index=True)
    calendar_event_id: str | None = Field(default=None, max_length=255)
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now)
    updated_at: datetime = Field(default_factory=_utc_naive_now)


class BookingPublic(SQLModel):
    id: int
    event_type_id: int
    user_id: int
    guest_name: str
    guest_email: str
    guest_phone: str | None = None
    guest_notes: str | None = None
    start_time: datetime
    end_time: datetime
    status: str
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    created_at: datetime


class GuestDetails(SQLModel):
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    phone: str | None = None
    notes: str | None = Field(default=None, max_length=500)

    @field_validator("phone")
    @classmethod
    def _valid_phone(cls, value: str | None) -> str | None:
        if value and not _PHONE.match(value):
            raise ValueError("Invalid phone number")
        return value or None


@dataclass
class BookingDetails:
    """Booking hydrated with its event type and host, as notifications need it."""

    booking: Booking
    event_type: EventType
    host: User
