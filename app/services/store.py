"""Data access used by the slot engine and the reservation transaction.

The services only talk to a :class:`BookingStore`, so tests can hand them an
in-memory fake while the API wires :class:`SqlBookingStore` to the request
session.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError
from app.models.availability import Availability
from app.models.booking import Booking, BookingStatus
from app.models.calendar_connection import CalendarConnection
from app.models.event_type import EventType
from app.models.user import User
from app.services.event_type_service import list_event_types
from app.services.intervals import Interval, to_naive_utc

logger = logging.getLogger(__name__)


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class BookingStore(Protocol):
    async def get_host(self, host_id: int) -> User | None: ...

    async def list_active_event_types(self, host_id: int) -> list[EventType]: ...

    async def get_host_by_username(self, username: str) -> User | None: ...

    async def list_availability(self, host_id: int, weekday: int) -> list[Availability]: ...

    async def list_all_availability(self, host_id: int) -> list[Availability]: ...

    async def replace_availability(
        self, host_id: int, windows: Sequence[Availability]
    ) -> list[Availability]: ...

    async def get_event_type(self, event_type_id: int) -> EventType | None: ...

    async def get_event_type_by_slug(self, host_id: int, slug: str) -> EventType | None: ...

    async def list_bookings(
        self,
        host_id: int,
        range_start: datetime,
        range_end: datetime,
        statuses: Iterable[str],
    ) -> list[Booking]: ...

    async def insert_booking_if_free(self, booking: Booking, guard: Interval) -> Booking: ...

    async def get_booking(self, booking_id: int) -> Booking | None: ...

    async def update_booking_status(
        self, booking_id: int, status: BookingStatus, cancel_reason: str | None = None
    ) -> Booking: ...

    async def set_calendar_event_id(self, booking_id: int, calendar_event_id: str) -> None: ...

    async def get_calendar_connection(
        self, host_id: int, provider: str = "google"
    ) -> CalendarConnection | None: ...

    async def save_calendar_connection(self, connection: CalendarConnection) -> CalendarConnection: ...

    async def update_calendar_tokens(
        self, host_id: int, provider: str, access_token: str, expires_at: datetime
    ) -> None: ...

    async def remove_calendar_connection(self, host_id: int, provider: str = "google") -> None: ...


class SqlBookingStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_host(self, host_id: int) -> User | None:
        result = await self.session.execute(select(User).where(User.id == host_id))
        return result.scalar_one_or_none()

    async def get_host_by_username(self, username: str) -> User | None:
        result = await self.session.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def list_availability(self, host_id: int, weekday: int) -> list[Availability]:
        result = await self.session.execute(
            select(Availability)
            .where(Availability.user_id == host_id, Availability.day_of_week == weekday)
            .order_by(Availability.start_time)
        )
        return list(result.scalars().all())

    async def list_all_availability(self, host_id: int) -> list[Availability]:
        result = await self.session.execute(
            select(Availability)
            .where(Availability.user_id == host_id)
            .order_by(Availability.day_of_week, Availability.start_time)
        )
        return list(result.scalars().all())

    async def replace_availability(
        self, host_id: int, windows: Sequence[Availability]
    ) -> list[Availability]:
        await self.session.execute(delete(Availability).where(Availability.user_id == host_id))
        rows = []
        for window in windows:
            row = Availability(
                user_id=host_id,
                day_of_week=window.day_of_week,
                start_time=window.start_time,
                end_time=window.end_time,
            )
            self.session.add(row)
            rows.append(row)
        await self.session.flush()
        return rows

    async def get_event_type(self, event_type_id: int) -> EventType | None:
        result = await self.session.execute(select(EventType).where(EventType.id == event_type_id))
        return result.scalar_one_or_none()

    async def get_event_type_by_slug(self, host_id: int, slug: str) -> EventType | None:
        result = await self.session.execute(
            select(EventType).where(EventType.user_id == host_id, EventType.slug == slug)
        )
        return result.scalar_one_or_none()

    async def list_active_event_types(self, host_id: int) -> list[EventType]:
        return await list_event_types(self.session, host_id, active_only=True)

    async def list_bookings(
        self,
        host_id: int,
        range_start: datetime,
        range_end: datetime,
        statuses: Iterable[str],
    ) -> list[Booking]:
        """Bookings in the given statuses whose [start, end) overlaps the range."""
        result = await self.session.execute(
            select(Booking)
            .where(
                Booking.user_id == host_id,
                Booking.status.in_([str(s) for s in statuses]),
                Booking.start_time < to_naive_utc(range_end),
                Booking.end_time > to_naive_utc(range_start),
            )
            .order_by(Booking.start_time)
        )
        return list(result.scalars().all())

    async def insert_booking_if_free(self, booking: Booking, guard: Interval) -> Booking:
        """Insert and commit the booking unless a blocking booking overlaps ``guard``.

        The host row is locked for the duration of the check and insert, so two
        reservations for the same host run one after the other on every worker.
        The bookings exclusion constraint rejects anything that slips past.
        """
        host_id, start = booking.user_id, booking.start_time
        await self.session.execute(
            select(User.id).where(User.id == host_id).with_for_update()
        )
        clash = await self.session.execute(
            select(Booking.id)
            .where(
                Booking.user_id == host_id,
                Booking.status.in_([BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value]),
                Booking.start_time < to_naive_utc(guard.end),
                Booking.end_time > to_naive_utc(guard.start),
            )
            .limit(1)
        )
        if clash.first() is not None:
            await self.session.rollback()
            logger.info("Reservation conflict for host %s at %s", host_id, start)
            raise ConflictError(
                f"Host {host_id} already has a booking overlapping {guard.start}-{guard.end}"
            )
        self.session.add(booking)
        try:
            await self.session.flush()
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            logger.info("Concurrent reservation for host %s at %s lost", host_id, start)
            raise ConflictError(f"Booking rejected by the database: {exc.orig}") from exc
        await self.session.refresh(booking)
        return booking

    async def get_booking(self, booking_id: int) -> Booking | None:
        result = await self.session.execute(select(Booking).where(Booking.id == booking_id))
        return result.scalar_one_or_none()

    async def update_booking_status(
        self, booking_id: int, status: BookingStatus, cancel_reason: str | None = None
    ) -> Booking:
        now = _utc_naive_now()
        values: dict[str, object] = {"status": status.value, "updated_at": now}
        if status == BookingStatus.CANCELLED:
            values["cancelled_at"] = now
            values["cancel_reason"] = cancel_reason
        await self.session.execute(update(Booking).where(Booking.id == booking_id).values(**values))
        await self.session.flush()
        booking = await self.session.get(Booking, booking_id, populate_existing=True)
        return booking

    async def set_calendar_event_id(self, booking_id: int, calendar_event_id: str) -> None:
        try:
            await self.session.execute(
                update(Booking)
                .where(Booking.id == booking_id)
                .values(calendar_event_id=calendar_event_id)
            )
            await self.session.commit()
        except SQLAlchemyError:
            # Leave the session usable; the booking itself is already committed.
            await self.session.rollback()
            raise

    async def get_calendar_connection(
        self, host_id: int, provider: str = "google"
    ) -> CalendarConnection | None:
        result = await self.session.execute(
            select(CalendarConnection).where(
                CalendarConnection.user_id == host_id,
                CalendarConnection.provider == provider,
            )
        )
        return result.scalar_one_or_none()

    async def save_calendar_connection(self, connection: CalendarConnection) -> CalendarConnection:
        existing = await self.get_calendar_connection(connection.user_id, connection.provider)
        if existing:
            existing.email = connection.email
            existing.access_token = connection.access_token
            existing.refresh_token = connection.refresh_token
            existing.expires_at = connection.expires_at
            connection = existing
        self.session.add(connection)
        await self.session.flush()
        await self.session.refresh(connection)
        return connection

    async def update_calendar_tokens(
        self, host_id: int, provider: str, access_token: str, expires_at: datetime
    ) -> None:
        await self.session.execute(
            update(CalendarConnection)
            .where(
                CalendarConnection.user_id == host_id,
                CalendarConnection.provider == provider,
            )
            .values(access_token=access_token, expires_at=to_naive_utc(expires_at))
        )
        await self.session.flush()

    async def remove_calendar_connection(self, host_id: int, provider: str = "google") -> None:
        await self.session.execute(
            delete(CalendarConnection).where(
                CalendarConnection.user_id == host_id,
                CalendarConnection.provider == provider,
            )
        )
        await self.session.flush()
