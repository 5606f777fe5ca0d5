import asyncio
from datetime import UTC, timedelta
from itertools import combinations

import pytest

from app.core.errors import ConflictError, InactiveError, NotFoundError, ValidationFailedError
from app.models.booking import BLOCKING_STATUSES, BookingStatus
from app.services.booking_service import cancel_booking, confirm_booking, create_booking
from app.services.intervals import as_utc, overlaps, stored_interval
from conftest import MONDAY, NOW, FakeNotifier, at

MON = 1


@pytest.fixture
def open_monday(store, host):
    store.add_window(host, MON, "09:00", "17:00")
    return host


async def book(store, calendar, notifier, event_type, guest, start, now=NOW):
    return await create_booking(store, calendar, notifier, event_type.id, guest, start, UTC, now)


class TestCreateBooking:
    @pytest.mark.asyncio
    async def test_confirmed_immediately(self, store, calendar, notifier, open_monday, event_type, guest):
        booking = await book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:00"))

        assert booking.id is not None
        assert booking.status == BookingStatus.CONFIRMED
        assert as_utc(booking.start_time) == at(MONDAY, "10:00")
        assert as_utc(booking.end_time) == at(MONDAY, "10:30")
        assert booking.guest_email == "greta@example.com"
        assert [kind for kind, _ in notifier.sent] == ["confirmation", "notification"]

    @pytest.mark.asyncio
    async def test_pending_when_confirmation_required(self, store, calendar, notifier, open_monday, guest):
        event_type = store.add_event_type(open_monday, slug="consult", requires_confirmation=True)

        booking = await book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:00"))

        assert booking.status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_stored_naive_utc(self, store, calendar, notifier, open_monday, event_type, guest):
        booking = await book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:00"))
        assert booking.start_time.tzinfo is None

    @pytest.mark.asyncio
    async def test_unknown_event_type(self, store, calendar, notifier, open_monday, guest):
        with pytest.raises(NotFoundError):
            await create_booking(store, calendar, notifier, 999, guest, at(MONDAY, "10:00"), UTC, NOW)

    @pytest.mark.asyncio
    async def test_inactive_event_type(self, store, calendar, notifier, open_monday, guest):
        event_type = store.add_event_type(open_monday, slug="old", is_active=False)
        with pytest.raises(InactiveError):
            await book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:00"))
        assert store.bookings == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", list(BLOCKING_STATUSES))
    async def test_overlap_with_blocking_booking(self, store, calendar, notifier, open_monday, event_type, guest, status):
        store.add_booking(event_type, at(MONDAY, "10:00"), status=status)
        with pytest.raises(ConflictError) as exc_info:
            await book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:15"))
        assert exc_info.value.public_message == "This time is no longer available"

    @pytest.mark.asyncio
    async def test_back_to_back_is_allowed(self, store, calendar, notifier, open_monday, event_type, guest):
        store.add_booking(event_type, at(MONDAY, "10:00"))
        booking = await book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:30"))
        assert booking.status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_cancelled_booking_frees_the_time(self, store, calendar, notifier, open_monday, event_type, guest):
        store.add_booking(event_type, at(MONDAY, "10:00"), status=BookingStatus.CANCELLED)
        booking = await book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:00"))
        assert booking.id is not None

    @pytest.mark.asyncio
    async def test_buffers_checked_at_write_time(self, store, calendar, notifier, open_monday, guest):
        event_type = store.add_event_type(open_monday, slug="buffered", buffer_before=10, buffer_after=5)
        store.add_booking(event_type, at(MONDAY, "10:00"))
        with pytest.raises(ConflictError):
            # [10:30, 11:00) widened by 15 on each side reaches back to 10:15
            await book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:30"))
        booking = await book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:45"))
        assert booking.id is not None

    @pytest.mark.asyncio
    async def test_inside_notice_period(self, store, calendar, notifier, open_monday, guest):
        event_type = store.add_event_type(open_monday, slug="notice", min_notice=24)
        now = at(MONDAY, "10:00") - timedelta(hours=23)
        with pytest.raises(ConflictError):
            await book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:00"), now=now)

    @pytest.mark.asyncio
    async def test_beyond_horizon(self, store, calendar, notifier, open_monday, guest):
        event_type = store.add_event_type(open_monday, slug="soon", max_future=3)
        with pytest.raises(ConflictError):
            await book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:00"))

    @pytest.mark.asyncio
    async def test_outside_availability(self, store, calendar, notifier, open_monday, event_type, guest):
        with pytest.raises(ConflictError):
            await book(store, calendar, notifier, event_type, guest, at(MONDAY, "16:45"))
        with pytest.raises(ConflictError):
            await book(store, calendar, notifier, event_type, guest, at(MONDAY + timedelta(days=1), "10:00"))

    @pytest.mark.asyncio
    async def test_end_time_uses_current_duration(self, store, calendar, notifier, open_monday, event_type, guest):
        event_type.duration = 45
        booking = await book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:00"))
        assert as_utc(booking.end_time) == at(MONDAY, "10:45")


class TestConcurrentBooking:
    @pytest.mark.asyncio
    async def test_only_one_of_two_simultaneous_requests_wins(
        self, store, calendar, notifier, open_monday, event_type, guest
    ):
        results = await asyncio.gather(
            book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:00")),
            book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:00")),
            return_exceptions=True,
        )

        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(conflicts) == 1
        assert len(store.bookings) == 1

    @pytest.mark.asyncio
    async def test_overlapping_requests_never_double_book(
        self, store, calendar, notifier, open_monday, event_type, guest
    ):
        starts = [at(MONDAY, "09:00") + timedelta(minutes=15 * i) for i in range(20)]
        attempts = [book(store, calendar, notifier, event_type, guest, s) for s in starts for _ in range(2)]

        results = await asyncio.gather(*attempts, return_exceptions=True)

        assert all(not isinstance(r, Exception) or isinstance(r, ConflictError) for r in results)
        blocking = [b for b in store.bookings.values() if b.status in BLOCKING_STATUSES]
        assert blocking
        for a, b in combinations(blocking, 2):
            assert not overlaps(stored_interval(a.start_time, a.end_time), stored_interval(b.start_time, b.end_time))


class TestSideEffects:
    @pytest.mark.asyncio
    async def test_email_failure_does_not_fail_booking(self, store, calendar, open_monday, event_type, guest):
        booking = await book(store, calendar, FakeNotifier(fail=True), event_type, guest, at(MONDAY, "10:00"))
        assert booking.id in store.bookings

    @pytest.mark.asyncio
    async def test_calendar_event_created_and_linked(self, store, calendar, notifier, open_monday, event_type, guest):
        calendar.token = "token"
        booking = await book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:00"))
        assert booking.calendar_event_id == f"gcal-{booking.id}"
        assert store.bookings[booking.id].calendar_event_id == f"gcal-{booking.id}"

    @pytest.mark.asyncio
    async def test_calendar_failure_does_not_fail_booking(self, store, calendar, notifier, open_monday, event_type, guest):
        calendar.token = "token"
        calendar.create_error = RuntimeError("quota exceeded")
        booking = await book(store, calendar, notifier, event_type, guest, at(MONDAY, "10:00"))
        assert booking.calendar_event_id is None
        assert len(notifier.sent) == 2


class TestCancelAndConfirm:
    @pytest.mark.asyncio
    async def test_cancel(self, store, calendar, notifier, host, event_type):
        existing = store.add_booking(event_type, at(MONDAY, "10:00"))
        existing.calendar_event_id = "gcal-1"
        calendar.token = "token"

        booking = await cancel_booking(store, calendar, notifier, existing.id, host.id, reason="Sick")

        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancel_reason == "Sick"
        assert booking.cancelled_at is not None
        assert calendar.deleted == ["gcal-1"]
        assert notifier.sent == [("cancellation", existing.id)]

    @pytest.mark.asyncio
    async def test_cancel_twice(self, store, calendar, notifier, host, event_type):
        existing = store.add_booking(event_type, at(MONDAY, "10:00"), status=BookingStatus.CANCELLED)
        with pytest.raises(ValidationFailedError):
            await cancel_booking(store, calendar, notifier, existing.id, host.id)

    @pytest.mark.asyncio
    async def test_cancel_other_hosts_booking(self, store, calendar, notifier, event_type):
        existing = store.add_booking(event_type, at(MONDAY, "10:00"))
        intruder = store.add_host("mallory")
        with pytest.raises(NotFoundError):
            await cancel_booking(store, calendar, notifier, existing.id, intruder.id)
        assert existing.status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_confirm_pending(self, store, notifier, host, event_type):
        existing = store.add_booking(event_type, at(MONDAY, "10:00"), status=BookingStatus.PENDING)

        booking = await confirm_booking(store, notifier, existing.id, host.id)

        assert booking.status == BookingStatus.CONFIRMED
        assert notifier.sent == [("confirmation", existing.id)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.COMPLETED])
    async def test_confirm_requires_pending(self, store, notifier, host, event_type, status):
        existing = store.add_booking(event_type, at(MONDAY, "10:00"), status=status)
        with pytest.raises(ValidationFailedError):
            await confirm_booking(store, notifier, existing.id, host.id)
