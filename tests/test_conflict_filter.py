from datetime import timedelta

from app.services.intervals import Interval
from app.services.slot_service import Slot, filter_slots
from conftest import MONDAY, NOW, at


def slots_every_15(start: str, end: str) -> list[Slot]:
    current, stop = at(MONDAY, start), at(MONDAY, end)
    slots = []
    while current < stop:
        slots.append(Slot(current, current.strftime("%H:%M")))
        current += timedelta(minutes=15)
    return slots


def starts(slots: list[Slot]) -> list[str]:
    return [s.formatted for s in slots]


def booking(start: str, end: str) -> Interval:
    return Interval(at(MONDAY, start), at(MONDAY, end))


class TestBookingConflicts:
    def test_existing_booking_removes_overlapping_candidates(self):
        # 30-minute slots 09:00..11:30, booking 10:00-10:30
        result = filter_slots(
            slots_every_15("09:00", "11:45"), 30, 0, 0, 0, NOW, bookings=[booking("10:00", "10:30")]
        )
        removed = set(starts(slots_every_15("09:00", "11:45"))) - set(starts(result))
        assert removed == {"09:45", "10:00", "10:15"}
        assert "09:30" in starts(result)
        assert "10:30" in starts(result)

    def test_buffer_after_applies_to_both_sides(self):
        result = starts(
            filter_slots(slots_every_15("09:00", "11:45"), 30, 0, 15, 0, NOW, bookings=[booking("10:00", "10:30")])
        )
        # [09:30, 10:15) vs [10:00, 10:45) overlaps
        assert "09:30" not in result
        assert "09:15" in result
        assert "10:30" not in result
        assert "10:45" in result

    def test_buffer_before(self):
        result = starts(
            filter_slots(slots_every_15("09:00", "11:45"), 30, 15, 0, 0, NOW, bookings=[booking("10:00", "10:30")])
        )
        # [09:00, 09:45) touches [09:45, 10:30) without overlapping
        assert "09:15" in result
        assert "09:30" not in result
        assert "10:45" in result
        assert "10:30" not in result

    def test_busy_intervals_are_not_buffered(self):
        result = starts(
            filter_slots(slots_every_15("10:00", "12:00"), 30, 0, 15, 0, NOW, busy=[booking("11:00", "11:30")])
        )
        assert "10:15" in result
        assert "10:30" not in result
        assert "11:30" in result

    def test_no_blocked_time_keeps_everything(self):
        slots = slots_every_15("09:00", "10:00")
        assert filter_slots(slots, 30, 10, 10, 0, NOW) == slots


class TestNoticeAndHorizon:
    def test_notice_boundary_is_inclusive(self):
        notice_hours = 24
        now = at(MONDAY, "09:00") - timedelta(hours=notice_hours)
        slots = slots_every_15("08:45", "09:30")
        result = starts(filter_slots(slots, 15, 0, 0, notice_hours, now))
        assert result == ["09:00", "09:15"]

    def test_one_minute_inside_notice_is_rejected(self):
        now = at(MONDAY, "09:00") - timedelta(hours=2) + timedelta(minutes=1)
        slots = [Slot(at(MONDAY, "09:00"), "09:00")]
        assert filter_slots(slots, 30, 0, 0, 2, now) == []

    def test_latest_start(self):
        slots = slots_every_15("09:00", "10:00")
        result = starts(filter_slots(slots, 15, 0, 0, 0, NOW, latest_start=at(MONDAY, "09:30")))
        assert result == ["09:00", "09:15", "09:30"]
