from datetime import UTC, datetime, timedelta, timezone

from app.services.intervals import Interval, as_utc, contains, expand, overlaps, stored_interval, to_naive_utc


def iv(start: str, end: str) -> Interval:
    day = "2026-10-19T"
    return Interval(datetime.fromisoformat(day + start + "+00:00"), datetime.fromisoformat(day + end + "+00:00"))


class TestOverlaps:
    def test_back_to_back_does_not_overlap(self):
        assert not overlaps(iv("09:00", "10:00"), iv("10:00", "11:00"))
        assert not overlaps(iv("10:00", "11:00"), iv("09:00", "10:00"))

    def test_partial_overlap(self):
        assert overlaps(iv("09:00", "10:01"), iv("10:00", "11:00"))
        assert overlaps(iv("10:30", "11:30"), iv("10:00", "11:00"))

    def test_nested(self):
        assert overlaps(iv("09:00", "12:00"), iv("10:00", "10:15"))
        assert overlaps(iv("10:00", "10:15"), iv("09:00", "12:00"))

    def test_disjoint(self):
        assert not overlaps(iv("08:00", "09:00"), iv("09:30", "10:00"))

    def test_symmetric(self):
        pairs = [
            (iv("09:00", "10:00"), iv("09:30", "10:30")),
            (iv("09:00", "10:00"), iv("10:00", "10:30")),
            (iv("09:00", "09:15"), iv("11:00", "12:00")),
        ]
        for a, b in pairs:
            assert overlaps(a, b) == overlaps(b, a)


class TestExpandAndContains:
    def test_expand_both_sides(self):
        widened = expand(iv("10:00", "10:30"), 15, 5)
        assert widened == iv("09:45", "10:35")

    def test_zero_buffers_is_identity(self):
        assert expand(iv("10:00", "10:30"), 0, 0) == iv("10:00", "10:30")

    def test_single_guard_equals_buffering_both_sides(self):
        # Buffering both intervals by (b, a) conflicts exactly when the
        # candidate widened by b+a on each side hits the raw booking.
        before, after = 10, 20
        booking = iv("10:00", "10:30")
        for minute in range(0, 24 * 60, 5):
            start = datetime(2026, 10, 19, tzinfo=UTC) + timedelta(minutes=minute)
            candidate = Interval(start, start + timedelta(minutes=30))
            both = overlaps(expand(candidate, before, after), expand(booking, before, after))
            guard = overlaps(expand(candidate, before + after, before + after), booking)
            assert both == guard, start

    def test_contains_inclusive_edges(self):
        assert contains(iv("09:00", "12:00"), iv("09:00", "12:00"))
        assert contains(iv("09:00", "12:00"), iv("11:30", "12:00"))
        assert not contains(iv("09:00", "12:00"), iv("11:45", "12:15"))


class TestConversions:
    def test_naive_is_taken_as_utc(self):
        assert as_utc(datetime(2026, 10, 19, 10, 0)) == datetime(2026, 10, 19, 10, 0, tzinfo=UTC)

    def test_aware_is_converted(self):
        cet = timezone(timedelta(hours=2))
        assert as_utc(datetime(2026, 10, 19, 12, 0, tzinfo=cet)) == datetime(2026, 10, 19, 10, 0, tzinfo=UTC)

    def test_to_naive_utc(self):
        cet = timezone(timedelta(hours=2))
        assert to_naive_utc(datetime(2026, 10, 19, 12, 0, tzinfo=cet)) == datetime(2026, 10, 19, 10, 0)
        assert to_naive_utc(datetime(2026, 10, 19, 12, 0)) == datetime(2026, 10, 19, 12, 0)

    def test_stored_interval_is_aware(self):
        interval = stored_interval(datetime(2026, 10, 19, 10, 0), datetime(2026, 10, 19, 10, 30))
        assert interval.start.tzinfo is UTC
        assert interval.end - interval.start == timedelta(minutes=30)
