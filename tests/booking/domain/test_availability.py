"""Tests for the pure availability computation."""

from datetime import UTC, date, datetime, timedelta

import pytest

from booking.availability import (
    MAX_RANGE_DAYS,
    BlockedPeriod,
    BookedSlot,
    HourRange,
    ScheduleRules,
    SlotConflict,
    compute_availability,
    find_conflict,
    weekday_number,
)
from shared.errors import ErrorCode, ValidationFailed

# Monday 2 March 2026, early morning
NOW = datetime(2026, 3, 2, 6, 0, tzinfo=UTC)
TUESDAY = date(2026, 3, 3)
SATURDAY = date(2026, 3, 7)


def _rules(duration=1, hours=((9, 17),), days=(1, 2, 3, 4, 5), **kwargs):
    return ScheduleRules(
        duration_hours=duration,
        available_days=frozenset(days),
        hour_ranges=tuple(HourRange(start, end) for start, end in hours),
        **kwargs,
    )


def _day(rules, day, **kwargs):
    (result,) = compute_availability(rules, day, day, now=NOW, **kwargs)
    return result


class TestCandidateHours:
    def test_one_hour_slots(self):
        assert _rules().candidate_hours() == [9, 10, 11, 12, 13, 14, 15, 16]

    def test_slots_step_by_duration(self):
        assert _rules(duration=2).candidate_hours() == [9, 11, 13, 15]

    def test_slot_must_fit_before_closing(self):
        assert _rules(duration=3).candidate_hours() == [9, 12]

    def test_split_ranges(self):
        assert _rules(hours=((13, 17), (8, 12)), duration=2).candidate_hours() == [8, 10, 13, 15]


class TestComputeAvailability:
    def test_open_day(self):
        result = _day(_rules(), TUESDAY)
        assert result.slots == (9, 10, 11, 12, 13, 14, 15, 16)
        assert not result.fully_booked

    def test_closed_weekday(self):
        assert weekday_number(SATURDAY) == 6
        assert _day(_rules(), SATURDAY).slots == ()

    def test_sunday_is_day_zero(self):
        assert weekday_number(date(2026, 3, 1)) == 0

    def test_booked_slot_is_removed(self):
        bookings = [BookedSlot(TUESDAY, 9, 2)]
        result = _day(_rules(duration=2), TUESDAY, bookings=bookings)

        assert result.slots == (11, 13, 15)
        assert result.booked_slots == (9,)

    def test_long_booking_blocks_overlapping_slots(self):
        bookings = [BookedSlot(TUESDAY, 10, 3)]
        result = _day(_rules(), TUESDAY, bookings=bookings)
        assert result.booked_slots == (10, 11, 12)
        assert 13 in result.slots

    def test_blocked_period(self):
        blocks = [BlockedPeriod(TUESDAY, 12, 14)]
        result = _day(_rules(), TUESDAY, blocks=blocks)

        assert result.blocked_slots == (12, 13)
        assert 12 not in result.slots
        assert 14 in result.slots

    def test_daily_limit(self):
        rules = _rules(max_daily_bookings=2)
        bookings = [BookedSlot(TUESDAY, 9, 1), BookedSlot(TUESDAY, 10, 1)]

        result = _day(rules, TUESDAY, bookings=bookings)

        assert result.slots == ()
        assert result.fully_booked

    def test_minimum_advance(self):
        assert _day(_rules(min_advance_days=1), NOW.date()).slots == ()

    def test_maximum_advance(self):
        assert _day(_rules(max_advance_days=3), date(2026, 3, 9)).slots == ()

    def test_same_day_hides_past_hours(self):
        rules = _rules(days=range(7), min_advance_days=0)
        now = datetime(2026, 3, 2, 11, 30, tzinfo=UTC)

        (result,) = compute_availability(rules, now.date(), now.date(), now=now)

        assert result.slots == (12, 13, 14, 15, 16)

    def test_range_of_days(self):
        days = compute_availability(_rules(), TUESDAY, SATURDAY, now=NOW)
        assert [day.day for day in days] == [TUESDAY, date(2026, 3, 4), date(2026, 3, 5), date(2026, 3, 6), SATURDAY]

    def test_same_inputs_same_answer(self):
        bookings = [BookedSlot(TUESDAY, 9, 1)]
        first = compute_availability(_rules(), TUESDAY, SATURDAY, bookings=bookings, now=NOW)
        second = compute_availability(_rules(), TUESDAY, SATURDAY, bookings=bookings, now=NOW)
        assert first == second

    def test_end_before_start(self):
        with pytest.raises(ValidationFailed) as exc:
            compute_availability(_rules(), SATURDAY, TUESDAY, now=NOW)
        assert exc.value.code == ErrorCode.INVALID_DATE_RANGE

    def test_range_too_long(self):
        with pytest.raises(ValidationFailed):
            compute_availability(_rules(), TUESDAY, TUESDAY + timedelta(days=MAX_RANGE_DAYS), now=NOW)

    def test_longest_allowed_range(self):
        days = compute_availability(_rules(), TUESDAY, TUESDAY + timedelta(days=MAX_RANGE_DAYS - 1), now=NOW)
        assert len(days) == MAX_RANGE_DAYS


class TestFindConflict:
    def test_open_slot(self):
        assert find_conflict(_rules(duration=2), TUESDAY, 11, now=NOW) is None

    def test_hour_not_on_the_grid(self):
        assert find_conflict(_rules(duration=2), TUESDAY, 10, now=NOW) == SlotConflict.OUTSIDE_HOURS

    def test_booked(self):
        bookings = [BookedSlot(TUESDAY, 9, 2)]
        assert find_conflict(_rules(duration=2), TUESDAY, 9, bookings=bookings, now=NOW) == SlotConflict.BOOKED

    def test_bookings_on_other_days_are_ignored(self):
        bookings = [BookedSlot(date(2026, 3, 4), 9, 2)]
        assert find_conflict(_rules(duration=2), TUESDAY, 9, bookings=bookings, now=NOW) is None

    def test_closed_day(self):
        assert find_conflict(_rules(), SATURDAY, 9, now=NOW) == SlotConflict.CLOSED_DAY

    def test_blocked(self):
        blocks = [BlockedPeriod(TUESDAY, 0, 24)]
        assert find_conflict(_rules(), TUESDAY, 9, blocks=blocks, now=NOW) == SlotConflict.BLOCKED
