"""Availability engine — which hours of which days a service can still be booked.

:func:`compute_availability` is a pure function of the service's schedule
rules, the bookings and administrative blocks on the requested days, and the
current time. It reads nothing and writes nothing, so calling it twice with
the same inputs gives the same answer. :class:`AvailabilityHandler` loads those
inputs in one read transaction and hands them over.

Candidate slots start at each open hour range's ``start_hour`` and step by
the service duration; a slot is offered only when the whole appointment fits
before the range's ``end_hour``.
"""

from collections import defaultdict
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum

from pydantic import BaseModel
from sqlalchemy import select

from booking.booking import Booking, BookingStatus
from catalogue.models import Service
from catalogue.sql_adapter import SqlCatalogue
from shared.database import unit_of_work, utc_now
from shared.errors import ErrorCode, NotFoundError, ValidationFailed

MAX_RANGE_DAYS = 90


class SlotConflict(Enum):
    CLOSED_DAY = "CLOSED_DAY"
    OUTSIDE_HOURS = "OUTSIDE_HOURS"
    OUTSIDE_BOOKING_WINDOW = "OUTSIDE_BOOKING_WINDOW"
    BOOKED = "BOOKED"
    BLOCKED = "BLOCKED"
    DAILY_LIMIT_REACHED = "DAILY_LIMIT_REACHED"


@dataclass(frozen=True)
class HourRange:
    start_hour: int
    end_hour: int


@dataclass(frozen=True)
class ScheduleRules:
    duration_hours: int
    available_days: frozenset[int]
    hour_ranges: tuple[HourRange, ...]
    max_daily_bookings: int = 10
    min_advance_days: int = 1
    max_advance_days: int = 30

    @classmethod
    def from_service(cls, service: Service) -> "ScheduleRules":
        return cls(
            duration_hours=service.duration_hours,
            available_days=frozenset(service.available_days),
            hour_ranges=tuple(HourRange(r["start_hour"], r["end_hour"]) for r in service.available_hours),
            max_daily_bookings=service.max_daily_bookings,
            min_advance_days=service.min_advance_days,
            max_advance_days=service.max_advance_days,
        )

    def candidate_hours(self) -> list[int]:
        hours = []
        for hour_range in sorted(self.hour_ranges, key=lambda r: r.start_hour):
            hour = hour_range.start_hour
            while hour + self.duration_hours <= hour_range.end_hour:
                hours.append(hour)
                hour += self.duration_hours
        return hours


@dataclass(frozen=True)
class BookedSlot:
    scheduled_date: date
    hour: int
    duration_hours: int


@dataclass(frozen=True)
class BlockedPeriod:
    blocked_date: date
    start_hour: int
    end_hour: int


@dataclass(frozen=True)
class DayAvailability:
    day: date
    slots: tuple[int, ...]
    booked_slots: tuple[int, ...] = ()
    blocked_slots: tuple[int, ...] = ()
    fully_booked: bool = False


def weekday_number(day: date) -> int:
    """Weekday with Sunday as 0, matching ``Service.available_days``."""
    return day.isoweekday() % 7


def days_between(start: date, end: date) -> Iterator[date]:
    for offset in range((end - start).days + 1):
        yield start + timedelta(days=offset)


def _overlaps(start: int, end: int, other_start: int, other_end: int) -> bool:
    return start < other_end and other_start < end


def within_booking_window(rules: ScheduleRules, day: date, now: datetime) -> bool:
    days_ahead = (day - now.date()).days
    return days_ahead >= 0 and rules.min_advance_days <= days_ahead <= rules.max_advance_days


def _day_conflicts(
    rules: ScheduleRules,
    day: date,
    bookings: list[BookedSlot],
    blocks: list[BlockedPeriod],
    now: datetime,
) -> dict[int, SlotConflict]:
    """Map every candidate hour of ``day`` that cannot be booked to the reason why."""
    candidates = rules.candidate_hours()

    if weekday_number(day) not in rules.available_days:
        return dict.fromkeys(candidates, SlotConflict.CLOSED_DAY)
    if not within_booking_window(rules, day, now):
        return dict.fromkeys(candidates, SlotConflict.OUTSIDE_BOOKING_WINDOW)
    if len(bookings) >= rules.max_daily_bookings:
        return dict.fromkeys(candidates, SlotConflict.DAILY_LIMIT_REACHED)

    conflicts = {}
    for hour in candidates:
        end = hour + rules.duration_hours
        if day == now.date() and hour <= now.hour:
            conflicts[hour] = SlotConflict.OUTSIDE_BOOKING_WINDOW
        elif any(_overlaps(hour, end, b.hour, b.hour + b.duration_hours) for b in bookings):
            conflicts[hour] = SlotConflict.BOOKED
        elif any(_overlaps(hour, end, b.start_hour, b.end_hour) for b in blocks):
            conflicts[hour] = SlotConflict.BLOCKED
    return conflicts


def compute_availability(
    rules: ScheduleRules,
    start: date,
    end: date,
    bookings: Iterable[BookedSlot] = (),
    blocks: Iterable[BlockedPeriod] = (),
    now: datetime | None = None,
) -> list[DayAvailability]:
    """Open slots for every day in ``[start, end]``.

    ``bookings`` must hold only bookings that still occupy their slot, i.e.
    everything that is not CANCELLED.
    """
    if end < start:
        raise ValidationFailed(ErrorCode.INVALID_DATE_RANGE, "End date is before start date")
    if (end - start).days + 1 > MAX_RANGE_DAYS:
        raise ValidationFailed(
            ErrorCode.INVALID_DATE_RANGE,
            f"Availability can be requested for at most {MAX_RANGE_DAYS} days",
        )

    now = now or utc_now()
    bookings_by_day = defaultdict(list)
    for booked in bookings:
        bookings_by_day[booked.scheduled_date].append(booked)
    blocks_by_day = defaultdict(list)
    for block in blocks:
        blocks_by_day[block.blocked_date].append(block)

    days = []
    for day in days_between(start, end):
        conflicts = _day_conflicts(rules, day, bookings_by_day[day], blocks_by_day[day], now)
        days.append(
            DayAvailability(
                day=day,
                slots=tuple(hour for hour in rules.candidate_hours() if hour not in conflicts),
                booked_slots=tuple(h for h, reason in conflicts.items() if reason == SlotConflict.BOOKED),
                blocked_slots=tuple(h for h, reason in conflicts.items() if reason == SlotConflict.BLOCKED),
                fully_booked=SlotConflict.DAILY_LIMIT_REACHED in conflicts.values(),
            )
        )
    return days


def find_conflict(
    rules: ScheduleRules,
    day: date,
    hour: int,
    bookings: Iterable[BookedSlot] = (),
    blocks: Iterable[BlockedPeriod] = (),
    now: datetime | None = None,
) -> SlotConflict | None:
    """Why ``hour`` on ``day`` cannot be booked, or None when it can."""
    if hour not in rules.candidate_hours():
        return SlotConflict.OUTSIDE_HOURS
    same_day_bookings = [b for b in bookings if b.scheduled_date == day]
    same_day_blocks = [b for b in blocks if b.blocked_date == day]
    return _day_conflicts(rules, day, same_day_bookings, same_day_blocks, now or utc_now()).get(hour)


# ---------------------------------------------------------------------------
# Loading inputs
# ---------------------------------------------------------------------------
def load_booked_slots(session, service_id: str, start: date, end: date) -> list[BookedSlot]:
    rows = session.execute(
        select(Booking.scheduled_date, Booking.scheduled_hour, Booking.duration_hours).where(
            Booking.service_id == service_id,
            Booking.scheduled_date >= start,
            Booking.scheduled_date <= end,
            Booking.status != BookingStatus.CANCELLED.value,
        )
    )
    return [BookedSlot(scheduled_date=row[0], hour=row[1], duration_hours=row[2]) for row in rows]


def load_blocks(catalogue: SqlCatalogue, service_id: str, start: date, end: date) -> list[BlockedPeriod]:
    return [
        BlockedPeriod(blocked_date=block.blocked_date, start_hour=block.start_hour, end_hour=block.end_hour)
        for block in catalogue.get_blocks(service_id, start, end)
    ]


class GetAvailability(BaseModel):
    service_id: str
    start_date: date
    end_date: date


class AvailabilityHandler:
    def get_availability(self, query: GetAvailability) -> list[DayAvailability]:
        with unit_of_work() as session:
            catalogue = SqlCatalogue(session)
            service = catalogue.get_service(query.service_id)
            if service is None:
                raise NotFoundError(ErrorCode.SERVICE_NOT_FOUND, f"Service {query.service_id} not found")

            return compute_availability(
                ScheduleRules.from_service(service),
                query.start_date,
                query.end_date,
                bookings=load_booked_slots(session, service.id, query.start_date, query.end_date),
                blocks=load_blocks(catalogue, service.id, query.start_date, query.end_date),
                now=utc_now(),
            )
