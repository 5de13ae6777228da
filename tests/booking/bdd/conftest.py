"""Shared BDD fixtures and step definitions for the Booking domain."""

from datetime import timedelta

import pytest
from pytest_bdd import given, parsers, then

from booking.creation import CreateBooking, CreateBookingHandler
from booking.queries import BookingQueries
from shared.database import utc_now

EVERY_DAY = list(range(7))


def book(service, scheduled_date, hour, user_id="user-001"):
    return CreateBookingHandler().create_booking(
        CreateBooking(user_id=user_id, service_id=service.id, scheduled_date=scheduled_date, scheduled_hour=hour)
    )


# ---------------------------------------------------------------------------
# Scalar fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Container for the error a When step captured."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.parse("a {duration:d}-hour service open from {start:d} to {end:d} every day"),
    target_fixture="service",
)
def _(make_service, duration, start, end):
    return make_service(
        duration_hours=duration,
        available_days=EVERY_DAY,
        available_hours=[{"start_hour": start, "end_hour": end}],
    )


@given(parsers.parse("an ${price} service bookable around the clock"), target_fixture="service")
def _(make_service, price):
    return make_service(
        base_price=price,
        available_days=EVERY_DAY,
        available_hours=[{"start_hour": 0, "end_hour": 24}],
        min_advance_days=0,
    )


@given(parsers.parse("a customer booked {hour:d}:00 two days from now"), target_fixture="booking")
def _(service, hour):
    return book(service, utc_now().date() + timedelta(days=2), hour)


@given(parsers.parse("a booking {hours:d} hours from now"), target_fixture="booking")
def _(service, hours):
    starts = utc_now() + timedelta(hours=hours)
    return book(service, starts.date(), starts.hour)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.parse('the booking is still "{status}"'))
def _(booking, status):
    assert BookingQueries().find_by_id(booking.id).status == status
