"""FastAPI routes for the Booking domain — bookings and service availability."""

from datetime import date

from fastapi import APIRouter, Query

from booking.api.schemas import (
    AvailabilityResponse,
    BookingRefundResponse,
    BookingResponse,
    CancelBookingRequest,
    CancelBookingResponse,
    CreateBookingRequest,
    DayAvailabilityResponse,
    UpdateBookingStatusRequest,
)
from booking.availability import AvailabilityHandler, GetAvailability
from booking.booking import BookingStatus
from booking.cancellation import CancelBooking, CancelBookingHandler
from booking.creation import CreateBooking, CreateBookingHandler
from booking.lifecycle import UpdateBookingStatus, UpdateBookingStatusHandler
from booking.queries import BookingQueries
from shared.api import AdminDep, PageResponse, UserIdDep, page_response
from shared.errors import ErrorCode, NotFoundError
from shared.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

# ---------------------------------------------------------------------------
# Booking Router
# ---------------------------------------------------------------------------
booking_router = APIRouter(prefix="/bookings", tags=["bookings"])


@booking_router.post("", status_code=201, response_model=BookingResponse)
def create_booking(body: CreateBookingRequest, user_id: UserIdDep):
    command = CreateBooking(
        user_id=user_id,
        service_id=body.service_id,
        scheduled_date=body.scheduled_date,
        scheduled_hour=body.scheduled_hour,
        add_on_ids=body.add_on_ids,
        vehicle_info=body.vehicle_info,
        notes=body.notes,
    )
    return CreateBookingHandler().create_booking(command)


@booking_router.get("", response_model=PageResponse[BookingResponse])
def list_my_bookings(
    user_id: UserIdDep,
    status: BookingStatus | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
):
    return page_response(BookingQueries().find_by_user(user_id, status, page, limit), BookingResponse)


@booking_router.get("/number/{booking_number}", response_model=BookingResponse)
def get_booking_by_number(booking_number: str, user_id: UserIdDep):
    booking = BookingQueries().find_by_number(booking_number)
    if booking.user_id != user_id:
        raise NotFoundError(ErrorCode.BOOKING_NOT_FOUND, f"Booking {booking_number} not found")
    return booking


@booking_router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(booking_id: str, user_id: UserIdDep):
    return BookingQueries().find_by_id(booking_id, user_id=user_id)


@booking_router.post("/{booking_id}/cancel", response_model=CancelBookingResponse)
def cancel_booking(booking_id: str, body: CancelBookingRequest, user_id: UserIdDep):
    booking, refund = CancelBookingHandler().cancel_booking(
        CancelBooking(booking_id=booking_id, reason=body.reason, user_id=user_id)
    )
    return CancelBookingResponse(
        booking=BookingResponse.model_validate(booking),
        refund=BookingRefundResponse.model_validate(refund),
    )


@booking_router.patch("/{booking_id}/status", response_model=BookingResponse, dependencies=[AdminDep])
def update_booking_status(booking_id: str, body: UpdateBookingStatusRequest):
    command = UpdateBookingStatus(booking_id=booking_id, status=body.status, reason=body.reason)
    return UpdateBookingStatusHandler().update_booking_status(command)


# ---------------------------------------------------------------------------
# Availability Router
# ---------------------------------------------------------------------------
availability_router = APIRouter(prefix="/services", tags=["availability"])


@availability_router.get("/{service_id}/availability", response_model=AvailabilityResponse)
def get_availability(service_id: str, start_date: date, end_date: date) -> AvailabilityResponse:
    days = AvailabilityHandler().get_availability(
        GetAvailability(service_id=service_id, start_date=start_date, end_date=end_date)
    )
    return AvailabilityResponse(
        service_id=service_id,
        days=[
            DayAvailabilityResponse(
                day=day.day,
                slots=list(day.slots),
                booked_slots=list(day.booked_slots),
                blocked_slots=list(day.blocked_slots),
                fully_booked=day.fully_booked,
            )
            for day in days
        ],
    )
