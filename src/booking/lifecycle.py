"""Booking lifecycle — confirmation, check-in, completion and no-shows."""

import structlog
from pydantic import BaseModel

from booking.booking import Booking, BookingStatus
from booking.cancellation import CancelBooking, CancelBookingHandler
from booking.queries import get_booking
from notifications.triggers import Trigger, fire
from shared.database import unit_of_work

logger = structlog.get_logger(__name__)


class UpdateBookingStatus(BaseModel):
    booking_id: str
    status: BookingStatus
    reason: str | None = None


class UpdateBookingStatusHandler:
    def update_booking_status(self, command: UpdateBookingStatus) -> Booking:
        if command.status == BookingStatus.CANCELLED:
            # Cancelling is never a bare status flip: refund rules apply.
            booking, _ = CancelBookingHandler().cancel_booking(
                CancelBooking(
                    booking_id=command.booking_id,
                    reason=command.reason or "Cancelled by staff",
                    admin_override=True,
                )
            )
            return booking

        with unit_of_work() as session:
            booking = get_booking(session, command.booking_id)
            previous = booking.current_status
            booking.transition_to(command.status)

        logger.info(
            "Booking status changed",
            booking_id=booking.id,
            from_status=previous.value,
            to_status=booking.status,
        )
        fire(
            Trigger.BOOKING_STATUS_CHANGED,
            booking_id=booking.id,
            booking_number=booking.booking_number,
            from_status=previous.value,
            to_status=booking.status,
        )
        return booking
