"""Booking cancellation — refund tiers and the administrator override.

Customers can cancel a PENDING or CONFIRMED booking up to 24 hours before
the appointment. The refund depends on how much notice the shop gets:

    more than 48 hours   → 100%
    24 to 48 hours       → 50%
    less than 24 hours   → 0%   (administrator override only)
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import structlog
from pydantic import BaseModel, Field

from booking.booking import Booking, BookingStatus
from booking.queries import get_booking
from notifications.triggers import Trigger, fire
from shared.database import to_money, unit_of_work, utc_now
from shared.errors import AccessDenied, ErrorCode, StateError
from shared.status import compare_and_set_status

logger = structlog.get_logger(__name__)

FULL_REFUND_NOTICE_HOURS = 48
MIN_NOTICE_HOURS = 24
REFUND_PROCESSING_TIME = "3-5 business days"


def refund_percentage(hours_until: float) -> int:
    if hours_until > FULL_REFUND_NOTICE_HOURS:
        return 100
    if hours_until >= MIN_NOTICE_HOURS:
        return 50
    return 0


@dataclass(frozen=True)
class RefundInfo:
    amount: Decimal
    percentage: int
    processing_time: str = REFUND_PROCESSING_TIME


def refund_for(booking: Booking, now: datetime) -> RefundInfo:
    percentage = refund_percentage(booking.hours_until(now))
    return RefundInfo(amount=to_money(booking.total_amount * percentage / 100), percentage=percentage)


class CancelBooking(BaseModel):
    booking_id: str
    reason: str = Field(min_length=1, max_length=500)
    user_id: str | None = None
    admin_override: bool = False


class CancelBookingHandler:
    def cancel_booking(self, command: CancelBooking) -> tuple[Booking, RefundInfo]:
        now = utc_now()

        with unit_of_work() as session:
            booking = get_booking(session, command.booking_id)
            if command.user_id is not None and booking.user_id != command.user_id:
                raise AccessDenied(ErrorCode.ACCESS_DENIED, "Booking belongs to another customer")

            booking.assert_cancellable()
            hours_until = booking.hours_until(now)
            if hours_until <= MIN_NOTICE_HOURS and not command.admin_override:
                raise StateError(
                    ErrorCode.BOOKING_CANNOT_BE_CANCELLED,
                    f"Bookings can only be cancelled more than {MIN_NOTICE_HOURS} hours in advance",
                    {"hours_until": round(hours_until, 1)},
                )

            refund = refund_for(booking, now)
            if not compare_and_set_status(
                session, Booking, booking.id, {booking.current_status}, BookingStatus.CANCELLED
            ):
                raise StateError(
                    ErrorCode.BOOKING_CANNOT_BE_CANCELLED,
                    f"Booking {booking.booking_number} changed status while being cancelled",
                )
            booking.cancel(command.reason, refund.amount)

        logger.info(
            "Booking cancelled",
            booking_id=booking.id,
            refund_amount=str(refund.amount),
            refund_percentage=refund.percentage,
            admin_override=command.admin_override,
        )
        fire(
            Trigger.BOOKING_CANCELLED,
            booking_id=booking.id,
            booking_number=booking.booking_number,
            user_id=booking.user_id,
            refund_amount=str(refund.amount),
        )
        return booking, refund
