"""Booking lookups."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from booking.booking import Booking, BookingStatus
from shared.database import unit_of_work
from shared.errors import ErrorCode, NotFoundError
from shared.pagination import DEFAULT_PAGE_SIZE, Page, paginate


def get_booking(session: Session, booking_id: str) -> Booking:
    booking = session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError(ErrorCode.BOOKING_NOT_FOUND, f"Booking {booking_id} not found")
    return booking


class BookingQueries:
    def find_by_id(self, booking_id: str, user_id: str | None = None) -> Booking:
        with unit_of_work() as session:
            booking = get_booking(session, booking_id)
            if user_id is not None and booking.user_id != user_id:
                raise NotFoundError(ErrorCode.BOOKING_NOT_FOUND, f"Booking {booking_id} not found")
            return booking

    def find_by_number(self, booking_number: str) -> Booking:
        with unit_of_work() as session:
            booking = session.scalars(select(Booking).where(Booking.booking_number == booking_number)).first()
            if booking is None:
                raise NotFoundError(ErrorCode.BOOKING_NOT_FOUND, f"Booking {booking_number} not found")
            return booking

    def find_by_user(
        self,
        user_id: str,
        status: BookingStatus | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Page[Booking]:
        statement = select(Booking).where(Booking.user_id == user_id)
        if status is not None:
            statement = statement.where(Booking.status == status.value)
        statement = statement.order_by(Booking.scheduled_date.desc(), Booking.scheduled_hour.desc())

        with unit_of_work() as session:
            return paginate(session, statement, page, limit)
