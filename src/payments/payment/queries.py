"""Payment lookups."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from payments.payment.payment import Payment
from shared.database import unit_of_work
from shared.errors import ErrorCode, NotFoundError, ValidationFailed


def get_payment(session: Session, payment_id: str) -> Payment:
    payment = session.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError(ErrorCode.PAYMENT_NOT_FOUND, f"Payment {payment_id} not found")
    return payment


def find_payment_for_target(session: Session, order_id: str | None = None, booking_id: str | None = None):
    if order_id is not None:
        return session.scalars(select(Payment).where(Payment.order_id == order_id)).first()
    return session.scalars(select(Payment).where(Payment.booking_id == booking_id)).first()


class PaymentQueries:
    def find_by_id(self, payment_id: str) -> Payment:
        with unit_of_work() as session:
            return get_payment(session, payment_id)

    def find_by_target(self, order_id: str | None = None, booking_id: str | None = None) -> Payment:
        if (order_id is None) == (booking_id is None):
            raise ValidationFailed(ErrorCode.INVALID_PAYMENT_TARGET, "Look up by exactly one of order or booking")

        with unit_of_work() as session:
            payment = find_payment_for_target(session, order_id=order_id, booking_id=booking_id)
            if payment is None:
                target = f"order {order_id}" if order_id else f"booking {booking_id}"
                raise NotFoundError(ErrorCode.PAYMENT_NOT_FOUND, f"No payment for {target}")
            return payment
