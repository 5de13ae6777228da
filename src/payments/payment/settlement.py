"""What a settled payment does to the thing it paid for."""

import structlog
from sqlalchemy.orm import Session

from booking.booking import Booking, BookingStatus
from ordering.order.order import Order, OrderStatus
from payments.payment.payment import Payment

logger = structlog.get_logger(__name__)


def confirm_paid_target(session: Session, payment: Payment) -> str | None:
    """Move the paid order or booking from PENDING to CONFIRMED.

    Returns the id of the confirmed target, or None when it had already
    moved on (confirmed by hand, cancelled, ...).
    """
    if payment.order_id is not None:
        target = session.get(Order, payment.order_id)
        pending = target is not None and target.current_status == OrderStatus.PENDING
        if pending:
            target.transition_to(OrderStatus.CONFIRMED)
    else:
        target = session.get(Booking, payment.booking_id)
        pending = target is not None and target.current_status == BookingStatus.PENDING
        if pending:
            target.transition_to(BookingStatus.CONFIRMED)

    if not pending:
        logger.info("Paid target not pending, left unchanged", payment_id=payment.id)
        return None
    return target.id
