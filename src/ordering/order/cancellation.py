"""Order cancellation — command and handler.

Cancelling gives every reserved unit back to the inventory ledger. The
status flip is guarded in the database, so of two concurrent cancellations
only one gets to restore stock.
"""

from collections.abc import Callable

import structlog
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from inventory.ledger import SqlStockLedger, StockLedger
from notifications.triggers import Trigger, fire
from ordering.order.order import Order, OrderStatus
from ordering.order.queries import get_order
from shared.database import unit_of_work
from shared.errors import AccessDenied, ErrorCode, NotFoundError, StateError
from shared.status import compare_and_set_status

logger = structlog.get_logger(__name__)


class CancelOrder(BaseModel):
    order_id: str
    reason: str = Field(min_length=1, max_length=500)
    user_id: str | None = None


class CancelOrderHandler:
    def __init__(self, ledger_factory: Callable[[Session], StockLedger] = SqlStockLedger):
        self._ledger_factory = ledger_factory

    def cancel_order(self, command: CancelOrder) -> tuple[Order, dict]:
        with unit_of_work() as session:
            order = get_order(session, command.order_id)
            if command.user_id is not None and order.user_id != command.user_id:
                raise AccessDenied(ErrorCode.ACCESS_DENIED, "Order belongs to another customer")

            order.assert_cancellable()
            claim_cancellation(session, order)
            refund_info = order.cancel(command.reason)
            restore_inventory(self._ledger_factory(session), order)

        logger.info("Order cancelled", order_id=order.id, reason=command.reason, refund=str(refund_info["amount"]))
        fire(
            Trigger.ORDER_CANCELLED,
            order_id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            refund_amount=str(refund_info["amount"]),
        )
        return order, refund_info


def claim_cancellation(session: Session, order: Order) -> None:
    """Flip the stored status to CANCELLED, failing if someone else moved it first."""
    if not compare_and_set_status(session, Order, order.id, {order.current_status}, OrderStatus.CANCELLED):
        raise StateError(
            ErrorCode.ORDER_NOT_CANCELLABLE,
            f"Order {order.order_number} changed status while being cancelled",
            {"order_id": order.id},
        )


def restore_inventory(ledger: StockLedger, order: Order) -> None:
    for item in order.items:
        try:
            ledger.release(item.product_id, item.quantity)
        except NotFoundError:
            logger.warning("Cannot restock a product that no longer exists", product_id=item.product_id)
