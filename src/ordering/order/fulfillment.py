"""Order fulfillment — status updates from the back office."""

from collections.abc import Callable

import structlog
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from inventory.ledger import SqlStockLedger, StockLedger
from notifications.triggers import Trigger, fire
from ordering.order.cancellation import claim_cancellation, restore_inventory
from ordering.order.order import ORDER_STATUS_MACHINE, Order, OrderStatus
from ordering.order.queries import get_order
from shared.database import unit_of_work

logger = structlog.get_logger(__name__)


class UpdateOrderStatus(BaseModel):
    order_id: str
    status: OrderStatus
    tracking_number: str | None = Field(default=None, max_length=100)
    reason: str | None = Field(default=None, max_length=500)


class UpdateOrderStatusHandler:
    def __init__(self, ledger_factory: Callable[[Session], StockLedger] = SqlStockLedger):
        self._ledger_factory = ledger_factory

    def update_order_status(self, command: UpdateOrderStatus) -> Order:
        with unit_of_work() as session:
            order = get_order(session, command.order_id)
            previous = order.current_status
            ORDER_STATUS_MACHINE.assert_transition(previous, command.status)

            if command.status == OrderStatus.CANCELLED:
                # Administrative cancellation: allowed wherever the machine allows it.
                claim_cancellation(session, order)
                order.transition_to(OrderStatus.CANCELLED)
                order.cancellation_reason = command.reason or "Cancelled by administrator"
                restore_inventory(self._ledger_factory(session), order)
            else:
                order.transition_to(command.status, tracking_number=command.tracking_number)

        logger.info(
            "Order status changed",
            order_id=order.id,
            from_status=previous.value,
            to_status=order.status,
        )
        fire(
            Trigger.ORDER_STATUS_CHANGED,
            order_id=order.id,
            order_number=order.order_number,
            from_status=previous.value,
            to_status=order.status,
        )
        return order
