"""Notification trigger points.

Workflows fire a trigger once their unit of work has committed. A trigger is
a structured ``Notification triggered`` event on this module's logger, with
the trigger name under ``trigger`` and the workflow's identifiers beside it.
Delivery (email, SMS) lives outside this codebase and consumes these events
from the log stream.
"""

from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class Trigger(Enum):
    ORDER_PLACED = "order.placed"
    ORDER_STATUS_CHANGED = "order.status_changed"
    ORDER_CANCELLED = "order.cancelled"
    BOOKING_CREATED = "booking.created"
    BOOKING_STATUS_CHANGED = "booking.status_changed"
    BOOKING_CANCELLED = "booking.cancelled"
    PAYMENT_COMPLETED = "payment.completed"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_REQUIRES_ACTION = "payment.requires_action"
    PAYMENT_REFUNDED = "payment.refunded"


def fire(trigger: Trigger, **payload: Any) -> None:
    logger.info("Notification triggered", trigger=trigger.value, **payload)
