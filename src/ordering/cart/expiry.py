"""Expired cart sweep — command and handler.

Designed to be triggered periodically by an external scheduler (cron, K8s
CronJob) through ``manage.py sweep-carts``. Items go first, then their carts,
both selected by ``expires_at < now`` inside one transaction, so running the
sweep twice is harmless. Checkout pushes a cart's expiry forward before it
starts converting, which keeps an in-flight conversion out of the sweep.
"""

from datetime import datetime

import structlog
from pydantic import BaseModel
from sqlalchemy import delete, select

from ordering.cart.cart import Cart, CartItem
from shared.database import unit_of_work, utc_now

logger = structlog.get_logger(__name__)


class SweepExpiredCarts(BaseModel):
    as_of: datetime | None = None


class SweepExpiredCartsHandler:
    def sweep_expired_carts(self, command: SweepExpiredCarts) -> int:
        as_of = command.as_of or utc_now()

        with unit_of_work() as session:
            expired = select(Cart.id).where(Cart.expires_at < as_of)
            session.execute(
                delete(CartItem).where(CartItem.cart_id.in_(expired)).execution_options(synchronize_session=False)
            )
            result = session.execute(
                delete(Cart).where(Cart.expires_at < as_of).execution_options(synchronize_session=False)
            )
            removed = result.rowcount

        if removed:
            logger.info("Expired carts removed", count=removed, as_of=as_of.isoformat())
        else:
            logger.debug("No expired carts found", as_of=as_of.isoformat())
        return removed
