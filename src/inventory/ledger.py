"""Inventory ledger — stock reservation for checkout and release on cancellation.

A reservation is a guarded decrement of the product's stock counter: it
either takes the full quantity or changes nothing. Products that do not
track inventory are always available and their movements are no-ops.
"""

from abc import ABC, abstractmethod

import structlog
from sqlalchemy.orm import Session

from catalogue.port import Catalogue, InventoryOperation
from catalogue.sql_adapter import SqlCatalogue
from shared.errors import ConflictError, ErrorCode, NotFoundError

logger = structlog.get_logger(__name__)


class StockLedger(ABC):
    @abstractmethod
    def check_available(self, product_id: str, quantity: int) -> bool: ...

    @abstractmethod
    def reserve(self, product_id: str, quantity: int) -> None:
        """Take ``quantity`` units out of stock or raise INSUFFICIENT_STOCK."""

    @abstractmethod
    def release(self, product_id: str, quantity: int) -> None:
        """Put ``quantity`` previously reserved units back into stock."""


class SqlStockLedger(StockLedger):
    def __init__(self, session: Session, catalogue: Catalogue | None = None):
        self._catalogue = catalogue or SqlCatalogue(session)

    def _tracked_product(self, product_id: str):
        product = self._catalogue.get_product(product_id)
        if product is None:
            raise NotFoundError(ErrorCode.PRODUCT_NOT_FOUND, f"Product {product_id} not found")
        return product if product.track_inventory else None

    def check_available(self, product_id: str, quantity: int) -> bool:
        return self._catalogue.check_stock(product_id, quantity)

    def reserve(self, product_id: str, quantity: int) -> None:
        product = self._tracked_product(product_id)
        if product is None:
            return

        if not self._catalogue.update_inventory(product_id, quantity, InventoryOperation.DECREMENT):
            logger.warning("Stock reservation rejected", product_id=product_id, requested=quantity)
            raise ConflictError(
                ErrorCode.INSUFFICIENT_STOCK,
                f"Insufficient stock for {product.name}: {quantity} requested",
                {"product_id": product_id, "requested": quantity},
            )
        logger.debug("Stock reserved", product_id=product_id, quantity=quantity)

    def release(self, product_id: str, quantity: int) -> None:
        product = self._tracked_product(product_id)
        if product is None:
            return

        self._catalogue.update_inventory(product_id, quantity, InventoryOperation.INCREMENT)
        logger.debug("Stock released", product_id=product_id, quantity=quantity)
