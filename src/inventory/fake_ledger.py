"""In-memory stock ledger for tests.

It does not take part in database transactions, so any workflow using it
must undo its own reservations on failure.
"""

from inventory.ledger import StockLedger
from shared.errors import ConflictError, ErrorCode, NotFoundError


class InMemoryStockLedger(StockLedger):
    def __init__(self, stock: dict[str, int] | None = None, untracked: set[str] | None = None):
        self.stock = dict(stock or {})
        self.untracked = set(untracked or ())
        self.calls: list[tuple[str, str, int]] = []

    def _ensure_known(self, product_id: str) -> None:
        if product_id not in self.stock and product_id not in self.untracked:
            raise NotFoundError(ErrorCode.PRODUCT_NOT_FOUND, f"Product {product_id} not found")

    def check_available(self, product_id: str, quantity: int) -> bool:
        if product_id in self.untracked:
            return True
        return self.stock.get(product_id, 0) >= quantity

    def reserve(self, product_id: str, quantity: int) -> None:
        self._ensure_known(product_id)
        self.calls.append(("reserve", product_id, quantity))
        if product_id in self.untracked:
            return
        if self.stock[product_id] < quantity:
            raise ConflictError(
                ErrorCode.INSUFFICIENT_STOCK,
                f"Insufficient stock: {self.stock[product_id]} available, {quantity} requested",
                {"product_id": product_id, "requested": quantity},
            )
        self.stock[product_id] -= quantity

    def release(self, product_id: str, quantity: int) -> None:
        self._ensure_known(product_id)
        self.calls.append(("release", product_id, quantity))
        if product_id in self.untracked:
            return
        self.stock[product_id] += quantity
