"""Catalogue port — what the commerce core needs from the product catalogue."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import date
from enum import Enum

from catalogue.models import Product, Service, ServiceAddOn, ServiceBlock


class InventoryOperation(Enum):
    DECREMENT = "decrement"
    INCREMENT = "increment"


class Catalogue(ABC):
    """Read access to products and services plus the stock counter primitive."""

    @abstractmethod
    def get_product(self, product_id: str) -> Product | None: ...

    @abstractmethod
    def get_service(self, service_id: str) -> Service | None: ...

    @abstractmethod
    def get_add_ons(self, service_id: str, add_on_ids: Iterable[str]) -> list[ServiceAddOn]:
        """Return the requested add-ons that belong to ``service_id``."""

    @abstractmethod
    def get_blocks(self, service_id: str, start: date, end: date) -> list[ServiceBlock]: ...

    @abstractmethod
    def check_stock(self, product_id: str, quantity: int) -> bool: ...

    @abstractmethod
    def update_inventory(self, product_id: str, quantity: int, operation: InventoryOperation) -> bool:
        """Apply a stock movement atomically.

        Returns False when a decrement would take the counter below zero, in
        which case nothing changes.
        """
