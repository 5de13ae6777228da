"""SQLAlchemy implementation of the catalogue port."""

from collections.abc import Iterable
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from catalogue.models import Product, Service, ServiceAddOn, ServiceBlock
from catalogue.port import Catalogue, InventoryOperation


class SqlCatalogue(Catalogue):
    def __init__(self, session: Session):
        self._session = session

    def get_product(self, product_id: str) -> Product | None:
        return self._session.get(Product, product_id)

    def get_service(self, service_id: str) -> Service | None:
        return self._session.get(Service, service_id)

    def get_add_ons(self, service_id: str, add_on_ids: Iterable[str]) -> list[ServiceAddOn]:
        ids = list(dict.fromkeys(add_on_ids))
        if not ids:
            return []
        rows = self._session.scalars(
            select(ServiceAddOn).where(ServiceAddOn.service_id == service_id, ServiceAddOn.id.in_(ids))
        ).all()
        by_id = {row.id: row for row in rows}
        return [by_id[add_on_id] for add_on_id in ids if add_on_id in by_id]

    def get_blocks(self, service_id: str, start: date, end: date) -> list[ServiceBlock]:
        return list(
            self._session.scalars(
                select(ServiceBlock).where(
                    ServiceBlock.service_id == service_id,
                    ServiceBlock.blocked_date >= start,
                    ServiceBlock.blocked_date <= end,
                )
            )
        )

    def check_stock(self, product_id: str, quantity: int) -> bool:
        product = self.get_product(product_id)
        return product is not None and product.has_stock_for(quantity)

    def update_inventory(self, product_id: str, quantity: int, operation: InventoryOperation) -> bool:
        statement = update(Product).where(Product.id == product_id)
        if operation == InventoryOperation.DECREMENT:
            statement = statement.where(Product.stock_quantity >= quantity).values(
                stock_quantity=Product.stock_quantity - quantity
            )
        else:
            statement = statement.values(stock_quantity=Product.stock_quantity + quantity)

        result = self._session.execute(statement.execution_options(synchronize_session="fetch"))
        return result.rowcount == 1
