"""Order lookups for customers and back-office staff."""

from datetime import date, datetime, time, timedelta
from decimal import Decimal

from pydantic import BaseModel, Field
from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from ordering.order.order import Order, OrderStatus
from shared.database import unit_of_work
from shared.errors import ErrorCode, NotFoundError
from shared.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, Page, paginate


class OrderFilters(BaseModel):
    status: OrderStatus | None = None
    from_date: date | None = None
    to_date: date | None = None
    min_amount: Decimal | None = Field(default=None, ge=0)
    max_amount: Decimal | None = Field(default=None, ge=0)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)


def get_order(session: Session, order_id: str) -> Order:
    order = session.get(Order, order_id)
    if order is None:
        raise NotFoundError(ErrorCode.ORDER_NOT_FOUND, f"Order {order_id} not found")
    return order


def _apply_filters(statement: Select, filters: OrderFilters) -> Select:
    if filters.status is not None:
        statement = statement.where(Order.status == filters.status.value)
    if filters.from_date is not None:
        statement = statement.where(Order.created_at >= datetime.combine(filters.from_date, time.min))
    if filters.to_date is not None:
        statement = statement.where(Order.created_at < datetime.combine(filters.to_date + timedelta(days=1), time.min))
    if filters.min_amount is not None:
        statement = statement.where(Order.total_amount >= filters.min_amount)
    if filters.max_amount is not None:
        statement = statement.where(Order.total_amount <= filters.max_amount)
    return statement.order_by(Order.created_at.desc(), Order.order_number.desc())


class OrderQueries:
    def find_by_id(self, order_id: str, user_id: str | None = None) -> Order:
        with unit_of_work() as session:
            order = get_order(session, order_id)
            if user_id is not None and order.user_id != user_id:
                # Other customers' orders are reported as missing, not forbidden.
                raise NotFoundError(ErrorCode.ORDER_NOT_FOUND, f"Order {order_id} not found")
            return order

    def find_by_number(self, order_number: str) -> Order:
        with unit_of_work() as session:
            order = session.scalars(select(Order).where(Order.order_number == order_number)).first()
            if order is None:
                raise NotFoundError(ErrorCode.ORDER_NOT_FOUND, f"Order {order_number} not found")
            return order

    def find_by_user(self, user_id: str, filters: OrderFilters | None = None) -> Page[Order]:
        filters = filters or OrderFilters()
        with unit_of_work() as session:
            statement = _apply_filters(select(Order).where(Order.user_id == user_id), filters)
            return paginate(session, statement, filters.page, filters.limit)

    def find_all(self, filters: OrderFilters | None = None) -> Page[Order]:
        filters = filters or OrderFilters()
        with unit_of_work() as session:
            return paginate(session, _apply_filters(select(Order), filters), filters.page, filters.limit)
