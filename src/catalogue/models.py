"""Catalogue records read by the commerce core.

Products are purchasable goods with an optional stock counter; services are
bookable appointments with a weekly schedule. Catalogue maintenance happens
elsewhere, so these classes only carry the fields and checks the carts,
orders and bookings depend on.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.database import Base, new_id, to_money, utc_now
from shared.errors import ErrorCode, ValidationFailed


class ProductStatus(Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DISCONTINUED = "DISCONTINUED"


class ProductCategory(Enum):
    CARS = "CARS"
    ACCESSORIES = "ACCESSORIES"
    PARTS = "PARTS"
    TOOLS = "TOOLS"


class ServiceStatus(Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("stock_quantity >= 0", name="stock_not_negative"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False, default=ProductCategory.PARTS.value)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ProductStatus.ACTIVE.value)
    track_inventory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    @classmethod
    def create(
        cls,
        sku: str,
        name: str,
        price,
        stock_quantity: int = 0,
        category: ProductCategory = ProductCategory.PARTS,
        track_inventory: bool = True,
        status: ProductStatus = ProductStatus.ACTIVE,
    ) -> "Product":
        if stock_quantity < 0:
            raise _invalid("stock_quantity", "Stock cannot be negative")
        return cls(
            id=new_id(),
            sku=sku,
            name=name,
            price=to_money(price),
            stock_quantity=stock_quantity,
            category=category.value,
            track_inventory=track_inventory,
            status=status.value,
            created_at=utc_now(),
        )

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE.value

    def has_stock_for(self, quantity: int) -> bool:
        return not self.track_inventory or self.stock_quantity >= quantity


class Service(Base):
    """A bookable service.

    ``available_days`` holds weekday numbers with 0 meaning Sunday.
    ``available_hours`` holds ``{"start_hour": int, "end_hour": int}`` ranges.
    """

    __tablename__ = "services"
    __table_args__ = (
        CheckConstraint("duration_hours BETWEEN 1 AND 12", name="duration_range"),
        CheckConstraint("max_daily_bookings >= 1", name="daily_limit_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ServiceStatus.ACTIVE.value)
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    duration_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    available_days: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    available_hours: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    max_daily_bookings: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    min_advance_days: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    max_advance_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    add_ons: Mapped[list["ServiceAddOn"]] = relationship(
        back_populates="service", cascade="all, delete-orphan", lazy="selectin"
    )

    @classmethod
    def create(
        cls,
        name: str,
        base_price,
        duration_hours: int = 1,
        available_days: list[int] | None = None,
        available_hours: list[dict] | None = None,
        max_daily_bookings: int = 10,
        min_advance_days: int = 1,
        max_advance_days: int = 30,
        currency: str = "USD",
        status: ServiceStatus = ServiceStatus.ACTIVE,
    ) -> "Service":
        days = sorted(set(available_days if available_days is not None else [1, 2, 3, 4, 5]))
        hours = available_hours if available_hours is not None else [{"start_hour": 9, "end_hour": 17}]

        if not 1 <= duration_hours <= 12:
            raise _invalid("duration_hours", "Duration must be between 1 and 12 hours")
        if any(day not in range(7) for day in days):
            raise _invalid("available_days", "Weekdays run from 0 (Sunday) to 6 (Saturday)")
        if min_advance_days < 0 or max_advance_days < min_advance_days:
            raise _invalid("max_advance_days", "Booking window is empty")
        _validate_hour_ranges(hours)

        return cls(
            id=new_id(),
            name=name,
            base_price=to_money(base_price),
            currency=currency,
            duration_hours=duration_hours,
            available_days=days,
            available_hours=[{"start_hour": r["start_hour"], "end_hour": r["end_hour"]} for r in hours],
            max_daily_bookings=max_daily_bookings,
            min_advance_days=min_advance_days,
            max_advance_days=max_advance_days,
            status=status.value,
            created_at=utc_now(),
            add_ons=[],
        )

    @property
    def is_active(self) -> bool:
        return self.status == ServiceStatus.ACTIVE.value

    def add_add_on(self, name: str, price) -> "ServiceAddOn":
        add_on = ServiceAddOn(id=new_id(), name=name, price=to_money(price))
        self.add_ons.append(add_on)
        return add_on


class ServiceAddOn(Base):
    __tablename__ = "service_add_ons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    service_id: Mapped[str] = mapped_column(ForeignKey("services.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    service: Mapped[Service] = relationship(back_populates="add_ons")


class ServiceBlock(Base):
    """An administrative block: the service takes no bookings in these hours."""

    __tablename__ = "service_blocks"
    __table_args__ = (CheckConstraint("start_hour < end_hour", name="block_hours_ordered"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    service_id: Mapped[str] = mapped_column(ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True)
    blocked_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_hour: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    end_hour: Mapped[int] = mapped_column(Integer, nullable=False, default=24)
    reason: Mapped[str | None] = mapped_column(String(255))


def _validate_hour_ranges(ranges: list[dict]) -> None:
    if not ranges:
        raise _invalid("available_hours", "At least one hour range is required")

    ordered = sorted(ranges, key=lambda r: r["start_hour"])
    for hour_range in ordered:
        if not 0 <= hour_range["start_hour"] < hour_range["end_hour"] <= 24:
            raise _invalid("available_hours", f"Invalid hour range {hour_range}")
    for previous, current in zip(ordered, ordered[1:]):
        if current["start_hour"] < previous["end_hour"]:
            raise _invalid("available_hours", "Hour ranges must not overlap")


def _invalid(field: str, message: str) -> ValidationFailed:
    return ValidationFailed(ErrorCode.VALIDATION_ERROR, message, {field: [message]})
