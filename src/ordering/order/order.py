"""Order aggregate.

An order is placed from the product lines of a cart. Item prices, names and
SKUs are frozen at placement time, as are the shipping and billing
addresses, so later catalogue or address changes never rewrite history.

State Machine:
    PENDING → CONFIRMED → PROCESSING → SHIPPED → DELIVERED → REFUNDED
    PENDING / CONFIRMED / PROCESSING → CANCELLED
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ordering.order.pricing import OrderPricing, ShippingMethod
from shared.database import Base, new_id, to_money, utc_now
from shared.errors import ErrorCode, StateError, ValidationFailed
from shared.status import StatusMachine


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


ORDER_STATUS_MACHINE = StatusMachine(
    "order",
    {
        OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
        OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
        OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
        OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
        OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
        OrderStatus.CANCELLED: set(),  # Terminal
        OrderStatus.REFUNDED: set(),  # Terminal
    },
    initial=OrderStatus.PENDING,
)

# Customers may cancel only before the warehouse starts picking.
CANCELLABLE_STATES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})

REFUND_PROCESSING_TIME = "3-5 business days"
REFUND_METHOD = "Original payment method"


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("quantity >= 1", name="quantity_positive"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_sku: Mapped[str] = mapped_column(String(64), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("subtotal >= 0 AND tax_amount >= 0 AND shipping_amount >= 0", name="amounts_positive"),
        CheckConstraint("total_amount >= 0", name="total_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    shipping_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    shipping_method: Mapped[str] = mapped_column(String(20), nullable=False)
    shipping_address: Mapped[dict] = mapped_column(JSON, nullable=False)
    billing_address: Mapped[dict] = mapped_column(JSON, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    tracking_number: Mapped[str | None] = mapped_column(String(100))
    cancellation_reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    items: Mapped[list[OrderItem]] = relationship(
        back_populates="order", cascade="all, delete-orphan", lazy="selectin"
    )

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        order_number: str,
        user_id: str,
        items_data: list[dict],
        pricing: OrderPricing,
        shipping_address: dict,
        billing_address: dict,
        shipping_method: ShippingMethod = ShippingMethod.STANDARD,
        notes: str | None = None,
    ) -> "Order":
        if not items_data:
            raise ValidationFailed(ErrorCode.CART_EMPTY, "An order needs at least one item")

        now = utc_now()
        order = cls(
            id=new_id(),
            order_number=order_number,
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            subtotal=pricing.subtotal,
            tax_amount=pricing.tax,
            shipping_amount=pricing.shipping,
            discount_amount=pricing.discount,
            total_amount=pricing.total,
            shipping_method=shipping_method.value,
            shipping_address=dict(shipping_address),
            billing_address=dict(billing_address),
            notes=notes,
            created_at=now,
            updated_at=now,
            items=[],
        )
        for data in items_data:
            unit_price = to_money(data["unit_price"])
            order.items.append(
                OrderItem(
                    id=new_id(),
                    product_id=data["product_id"],
                    product_name=data["product_name"],
                    product_sku=data["product_sku"],
                    unit_price=unit_price,
                    quantity=data["quantity"],
                    total_price=to_money(unit_price * data["quantity"]),
                )
            )
        return order

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_cancellable(self) -> bool:
        return self.current_status in CANCELLABLE_STATES

    def transition_to(self, target: OrderStatus, tracking_number: str | None = None) -> None:
        ORDER_STATUS_MACHINE.assert_transition(self.current_status, target)
        now = utc_now()

        if target == OrderStatus.SHIPPED:
            if not tracking_number:
                raise ValidationFailed(
                    ErrorCode.TRACKING_NUMBER_REQUIRED,
                    "A tracking number is required to ship an order",
                    {"tracking_number": ["required"]},
                )
            self.tracking_number = tracking_number
            self.shipped_at = now
        elif target == OrderStatus.DELIVERED:
            self.delivered_at = now
        elif target == OrderStatus.CANCELLED:
            self.cancelled_at = now

        self.status = target.value
        self.updated_at = now

    def assert_cancellable(self) -> None:
        if not self.is_cancellable:
            allowed = ", ".join(sorted(status.value for status in CANCELLABLE_STATES))
            raise StateError(
                ErrorCode.ORDER_NOT_CANCELLABLE,
                f"Cannot cancel order in {self.status} state. Cancellation is only allowed from: {allowed}",
                {"status": self.status},
            )

    def cancel(self, reason: str) -> dict:
        """Cancel on the customer's behalf and return the refund details."""
        self.assert_cancellable()
        self.transition_to(OrderStatus.CANCELLED)
        self.cancellation_reason = reason
        return self.refund_info()

    def refund_info(self) -> dict:
        return {
            "amount": self.total_amount,
            "processing_time": REFUND_PROCESSING_TIME,
            "refund_method": REFUND_METHOD,
        }

    def check_totals(self) -> None:
        """Assert the stored money fields are mutually consistent."""
        subtotal = to_money(sum((item.total_price for item in self.items), Decimal("0")))
        total = to_money(self.subtotal + self.tax_amount + self.shipping_amount - self.discount_amount)
        if subtotal != self.subtotal or total != self.total_amount:
            raise ValidationFailed(
                ErrorCode.VALIDATION_ERROR,
                "Order totals are inconsistent",
                {"subtotal": str(self.subtotal), "total": str(self.total_amount)},
            )
