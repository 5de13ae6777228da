"""Shopping cart aggregate.

A cart belongs to exactly one owner: a signed-in user or an anonymous
session. Lines reference either a product or a service, never both, and a
given product or service appears on at most one line per cart; adding it
again increases that line's quantity. Every mutation refreshes the cached
subtotal and pushes the expiry out by the cart TTL.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from catalogue.models import Product, Service
from ordering.order.pricing import (
    DEFAULT_TAX_RATE,
    ZERO,
    PricedLine,
    ShippingMethod,
    shipping_cost_for,
)
from shared.database import Base, as_utc, new_id, to_money, utc_now
from shared.errors import ConflictError, ErrorCode, NotFoundError, ValidationFailed

DEFAULT_CART_TTL_DAYS = 30
MAX_ITEM_QUANTITY = 100


@dataclass(frozen=True)
class CartSummary:
    item_count: int
    subtotal: Decimal
    estimated_tax: Decimal
    estimated_shipping: Decimal
    estimated_total: Decimal


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        CheckConstraint("(product_id IS NULL) <> (service_id IS NULL)", name="one_reference"),
        CheckConstraint("quantity BETWEEN 1 AND 100", name="quantity_range"),
        UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        UniqueConstraint("cart_id", "service_id", name="uq_cart_items_cart_service"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    cart_id: Mapped[str] = mapped_column(ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id: Mapped[str | None] = mapped_column(ForeignKey("products.id"))
    service_id: Mapped[str | None] = mapped_column(ForeignKey("services.id"))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    cart: Mapped["Cart"] = relationship(back_populates="items")
    product: Mapped[Product | None] = relationship(lazy="joined")
    service: Mapped[Service | None] = relationship(lazy="joined")

    @property
    def unit_price(self) -> Decimal:
        if self.product is not None:
            return self.product.price
        return self.service.base_price

    @property
    def is_product(self) -> bool:
        return self.product_id is not None or self.product is not None

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)

    @property
    def name(self) -> str:
        return self.product.name if self.product is not None else self.service.name


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (CheckConstraint("(user_id IS NULL) <> (session_id IS NULL)", name="one_owner"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str | None] = mapped_column(String(36), unique=True)
    session_id: Mapped[str | None] = mapped_column(String(128), unique=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    items: Mapped[list[CartItem]] = relationship(
        back_populates="cart",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by=CartItem.added_at,
    )

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        user_id: str | None = None,
        session_id: str | None = None,
        ttl_days: int = DEFAULT_CART_TTL_DAYS,
        now: datetime | None = None,
    ) -> "Cart":
        if not user_id and not session_id:
            raise ValidationFailed(
                ErrorCode.USER_ID_OR_SESSION_ID_REQUIRED,
                "A cart needs either a user id or a session id",
            )
        now = now or utc_now()
        return cls(
            id=new_id(),
            user_id=user_id or None,
            session_id=None if user_id else session_id,
            subtotal=ZERO,
            expires_at=now + timedelta(days=ttl_days),
            created_at=now,
            updated_at=now,
            items=[],
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def product_lines(self) -> list[CartItem]:
        return [item for item in self.items if item.is_product]

    @property
    def service_lines(self) -> list[CartItem]:
        return [item for item in self.items if not item.is_product]

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def is_expired(self, now: datetime | None = None) -> bool:
        return as_utc(self.expires_at) < (now or utc_now())

    def owned_by(self, user_id: str | None) -> bool:
        return user_id is not None and self.user_id == user_id

    def get_item(self, item_id: str) -> CartItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise NotFoundError(ErrorCode.CART_ITEM_NOT_FOUND, f"Item {item_id} is not in cart {self.id}")

    def _line_for(self, product: Product | None = None, service: Service | None = None) -> CartItem | None:
        for item in self.items:
            if product is not None and item.product is product:
                return item
            if service is not None and item.service is service:
                return item
        return None

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def touch(self, ttl_days: int = DEFAULT_CART_TTL_DAYS, now: datetime | None = None) -> None:
        now = now or utc_now()
        self.expires_at = now + timedelta(days=ttl_days)
        self.updated_at = now

    def add_product(self, product: Product, quantity: int) -> CartItem:
        _check_quantity(quantity)
        if not product.is_active:
            raise ValidationFailed(
                ErrorCode.PRODUCT_NOT_AVAILABLE,
                f"{product.name} is not available for purchase",
                {"product_id": product.id},
            )

        line = self._line_for(product=product)
        new_quantity = quantity + (line.quantity if line else 0)
        _check_quantity(new_quantity)
        _check_stock(product, new_quantity)

        if line is None:
            line = CartItem(
                id=new_id(), product=product, product_id=product.id, quantity=new_quantity, added_at=utc_now()
            )
            self.items.append(line)
        else:
            line.quantity = new_quantity

        self.recalculate_subtotal()
        return line

    def add_service(self, service: Service, quantity: int = 1) -> CartItem:
        _check_quantity(quantity)
        if not service.is_active:
            raise ValidationFailed(
                ErrorCode.SERVICE_NOT_AVAILABLE,
                f"{service.name} is not currently offered",
                {"service_id": service.id},
            )

        line = self._line_for(service=service)
        new_quantity = quantity + (line.quantity if line else 0)
        _check_quantity(new_quantity)

        if line is None:
            line = CartItem(
                id=new_id(), service=service, service_id=service.id, quantity=new_quantity, added_at=utc_now()
            )
            self.items.append(line)
        else:
            line.quantity = new_quantity

        self.recalculate_subtotal()
        return line

    def update_item_quantity(self, item_id: str, quantity: int) -> CartItem | None:
        """Set a line's quantity. Zero removes the line and returns None."""
        item = self.get_item(item_id)
        if quantity == 0:
            self.remove_item(item_id)
            return None

        _check_quantity(quantity)
        if item.product is not None:
            _check_stock(item.product, quantity)
        item.quantity = quantity
        self.recalculate_subtotal()
        return item

    def remove_item(self, item_id: str) -> None:
        self.items.remove(self.get_item(item_id))
        self.recalculate_subtotal()

    def remove_product_lines(self) -> None:
        for item in self.product_lines:
            self.items.remove(item)
        self.recalculate_subtotal()

    def clear(self) -> None:
        self.items.clear()
        self.recalculate_subtotal()

    def absorb(self, other: "Cart") -> None:
        """Move every line of ``other`` into this cart, summing duplicate quantities."""
        for incoming in list(other.items):
            line = self._line_for(product=incoming.product, service=incoming.service)
            if line is None:
                self.items.append(
                    CartItem(
                        id=new_id(),
                        product=incoming.product,
                        product_id=incoming.product_id,
                        service=incoming.service,
                        service_id=incoming.service_id,
                        quantity=min(incoming.quantity, MAX_ITEM_QUANTITY),
                        added_at=incoming.added_at or utc_now(),
                    )
                )
            else:
                line.quantity = min(line.quantity + incoming.quantity, MAX_ITEM_QUANTITY)
        self.recalculate_subtotal()

    def assign_to_user(self, user_id: str) -> None:
        self.user_id = user_id
        self.session_id = None

    def recalculate_subtotal(self) -> Decimal:
        self.subtotal = to_money(sum((item.line_total for item in self.items), ZERO))
        return self.subtotal

    def summary(self) -> CartSummary:
        """Pre-checkout estimate: default tax rate and standard shipping."""
        subtotal = self.recalculate_subtotal()
        goods = [
            PricedLine(unit_price=item.unit_price, quantity=item.quantity, category=item.product.category)
            for item in self.product_lines
        ]
        shipping = shipping_cost_for(goods, ShippingMethod.STANDARD) if goods else ZERO
        tax = to_money(subtotal * DEFAULT_TAX_RATE)
        return CartSummary(
            item_count=self.item_count,
            subtotal=subtotal,
            estimated_tax=tax,
            estimated_shipping=shipping,
            estimated_total=to_money(subtotal + tax + shipping),
        )


def _check_quantity(quantity: int) -> None:
    if not 1 <= quantity <= MAX_ITEM_QUANTITY:
        raise ValidationFailed(
            ErrorCode.VALIDATION_ERROR,
            f"Quantity must be between 1 and {MAX_ITEM_QUANTITY}",
            {"quantity": [f"{quantity} is out of range"]},
        )


def _check_stock(product: Product, quantity: int) -> None:
    if not product.has_stock_for(quantity):
        raise ConflictError(
            ErrorCode.INSUFFICIENT_STOCK,
            f"Insufficient stock for {product.name}: {product.stock_quantity} available, {quantity} requested",
            {"product_id": product.id, "available": product.stock_quantity, "requested": quantity},
        )


def get_cart(session: Session, cart_id: str) -> Cart:
    cart = session.get(Cart, cart_id)
    if cart is None:
        raise NotFoundError(ErrorCode.CART_NOT_FOUND, f"Cart {cart_id} not found")
    return cart


def find_cart_for_owner(session: Session, user_id: str | None = None, session_id: str | None = None) -> Cart | None:
    if user_id:
        return session.scalars(select(Cart).where(Cart.user_id == user_id)).first()
    if session_id:
        return session.scalars(select(Cart).where(Cart.session_id == session_id)).first()
    return None
