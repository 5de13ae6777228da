"""Checkout — converts the product lines of a cart into an order.

The whole conversion runs in one unit of work:

1. Validate every product line (all problems reported together)
2. Reserve stock for every line through the inventory ledger
3. Snapshot the shipping and billing addresses
4. Price the order (tax by shipping state, shipping by method)
5. Allocate the order number from the daily counter
6. Persist the order and drop the converted lines from the cart

When any step after the first reservation fails, the reservations made so
far are released before the error leaves the handler.
"""

from collections.abc import Callable

import structlog
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from identity.address import resolve_address
from inventory.ledger import SqlStockLedger, StockLedger
from notifications.triggers import Trigger, fire
from ordering.cart.cart import Cart, CartItem, get_cart
from ordering.order.order import Order
from ordering.order.pricing import PricedLine, ShippingMethod, price_order
from shared.config import get_settings
from shared.database import unit_of_work
from shared.errors import AccessDenied, ConflictError, ErrorCode, ValidationFailed
from shared.numbering import next_number

logger = structlog.get_logger(__name__)

LedgerFactory = Callable[[Session], StockLedger]


class CreateOrderFromCart(BaseModel):
    user_id: str
    cart_id: str
    shipping_address_id: str
    billing_address_id: str
    shipping_method: ShippingMethod = ShippingMethod.STANDARD
    notes: str | None = Field(default=None, max_length=1000)


class ValidateCartForCheckout(BaseModel):
    user_id: str
    cart_id: str


class CheckoutHandler:
    def __init__(self, ledger_factory: LedgerFactory = SqlStockLedger):
        self._ledger_factory = ledger_factory

    def validate_cart(self, command: ValidateCartForCheckout) -> list[dict]:
        """Return the problems that would stop this cart from checking out."""
        with unit_of_work() as session:
            cart = _owned_cart(session, command.cart_id, command.user_id)
            if not cart.product_lines:
                return [{"code": ErrorCode.CART_EMPTY.value, "message": "Cart has no purchasable items"}]
            return _line_problems(cart.product_lines, self._ledger_factory(session))

    def create_order_from_cart(self, command: CreateOrderFromCart) -> Order:
        settings = get_settings()

        with unit_of_work() as session:
            cart = _owned_cart(session, command.cart_id, command.user_id)
            # Keep the sweep away from a cart that is being converted.
            cart.touch(settings.cart_ttl_days)
            session.flush()

            lines = cart.product_lines
            if not lines:
                raise ValidationFailed(ErrorCode.CART_EMPTY, "Cart has no purchasable items", {"cart_id": cart.id})

            ledger = self._ledger_factory(session)
            problems = _line_problems(lines, ledger)
            if problems:
                raise ValidationFailed(
                    ErrorCode.CART_VALIDATION_FAILED,
                    "Some items in the cart cannot be purchased",
                    {"errors": problems},
                )

            reserved: list[tuple[str, int]] = []
            try:
                for line in lines:
                    ledger.reserve(line.product_id, line.quantity)
                    reserved.append((line.product_id, line.quantity))

                order = self._place_order(session, command, cart, lines)
            except Exception:
                _release_all(ledger, reserved)
                raise

        logger.info(
            "Order placed",
            order_id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            total=str(order.total_amount),
        )
        fire(
            Trigger.ORDER_PLACED,
            order_id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            total=str(order.total_amount),
        )
        return order

    def _place_order(self, session: Session, command: CreateOrderFromCart, cart: Cart, lines: list[CartItem]) -> Order:
        shipping_address = resolve_address(session, command.shipping_address_id, command.user_id)
        billing_address = resolve_address(session, command.billing_address_id, command.user_id)

        priced_lines = [
            PricedLine(unit_price=line.unit_price, quantity=line.quantity, category=line.product.category)
            for line in lines
        ]
        pricing = price_order(priced_lines, command.shipping_method, shipping_address["state"])

        order = Order.create(
            order_number=next_number(session, "order", get_settings().order_number_prefix),
            user_id=command.user_id,
            items_data=[
                {
                    "product_id": line.product_id,
                    "product_name": line.product.name,
                    "product_sku": line.product.sku,
                    "unit_price": line.unit_price,
                    "quantity": line.quantity,
                }
                for line in lines
            ],
            pricing=pricing,
            shipping_address=shipping_address,
            billing_address=billing_address,
            shipping_method=command.shipping_method,
            notes=command.notes,
        )
        order.check_totals()

        try:
            with session.begin_nested():
                session.add(order)
        except IntegrityError as exc:
            raise ConflictError(
                ErrorCode.NUMBER_COLLISION,
                f"Order number {order.order_number} is already taken",
                {"order_number": order.order_number},
            ) from exc

        cart.remove_product_lines()
        return order


def _owned_cart(session: Session, cart_id: str, user_id: str) -> Cart:
    cart = get_cart(session, cart_id)
    if not cart.owned_by(user_id):
        raise AccessDenied(ErrorCode.ACCESS_DENIED, "Cart belongs to another owner", {"cart_id": cart_id})
    return cart


def _line_problems(lines: list[CartItem], ledger: StockLedger) -> list[dict]:
    problems = []
    for line in lines:
        product = line.product
        if not product.is_active:
            problems.append(
                {
                    "code": ErrorCode.PRODUCT_NOT_AVAILABLE.value,
                    "item_id": line.id,
                    "product_id": product.id,
                    "message": f"{product.name} is no longer available",
                }
            )
        elif not ledger.check_available(product.id, line.quantity):
            problems.append(
                {
                    "code": ErrorCode.INSUFFICIENT_STOCK.value,
                    "item_id": line.id,
                    "product_id": product.id,
                    "message": f"Not enough {product.name} in stock for {line.quantity}",
                }
            )
    return problems


def _release_all(ledger: StockLedger, reserved: list[tuple[str, int]]) -> None:
    for product_id, quantity in reversed(reserved):
        try:
            ledger.release(product_id, quantity)
        except Exception:
            # Database-backed stock is also restored by the rollback that follows.
            logger.exception("Failed to release reserved stock", product_id=product_id, quantity=quantity)
