"""Tests for customer cancellation and back-office status updates."""

from decimal import Decimal

import pytest

from catalogue.models import Product
from notifications.triggers import Trigger
from ordering.cart.items import AddToCart, ManageCartItemsHandler
from ordering.cart.management import CartManagementHandler, GetOrCreateCart
from ordering.order.cancellation import CancelOrder, CancelOrderHandler
from ordering.order.creation import CheckoutHandler, CreateOrderFromCart
from ordering.order.fulfillment import UpdateOrderStatus, UpdateOrderStatusHandler
from ordering.order.order import OrderStatus
from ordering.order.queries import OrderQueries
from shared.database import unit_of_work
from shared.errors import AccessDenied, ErrorCode, NotFoundError, StateError, ValidationFailed


def _stock(product_id):
    with unit_of_work() as session:
        return session.get(Product, product_id).stock_quantity


@pytest.fixture()
def place_order(make_product, make_address):
    def _place(quantity=2, stock=10, user_id="user-001"):
        product = make_product(price="100.00", stock=stock)
        address = make_address(user_id=user_id, state="OR")
        cart = CartManagementHandler().get_or_create(GetOrCreateCart(user_id=user_id))
        ManageCartItemsHandler().add_to_cart(AddToCart(cart_id=cart.id, product_id=product.id, quantity=quantity))
        order = CheckoutHandler().create_order_from_cart(
            CreateOrderFromCart(
                user_id=user_id,
                cart_id=cart.id,
                shipping_address_id=address.id,
                billing_address_id=address.id,
            )
        )
        return order, product

    return _place


def _set_status(order_id, *statuses, tracking_number=None):
    handler = UpdateOrderStatusHandler()
    order = None
    for status in statuses:
        order = handler.update_order_status(
            UpdateOrderStatus(
                order_id=order_id,
                status=status,
                tracking_number=tracking_number if status == OrderStatus.SHIPPED else None,
            )
        )
    return order


class TestCustomerCancellation:
    def test_cancel_restores_stock(self, place_order):
        order, product = place_order(quantity=3, stock=10)
        assert _stock(product.id) == 7

        cancelled, refund = CancelOrderHandler().cancel_order(
            CancelOrder(order_id=order.id, reason="Changed my mind", user_id="user-001")
        )

        assert cancelled.status == OrderStatus.CANCELLED.value
        assert cancelled.cancellation_reason == "Changed my mind"
        assert refund["amount"] == Decimal("325.00")
        assert _stock(product.id) == 10

    def test_cancel_confirmed_order(self, place_order):
        order, _ = place_order()
        _set_status(order.id, OrderStatus.CONFIRMED)

        cancelled, _ = CancelOrderHandler().cancel_order(CancelOrder(order_id=order.id, reason="Duplicate"))
        assert cancelled.status == OrderStatus.CANCELLED.value

    def test_cannot_cancel_once_processing(self, place_order):
        order, product = place_order(quantity=1)
        _set_status(order.id, OrderStatus.CONFIRMED, OrderStatus.PROCESSING)

        with pytest.raises(StateError) as exc:
            CancelOrderHandler().cancel_order(CancelOrder(order_id=order.id, reason="Too late"))

        assert exc.value.code == ErrorCode.ORDER_NOT_CANCELLABLE
        assert _stock(product.id) == 9

    def test_cancelling_twice_restores_stock_once(self, place_order):
        order, product = place_order(quantity=2)
        CancelOrderHandler().cancel_order(CancelOrder(order_id=order.id, reason="First"))

        with pytest.raises(StateError):
            CancelOrderHandler().cancel_order(CancelOrder(order_id=order.id, reason="Second"))
        assert _stock(product.id) == 10

    def test_cannot_cancel_someone_elses_order(self, place_order):
        order, _ = place_order()
        with pytest.raises(AccessDenied):
            CancelOrderHandler().cancel_order(CancelOrder(order_id=order.id, reason="Mine now", user_id="user-002"))

    def test_unknown_order(self):
        with pytest.raises(NotFoundError) as exc:
            CancelOrderHandler().cancel_order(CancelOrder(order_id="missing", reason="?"))
        assert exc.value.code == ErrorCode.ORDER_NOT_FOUND

    def test_fires_order_cancelled(self, place_order, fired):
        order, _ = place_order()
        CancelOrderHandler().cancel_order(CancelOrder(order_id=order.id, reason="Changed my mind"))

        trigger, payload = fired[-1]
        assert trigger == Trigger.ORDER_CANCELLED
        assert payload["refund_amount"] == "220.00"


class TestFulfillment:
    def test_full_happy_path(self, place_order):
        order, _ = place_order()
        order = _set_status(
            order.id,
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            tracking_number="1Z999AA10123456784",
        )

        assert order.status == OrderStatus.DELIVERED.value
        assert order.tracking_number == "1Z999AA10123456784"
        assert order.shipped_at is not None
        assert order.delivered_at is not None

    def test_shipping_without_tracking_number(self, place_order):
        order, _ = place_order()
        _set_status(order.id, OrderStatus.CONFIRMED, OrderStatus.PROCESSING)

        with pytest.raises(ValidationFailed) as exc:
            _set_status(order.id, OrderStatus.SHIPPED)
        assert exc.value.code == ErrorCode.TRACKING_NUMBER_REQUIRED
        assert OrderQueries().find_by_id(order.id).status == OrderStatus.PROCESSING.value

    def test_invalid_transition(self, place_order):
        order, _ = place_order()
        with pytest.raises(StateError) as exc:
            _set_status(order.id, OrderStatus.SHIPPED, tracking_number="1Z")
        assert exc.value.code == ErrorCode.INVALID_STATUS_TRANSITION
        assert exc.value.details["from"] == "PENDING"

    def test_terminal_state_is_final(self, place_order):
        order, _ = place_order()
        _set_status(order.id, OrderStatus.CANCELLED)
        with pytest.raises(StateError):
            _set_status(order.id, OrderStatus.CONFIRMED)

    def test_admin_can_cancel_processing_order_and_restock(self, place_order):
        order, product = place_order(quantity=4)
        _set_status(order.id, OrderStatus.CONFIRMED, OrderStatus.PROCESSING)

        order = _set_status(order.id, OrderStatus.CANCELLED)

        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancellation_reason == "Cancelled by administrator"
        assert _stock(product.id) == 10

    def test_fires_status_changed(self, place_order, fired):
        order, _ = place_order()
        _set_status(order.id, OrderStatus.CONFIRMED)

        trigger, payload = fired[-1]
        assert trigger == Trigger.ORDER_STATUS_CHANGED
        assert (payload["from_status"], payload["to_status"]) == ("PENDING", "CONFIRMED")
