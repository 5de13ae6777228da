"""Shared BDD fixtures and step definitions for the Payments domain."""

from decimal import Decimal

import pytest
from pytest_bdd import given, parsers, then

from ordering.cart.items import AddToCart, ManageCartItemsHandler
from ordering.cart.management import CartManagementHandler, GetOrCreateCart
from ordering.order.creation import CheckoutHandler, CreateOrderFromCart
from ordering.order.queries import OrderQueries
from payments.payment.initiation import CreatePayment, PaymentInitiationHandler
from payments.payment.payment import PaymentMethod
from payments.payment.queries import PaymentQueries


# ---------------------------------------------------------------------------
# Scalar fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Container for the error a When step captured."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.parse("an order for ${total} awaiting payment"), target_fixture="order")
def _(make_product, make_address, total):
    product = make_product(price="100.00", stock=10)
    cart = CartManagementHandler().get_or_create(GetOrCreateCart(user_id="user-001"))
    ManageCartItemsHandler().add_to_cart(AddToCart(cart_id=cart.id, product_id=product.id, quantity=2))
    address = make_address(state="OR")
    order = CheckoutHandler().create_order_from_cart(
        CreateOrderFromCart(
            user_id="user-001",
            cart_id=cart.id,
            shipping_address_id=address.id,
            billing_address_id=address.id,
        )
    )
    assert order.total_amount == Decimal(total)
    return order


@given("its payment is created", target_fixture="payment")
def _(order):
    return PaymentInitiationHandler().create_payment(
        CreatePayment(order_id=order.id, method=PaymentMethod.CREDIT_CARD)
    )


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.parse('the payment is "{status}"'))
def _(payment, status):
    assert PaymentQueries().find_by_id(payment.id).status == status


@then(parsers.parse('the failure reason is "{reason}"'))
def _(payment, reason):
    assert PaymentQueries().find_by_id(payment.id).failure_reason == reason


@then("no failure reason is recorded")
def _(payment):
    assert PaymentQueries().find_by_id(payment.id).failure_reason is None


@then(parsers.re(r"the payment has been retried (?P<count>\d+) times?"))
def _(payment, count):
    assert PaymentQueries().find_by_id(payment.id).retry_count == int(count)


@then(parsers.parse('the order is "{status}"'))
def _(order, status):
    assert OrderQueries().find_by_id(order.id).status == status
