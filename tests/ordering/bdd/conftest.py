"""Shared BDD fixtures and step definitions for the Ordering domain."""

from decimal import Decimal

import pytest
from pytest_bdd import given, parsers, then

from catalogue.models import Product
from ordering.cart.items import AddToCart, ManageCartItemsHandler
from ordering.cart.management import CartManagementHandler, GetOrCreateCart
from ordering.order.queries import OrderQueries
from shared.database import unit_of_work

_AMOUNT_FIELDS = {
    "subtotal": "subtotal",
    "tax": "tax_amount",
    "shipping": "shipping_amount",
    "discount": "discount_amount",
    "total": "total_amount",
}


# ---------------------------------------------------------------------------
# Scalar fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def user_id():
    return "user-001"


@pytest.fixture()
def error():
    """Container for the error a When step captured."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.parse("a product priced at {price} with {stock:d} in stock"), target_fixture="product")
def _(make_product, price, stock):
    return make_product(price=price, stock=stock)


@given(parsers.parse("the customer's cart holds {quantity:d} of the product"), target_fixture="cart")
def _(user_id, product, quantity):
    cart = CartManagementHandler().get_or_create(GetOrCreateCart(user_id=user_id))
    return ManageCartItemsHandler().add_to_cart(AddToCart(cart_id=cart.id, product_id=product.id, quantity=quantity))


@given(parsers.parse('the customer ships to "{state}"'), target_fixture="address")
def _(make_address, user_id, state):
    return make_address(user_id=user_id, state=state)


@given("the product sells out elsewhere")
def _(product):
    with unit_of_work() as session:
        session.get(Product, product.id).stock_quantity = 0


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.parse("the order {field} is {amount}"))
def _(order, field, amount):
    assert getattr(order, _AMOUNT_FIELDS[field]) == Decimal(amount)


@then(parsers.parse('the order is "{status}"'))
def _(order, status):
    assert order.status == status


@then(parsers.parse("{count:d} units of the product remain in stock"))
def _(product, count):
    with unit_of_work() as session:
        assert session.get(Product, product.id).stock_quantity == count


@then(parsers.parse('checkout is rejected with "{code}"'))
def _(error, code):
    assert error["exc"] is not None
    assert error["exc"].code.value == code


@then("no order exists for the customer")
def _(user_id):
    assert OrderQueries().find_by_user(user_id).total == 0
