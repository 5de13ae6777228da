"""Tests for cart get-or-create, item management, merging and the expiry sweep."""

from datetime import timedelta

import pytest

from ordering.cart.cart import Cart
from ordering.cart.expiry import SweepExpiredCarts, SweepExpiredCartsHandler
from ordering.cart.items import AddToCart, ManageCartItemsHandler, RemoveFromCart, UpdateCartItem
from ordering.cart.management import (
    CartManagementHandler,
    ClearCart,
    ConvertToUserCart,
    GetCartSummary,
    GetOrCreateCart,
    MergeCarts,
)
from shared.database import unit_of_work, utc_now
from shared.errors import ConflictError, ErrorCode, NotFoundError, ValidationFailed


def _cart(user_id=None, session_id=None):
    return CartManagementHandler().get_or_create(GetOrCreateCart(user_id=user_id, session_id=session_id))


def _add(cart_id, product=None, service=None, quantity=1):
    return ManageCartItemsHandler().add_to_cart(
        AddToCart(
            cart_id=cart_id,
            product_id=product.id if product else None,
            service_id=service.id if service else None,
            quantity=quantity,
        )
    )


class TestGetOrCreateCart:
    def test_creates_user_cart(self):
        cart = _cart(user_id="user-001")
        assert cart.user_id == "user-001"
        assert cart.session_id is None
        assert cart.items == []

    def test_returns_existing_cart(self):
        first = _cart(user_id="user-001")
        second = _cart(user_id="user-001")
        assert first.id == second.id

    def test_guest_cart_by_session(self):
        cart = _cart(session_id="sess-abc")
        assert cart.session_id == "sess-abc"
        assert _cart(session_id="sess-abc").id == cart.id

    def test_user_id_wins_over_session_id(self):
        cart = _cart(user_id="user-001", session_id="sess-abc")
        assert cart.user_id == "user-001"
        assert cart.session_id is None

    def test_owner_required(self):
        with pytest.raises(ValidationFailed) as exc:
            _cart()
        assert exc.value.code == ErrorCode.USER_ID_OR_SESSION_ID_REQUIRED


class TestCartItems:
    def test_add_product(self, make_product):
        product = make_product(price="25.00", stock=5)
        cart = _add(_cart(user_id="user-001").id, product=product, quantity=2)

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 2
        assert str(cart.subtotal) == "50.00"

    def test_adding_again_increases_quantity(self, make_product):
        product = make_product(stock=5)
        cart_id = _cart(user_id="user-001").id
        _add(cart_id, product=product, quantity=2)
        cart = _add(cart_id, product=product, quantity=1)

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 3

    def test_add_beyond_stock_is_rejected(self, make_product):
        product = make_product(stock=2)
        cart_id = _cart(user_id="user-001").id

        with pytest.raises(ConflictError) as exc:
            _add(cart_id, product=product, quantity=3)
        assert exc.value.code == ErrorCode.INSUFFICIENT_STOCK
        assert CartManagementHandler().get(cart_id).items == []

    def test_add_service(self, make_service):
        service = make_service(base_price="150.00")
        cart = _add(_cart(user_id="user-001").id, service=service)
        assert cart.items[0].service_id == service.id
        assert str(cart.subtotal) == "150.00"

    def test_unknown_product(self):
        with pytest.raises(NotFoundError) as exc:
            ManageCartItemsHandler().add_to_cart(
                AddToCart(cart_id=_cart(user_id="user-001").id, product_id="missing")
            )
        assert exc.value.code == ErrorCode.PRODUCT_NOT_FOUND

    def test_item_must_reference_exactly_one_thing(self):
        with pytest.raises(ValidationFailed) as exc:
            AddToCart(cart_id="cart-1", product_id="p", service_id="s")
        assert exc.value.code == ErrorCode.INVALID_CART_ITEM

    def test_unknown_cart(self, make_product):
        with pytest.raises(NotFoundError) as exc:
            _add("missing-cart", product=make_product())
        assert exc.value.code == ErrorCode.CART_NOT_FOUND

    def test_update_quantity(self, make_product):
        product = make_product(price="10.00", stock=10)
        cart = _add(_cart(user_id="user-001").id, product=product)

        cart = ManageCartItemsHandler().update_cart_item(
            UpdateCartItem(cart_id=cart.id, item_id=cart.items[0].id, quantity=4)
        )
        assert cart.items[0].quantity == 4
        assert str(cart.subtotal) == "40.00"

    def test_update_to_zero_removes_line(self, make_product):
        cart = _add(_cart(user_id="user-001").id, product=make_product())
        cart = ManageCartItemsHandler().update_cart_item(
            UpdateCartItem(cart_id=cart.id, item_id=cart.items[0].id, quantity=0)
        )
        assert cart.items == []

    def test_remove_item(self, make_product):
        cart = _add(_cart(user_id="user-001").id, product=make_product())
        cart = ManageCartItemsHandler().remove_from_cart(RemoveFromCart(cart_id=cart.id, item_id=cart.items[0].id))
        assert cart.items == []
        assert str(cart.subtotal) == "0.00"

    def test_remove_unknown_item(self, make_product):
        cart = _add(_cart(user_id="user-001").id, product=make_product())
        with pytest.raises(NotFoundError) as exc:
            ManageCartItemsHandler().remove_from_cart(RemoveFromCart(cart_id=cart.id, item_id="nope"))
        assert exc.value.code == ErrorCode.CART_ITEM_NOT_FOUND

    def test_clear(self, make_product, make_service):
        cart_id = _cart(user_id="user-001").id
        _add(cart_id, product=make_product())
        _add(cart_id, service=make_service())

        cart = CartManagementHandler().clear(ClearCart(cart_id=cart_id))
        assert cart.items == []

    def test_summary(self, make_product):
        cart = _add(_cart(user_id="user-001").id, product=make_product(price="100.00"), quantity=2)
        summary = CartManagementHandler().summary(GetCartSummary(cart_id=cart.id))

        assert summary.item_count == 2
        assert str(summary.subtotal) == "200.00"
        assert str(summary.estimated_tax) == "10.00"
        assert str(summary.estimated_shipping) == "10.00"
        assert str(summary.estimated_total) == "220.00"


class TestMergingCarts:
    def test_merge_sums_duplicate_lines(self, make_product):
        shared_product = make_product(stock=20)
        guest_only = make_product(stock=20)
        user_cart = _cart(user_id="user-001")
        guest_cart = _cart(session_id="sess-abc")
        _add(user_cart.id, product=shared_product, quantity=2)
        _add(guest_cart.id, product=shared_product, quantity=3)
        _add(guest_cart.id, product=guest_only, quantity=1)

        merged = CartManagementHandler().merge(MergeCarts(user_cart_id=user_cart.id, guest_cart_id=guest_cart.id))

        quantities = {item.product_id: item.quantity for item in merged.items}
        assert quantities == {shared_product.id: 5, guest_only.id: 1}
        with pytest.raises(NotFoundError):
            CartManagementHandler().get(guest_cart.id)

    def test_merging_a_cart_into_itself_is_a_no_op(self, make_product):
        cart = _add(_cart(user_id="user-001").id, product=make_product(), quantity=2)
        merged = CartManagementHandler().merge(MergeCarts(user_cart_id=cart.id, guest_cart_id=cart.id))
        assert merged.items[0].quantity == 2

    def test_convert_guest_cart_without_user_cart(self, make_product):
        guest_cart = _add(_cart(session_id="sess-abc").id, product=make_product())

        cart = CartManagementHandler().convert_to_user(ConvertToUserCart(cart_id=guest_cart.id, user_id="user-001"))

        assert cart.id == guest_cart.id
        assert cart.user_id == "user-001"
        assert cart.session_id is None

    def test_convert_guest_cart_into_existing_user_cart(self, make_product):
        product = make_product(stock=20)
        user_cart = _add(_cart(user_id="user-001").id, product=product, quantity=1)
        guest_cart = _add(_cart(session_id="sess-abc").id, product=product, quantity=2)

        cart = CartManagementHandler().convert_to_user(ConvertToUserCart(cart_id=guest_cart.id, user_id="user-001"))

        assert cart.id == user_cart.id
        assert cart.items[0].quantity == 3


class TestExpirySweep:
    def test_removes_only_expired_carts(self, make_product):
        stale = _add(_cart(user_id="user-001").id, product=make_product())
        fresh = _cart(user_id="user-002")
        with unit_of_work() as session:
            session.get(Cart, stale.id).expires_at = utc_now() - timedelta(days=1)

        removed = SweepExpiredCartsHandler().sweep_expired_carts(SweepExpiredCarts())

        assert removed == 1
        with pytest.raises(NotFoundError):
            CartManagementHandler().get(stale.id)
        assert CartManagementHandler().get(fresh.id).id == fresh.id

    def test_sweeping_twice_is_harmless(self):
        _cart(user_id="user-001")
        as_of = utc_now() + timedelta(days=60)

        assert SweepExpiredCartsHandler().sweep_expired_carts(SweepExpiredCarts(as_of=as_of)) == 1
        assert SweepExpiredCartsHandler().sweep_expired_carts(SweepExpiredCarts(as_of=as_of)) == 0
