"""FastAPI routes for the Ordering domain — carts and orders."""

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Query

from ordering.api.schemas import (
    AddToCartRequest,
    CancelOrderRequest,
    CancelOrderResponse,
    CartResponse,
    CartSummaryResponse,
    CheckoutProblemsResponse,
    CreateOrderRequest,
    MergeCartRequest,
    OrderResponse,
    SweepResponse,
    UpdateCartItemRequest,
    UpdateOrderStatusRequest,
)
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
from ordering.order.cancellation import CancelOrder, CancelOrderHandler
from ordering.order.creation import CheckoutHandler, CreateOrderFromCart, ValidateCartForCheckout
from ordering.order.fulfillment import UpdateOrderStatus, UpdateOrderStatusHandler
from ordering.order.order import OrderStatus
from ordering.order.queries import OrderFilters, OrderQueries
from shared.api import AdminDep, Caller, CallerDep, PageResponse, UserIdDep, page_response
from shared.errors import AccessDenied, ErrorCode, NotFoundError
from shared.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


def _accessible_cart(cart_id: str, caller: Caller) -> Cart:
    cart = CartManagementHandler().get(cart_id)
    if not cart.owned_by(caller.user_id) and not (caller.session_id and cart.session_id == caller.session_id):
        raise AccessDenied(ErrorCode.ACCESS_DENIED, "Cart belongs to another owner", {"cart_id": cart_id})
    return cart


@cart_router.post("", response_model=CartResponse)
def get_or_create_cart(caller: CallerDep) -> Cart:
    """Return the caller's cart, creating it on first access."""
    command = GetOrCreateCart(user_id=caller.user_id, session_id=caller.session_id)
    return CartManagementHandler().get_or_create(command)


@cart_router.post("/sweep", response_model=SweepResponse, dependencies=[AdminDep])
def sweep_expired_carts() -> SweepResponse:
    deleted = SweepExpiredCartsHandler().sweep_expired_carts(SweepExpiredCarts())
    return SweepResponse(deleted=deleted)


@cart_router.get("/{cart_id}", response_model=CartResponse)
def get_cart(cart_id: str, caller: CallerDep) -> Cart:
    return _accessible_cart(cart_id, caller)


@cart_router.get("/{cart_id}/summary", response_model=CartSummaryResponse)
def get_cart_summary(cart_id: str, caller: CallerDep):
    _accessible_cart(cart_id, caller)
    return CartManagementHandler().summary(GetCartSummary(cart_id=cart_id))


@cart_router.post("/{cart_id}/items", status_code=201, response_model=CartResponse)
def add_cart_item(cart_id: str, body: AddToCartRequest, caller: CallerDep) -> Cart:
    _accessible_cart(cart_id, caller)
    command = AddToCart(
        cart_id=cart_id,
        product_id=body.product_id,
        service_id=body.service_id,
        quantity=body.quantity,
    )
    return ManageCartItemsHandler().add_to_cart(command)


@cart_router.patch("/{cart_id}/items/{item_id}", response_model=CartResponse)
def update_cart_item(cart_id: str, item_id: str, body: UpdateCartItemRequest, caller: CallerDep) -> Cart:
    _accessible_cart(cart_id, caller)
    command = UpdateCartItem(cart_id=cart_id, item_id=item_id, quantity=body.quantity)
    return ManageCartItemsHandler().update_cart_item(command)


@cart_router.delete("/{cart_id}/items/{item_id}", response_model=CartResponse)
def remove_cart_item(cart_id: str, item_id: str, caller: CallerDep) -> Cart:
    _accessible_cart(cart_id, caller)
    return ManageCartItemsHandler().remove_from_cart(RemoveFromCart(cart_id=cart_id, item_id=item_id))


@cart_router.delete("/{cart_id}/items", response_model=CartResponse)
def clear_cart(cart_id: str, caller: CallerDep) -> Cart:
    _accessible_cart(cart_id, caller)
    return CartManagementHandler().clear(ClearCart(cart_id=cart_id))


@cart_router.post("/{cart_id}/merge", response_model=CartResponse)
def merge_guest_cart(cart_id: str, body: MergeCartRequest, caller: CallerDep, user_id: UserIdDep) -> Cart:
    """Fold the caller's guest cart into their user cart."""
    _accessible_cart(cart_id, caller)
    _accessible_cart(body.guest_cart_id, caller)
    return CartManagementHandler().merge(MergeCarts(user_cart_id=cart_id, guest_cart_id=body.guest_cart_id))


@cart_router.post("/{cart_id}/convert", response_model=CartResponse)
def convert_to_user_cart(cart_id: str, caller: CallerDep, user_id: UserIdDep) -> Cart:
    """Hand the caller's guest cart over to their account after sign-in."""
    _accessible_cart(cart_id, caller)
    return CartManagementHandler().convert_to_user(ConvertToUserCart(cart_id=cart_id, user_id=user_id))


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


def _filters(
    status: OrderStatus | None,
    from_date: date | None,
    to_date: date | None,
    min_amount: Decimal | None,
    max_amount: Decimal | None,
    page: int,
    limit: int,
) -> OrderFilters:
    return OrderFilters(
        status=status,
        from_date=from_date,
        to_date=to_date,
        min_amount=min_amount,
        max_amount=max_amount,
        page=page,
        limit=limit,
    )


@order_router.post("", status_code=201, response_model=OrderResponse)
def create_order(body: CreateOrderRequest, user_id: UserIdDep):
    """Check out the product lines of a cart."""
    command = CreateOrderFromCart(
        user_id=user_id,
        cart_id=body.cart_id,
        shipping_address_id=body.shipping_address_id,
        billing_address_id=body.billing_address_id,
        shipping_method=body.shipping_method,
        notes=body.notes,
    )
    return CheckoutHandler().create_order_from_cart(command)


@order_router.get("/checkout/{cart_id}", response_model=CheckoutProblemsResponse)
def validate_cart_for_checkout(cart_id: str, user_id: UserIdDep) -> CheckoutProblemsResponse:
    problems = CheckoutHandler().validate_cart(ValidateCartForCheckout(user_id=user_id, cart_id=cart_id))
    return CheckoutProblemsResponse(valid=not problems, errors=problems)


@order_router.get("", response_model=PageResponse[OrderResponse])
def list_my_orders(
    user_id: UserIdDep,
    status: OrderStatus | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
):
    filters = _filters(status, from_date, to_date, min_amount, max_amount, page, limit)
    return page_response(OrderQueries().find_by_user(user_id, filters), OrderResponse)


@order_router.get("/admin", response_model=PageResponse[OrderResponse], dependencies=[AdminDep])
def list_all_orders(
    status: OrderStatus | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
):
    filters = _filters(status, from_date, to_date, min_amount, max_amount, page, limit)
    return page_response(OrderQueries().find_all(filters), OrderResponse)


@order_router.get("/number/{order_number}", response_model=OrderResponse)
def get_order_by_number(order_number: str, user_id: UserIdDep):
    order = OrderQueries().find_by_number(order_number)
    if order.user_id != user_id:
        raise NotFoundError(ErrorCode.ORDER_NOT_FOUND, f"Order {order_number} not found")
    return order


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: str, user_id: UserIdDep):
    return OrderQueries().find_by_id(order_id, user_id=user_id)


@order_router.post("/{order_id}/cancel", response_model=CancelOrderResponse)
def cancel_order(order_id: str, body: CancelOrderRequest, user_id: UserIdDep):
    order, refund = CancelOrderHandler().cancel_order(
        CancelOrder(order_id=order_id, reason=body.reason, user_id=user_id)
    )
    return {"order": OrderResponse.model_validate(order), "refund": refund}


@order_router.patch("/{order_id}/status", response_model=OrderResponse, dependencies=[AdminDep])
def update_order_status(order_id: str, body: UpdateOrderStatusRequest):
    command = UpdateOrderStatus(
        order_id=order_id,
        status=body.status,
        tracking_number=body.tracking_number,
        reason=body.reason,
    )
    return UpdateOrderStatusHandler().update_order_status(command)
