"""Pydantic request/response schemas for the Ordering API.

These are external contracts (anti-corruption layer) — separate from the
internal commands.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from ordering.cart.cart import MAX_ITEM_QUANTITY
from ordering.order.order import OrderStatus
from ordering.order.pricing import ShippingMethod


# ---------------------------------------------------------------------------
# Cart Schemas
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    product_id: str | None = None
    service_id: str | None = None
    quantity: int = Field(default=1, ge=1, le=MAX_ITEM_QUANTITY)

    model_config = {"json_schema_extra": {"examples": [{"product_id": "prod-001", "quantity": 2}]}}


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(ge=0, le=MAX_ITEM_QUANTITY)


class MergeCartRequest(BaseModel):
    guest_cart_id: str


class CartItemResponse(BaseModel):
    id: str
    product_id: str | None
    service_id: str | None
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    model_config = {"from_attributes": True}


class CartResponse(BaseModel):
    id: str
    user_id: str | None
    session_id: str | None
    subtotal: Decimal
    item_count: int
    expires_at: datetime
    items: list[CartItemResponse]

    model_config = {"from_attributes": True}


class CartSummaryResponse(BaseModel):
    item_count: int
    subtotal: Decimal
    estimated_tax: Decimal
    estimated_shipping: Decimal
    estimated_total: Decimal

    model_config = {"from_attributes": True}


class SweepResponse(BaseModel):
    deleted: int


# ---------------------------------------------------------------------------
# Order Schemas
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    cart_id: str
    shipping_address_id: str
    billing_address_id: str
    shipping_method: ShippingMethod = ShippingMethod.STANDARD
    notes: str | None = Field(default=None, max_length=1000)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "cart_id": "cart-001",
                    "shipping_address_id": "addr-001",
                    "billing_address_id": "addr-001",
                    "shipping_method": "standard",
                }
            ]
        }
    }


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus
    tracking_number: str | None = Field(default=None, max_length=100)
    reason: str | None = Field(default=None, max_length=500)


class CancelOrderRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class OrderItemResponse(BaseModel):
    product_id: str
    product_name: str
    product_sku: str
    unit_price: Decimal
    quantity: int
    total_price: Decimal

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: str
    order_number: str
    user_id: str
    status: str
    subtotal: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    shipping_method: str
    shipping_address: dict
    billing_address: dict
    notes: str | None
    tracking_number: str | None
    cancellation_reason: str | None
    created_at: datetime
    shipped_at: datetime | None
    delivered_at: datetime | None
    cancelled_at: datetime | None
    items: list[OrderItemResponse]

    model_config = {"from_attributes": True}


class RefundInfoResponse(BaseModel):
    amount: Decimal
    processing_time: str
    refund_method: str


class CancelOrderResponse(BaseModel):
    order: OrderResponse
    refund: RefundInfoResponse


class CheckoutProblemsResponse(BaseModel):
    valid: bool
    errors: list[dict]
