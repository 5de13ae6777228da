"""Pydantic request/response schemas for the Payments API.

These are external contracts (anti-corruption layer) — separate from the
internal commands.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from payments.payment.initiation import BillingAddress
from payments.payment.payment import PaymentMethod, PaymentProvider


# ---------------------------------------------------------------------------
# Payment Request Schemas
# ---------------------------------------------------------------------------
class CreatePaymentRequest(BaseModel):
    order_id: str | None = None
    booking_id: str | None = None
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    method: PaymentMethod
    provider: PaymentProvider = PaymentProvider.STRIPE
    billing_address: BillingAddress | None = None
    metadata: dict = Field(default_factory=dict)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "order_id": "ord-001",
                    "method": "CREDIT_CARD",
                    "provider": "STRIPE",
                }
            ]
        }
    }


class ProcessPaymentRequest(BaseModel):
    provider_token: str = Field(min_length=1, max_length=255)
    billing_address: BillingAddress | None = None


class RefundPaymentRequest(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    reason: str = Field(default="requested_by_customer", min_length=1, max_length=500)


class ConfigureGatewayRequest(BaseModel):
    provider: PaymentProvider = PaymentProvider.STRIPE
    should_succeed: bool = True
    failure_reason: str = "Your card was declined."


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class PaymentResponse(BaseModel):
    id: str
    order_id: str | None
    booking_id: str | None
    amount: Decimal
    currency: str
    method: str
    provider: str
    provider_transaction_id: str | None
    status: str
    requires_action: bool
    next_action: dict | None
    retry_count: int
    failure_reason: str | None
    refunded_amount: Decimal
    created_at: datetime
    processed_at: datetime | None
    failed_at: datetime | None
    refunded_at: datetime | None

    model_config = {"from_attributes": True}


class RefundResponse(BaseModel):
    refund_id: str | None
    status: str | None
    amount: Decimal
    reason: str
    expected_completion: date
    payment: PaymentResponse


class WebhookResponse(BaseModel):
    status: str
    event_type: str
    payment_id: str | None = None


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
