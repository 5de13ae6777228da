"""FastAPI routes for the Payments domain."""

from fastapi import APIRouter, Header, Request
from fastapi.concurrency import run_in_threadpool

from payments.api.schemas import (
    ConfigureGatewayRequest,
    CreatePaymentRequest,
    GatewayConfigResponse,
    PaymentResponse,
    ProcessPaymentRequest,
    RefundPaymentRequest,
    RefundResponse,
    WebhookResponse,
)
from payments.gateway import get_gateway
from payments.gateway.fake_adapter import FakeGateway
from payments.payment.initiation import CreatePayment, PaymentInitiationHandler
from payments.payment.payment import PaymentProvider
from payments.payment.processing import ProcessPayment, ProcessPaymentHandler
from payments.payment.queries import PaymentQueries
from payments.payment.refund import RefundPayment, RefundPaymentHandler
from payments.payment.retry import RetryPayment, RetryPaymentHandler
from payments.payment.webhook import HandleWebhook, WebhookHandler
from shared.api import AdminDep
from shared.config import get_settings
from shared.errors import AccessDenied, ErrorCode, ValidationFailed

# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("", status_code=201, response_model=PaymentResponse)
def create_payment(body: CreatePaymentRequest):
    """Create the payment for an order or a booking."""
    command = CreatePayment(
        order_id=body.order_id,
        booking_id=body.booking_id,
        amount=body.amount,
        currency=body.currency,
        method=body.method,
        provider=body.provider,
        billing_address=body.billing_address,
        metadata=body.metadata,
    )
    return PaymentInitiationHandler().create_payment(command)


@payment_router.post("/webhooks/{provider}", response_model=WebhookResponse)
async def handle_webhook(
    provider: str,
    request: Request,
    stripe_signature: str | None = Header(default=None),
    x_gateway_signature: str | None = Header(default=None),
) -> WebhookResponse:
    """Receive an asynchronous notification from a payment provider."""
    try:
        payment_provider = PaymentProvider(provider.upper())
    except ValueError as exc:
        raise ValidationFailed(ErrorCode.VALIDATION_ERROR, f"Unknown payment provider {provider}") from exc

    try:
        payload = (await request.body()).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValidationFailed(ErrorCode.VALIDATION_ERROR, "Malformed webhook payload") from exc

    # The raw body is only readable from the event loop; the handler blocks on the database
    outcome = await run_in_threadpool(
        WebhookHandler().handle_webhook,
        HandleWebhook(
            provider=payment_provider,
            payload=payload,
            signature=stripe_signature or x_gateway_signature or "",
        ),
    )
    return WebhookResponse(
        status="processed" if outcome.processed else "ignored",
        event_type=outcome.event_type,
        payment_id=outcome.payment_id,
    )


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only).

    It allows toggling success/failure behavior for manual API testing.
    """
    if get_settings().is_production:
        raise AccessDenied(ErrorCode.ACCESS_DENIED, "Gateway configuration not available in production")

    gateway = get_gateway(body.provider.value)
    if not isinstance(gateway, FakeGateway):
        raise ValidationFailed(
            ErrorCode.VALIDATION_ERROR,
            "Gateway configuration only available for FakeGateway",
        )

    gateway.configure(should_succeed=body.should_succeed, failure_reason=body.failure_reason)
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
    )


@payment_router.get("/{payment_id}", response_model=PaymentResponse)
def get_payment(payment_id: str):
    return PaymentQueries().find_by_id(payment_id)


@payment_router.post("/{payment_id}/process", response_model=PaymentResponse)
def process_payment(payment_id: str, body: ProcessPaymentRequest):
    """Charge the payment. A FAILED outcome is returned, not raised."""
    result = ProcessPaymentHandler().process_payment(
        ProcessPayment(
            payment_id=payment_id,
            provider_token=body.provider_token,
            billing_address=body.billing_address,
        )
    )
    return result.payment


@payment_router.post("/{payment_id}/retry", response_model=PaymentResponse)
def retry_payment(payment_id: str, body: ProcessPaymentRequest):
    """Retry a failed payment with a new token."""
    result = RetryPaymentHandler().retry_payment(
        RetryPayment(
            payment_id=payment_id,
            provider_token=body.provider_token,
            billing_address=body.billing_address,
        )
    )
    return result.payment


@payment_router.post("/{payment_id}/refund", response_model=RefundResponse, dependencies=[AdminDep])
def refund_payment(payment_id: str, body: RefundPaymentRequest) -> RefundResponse:
    outcome = RefundPaymentHandler().refund_payment(
        RefundPayment(payment_id=payment_id, amount=body.amount, reason=body.reason)
    )
    return RefundResponse(
        refund_id=outcome.refund_id,
        status=outcome.status,
        amount=outcome.amount,
        reason=outcome.reason,
        expected_completion=outcome.expected_completion,
        payment=PaymentResponse.model_validate(outcome.payment),
    )
