"""Stripe payment gateway adapter.

Charges are Stripe PaymentIntents created and confirmed in one call with the
customer's payment-method token. Cards that need 3-D Secure come back as
``requires_action`` with a redirect URL; declines come back as
``stripe.CardError`` and are reported as a FAILED charge, not raised.

Webhooks are authenticated with ``stripe.WebhookSignature.verify_header``
against the endpoint secret before the payload is trusted.
"""

import json
from decimal import Decimal

import stripe
import structlog

from payments.gateway.port import (
    ChargeResult,
    ChargeStatus,
    GatewayError,
    GatewayTimeout,
    PaymentGateway,
    RefundResult,
    WebhookEvent,
    WebhookEventType,
)
from shared.errors import AccessDenied, ErrorCode, ValidationFailed

logger = structlog.get_logger(__name__)

DEFAULT_RETURN_URL = "https://motorhub.example.com/payments/return"
DEFAULT_TIMEOUT_SECONDS = 10
DEFAULT_MAX_NETWORK_RETRIES = 2

_INTENT_STATUSES = {
    "succeeded": ChargeStatus.SUCCEEDED,
    "requires_action": ChargeStatus.REQUIRES_ACTION,
    "processing": ChargeStatus.PENDING,
    "requires_payment_method": ChargeStatus.FAILED,
    "canceled": ChargeStatus.FAILED,
}

_EVENT_TYPES = {
    "payment_intent.succeeded": WebhookEventType.PAYMENT_SUCCEEDED,
    "payment_intent.payment_failed": WebhookEventType.PAYMENT_FAILED,
    "charge.refunded": WebhookEventType.REFUND_SUCCEEDED,
}


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


class StripeGateway(PaymentGateway):
    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        return_url: str = DEFAULT_RETURN_URL,
        timeout: int = DEFAULT_TIMEOUT_SECONDS,
        max_network_retries: int = DEFAULT_MAX_NETWORK_RETRIES,
    ) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.return_url = return_url

        # The SDK's HTTP client is process-wide; bound every provider call
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = max_network_retries

    def charge(
        self,
        amount: Decimal,
        currency: str,
        token: str,
        metadata: dict,
        idempotency_key: str,
    ) -> ChargeResult:
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=currency.lower(),
                payment_method=token,
                confirm=True,
                return_url=self.return_url,
                metadata={key: str(value) for key, value in metadata.items()},
                api_key=self.api_key,
                idempotency_key=idempotency_key,
            )
        except stripe.CardError as exc:
            logger.info("Stripe declined charge", code=exc.code, decline_code=getattr(exc, "decline_code", None))
            return ChargeResult(
                status=ChargeStatus.FAILED,
                failure_reason=exc.user_message or str(exc),
                raw={"code": exc.code},
            )
        except stripe.APIConnectionError as exc:
            raise GatewayTimeout("Payment provider did not respond in time") from exc
        except stripe.StripeError as exc:
            logger.error("Stripe charge failed", error=str(exc))
            raise GatewayError(exc.user_message or "Payment provider error") from exc

        status = _INTENT_STATUSES.get(intent.status, ChargeStatus.PENDING)
        action_url = None
        if status == ChargeStatus.REQUIRES_ACTION:
            next_action = getattr(intent, "next_action", None)
            redirect = getattr(next_action, "redirect_to_url", None) if next_action else None
            action_url = getattr(redirect, "url", None) if redirect else None

        failure_reason = None
        if status == ChargeStatus.FAILED:
            last_error = getattr(intent, "last_payment_error", None)
            failure_reason = getattr(last_error, "message", None) or f"Payment {intent.status}"

        return ChargeResult(
            status=status,
            transaction_id=intent.id,
            action_url=action_url,
            failure_reason=failure_reason,
            raw={"status": intent.status},
        )

    def refund(
        self,
        transaction_id: str,
        amount: Decimal,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        try:
            refund = stripe.Refund.create(
                payment_intent=transaction_id,
                amount=to_minor_units(amount),
                metadata={"reason": reason},
                api_key=self.api_key,
                idempotency_key=idempotency_key,
            )
        except stripe.APIConnectionError as exc:
            raise GatewayTimeout("Payment provider did not respond in time") from exc
        except stripe.StripeError as exc:
            logger.error("Stripe refund failed", transaction_id=transaction_id, error=str(exc))
            return RefundResult(success=False, status="failed", failure_reason=exc.user_message or str(exc))

        return RefundResult(
            success=refund.status in ("succeeded", "pending"),
            refund_id=refund.id,
            status=refund.status,
            failure_reason=getattr(refund, "failure_reason", None),
        )

    def parse_webhook(self, payload: str | bytes, signature: str) -> WebhookEvent:
        if not self.webhook_secret or not signature:
            raise AccessDenied(ErrorCode.INVALID_WEBHOOK_SIGNATURE, "Webhook signature verification failed")
        if isinstance(payload, bytes):
            try:
                payload = payload.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise ValidationFailed(ErrorCode.VALIDATION_ERROR, "Malformed webhook payload") from exc
        try:
            stripe.WebhookSignature.verify_header(
                payload, signature, self.webhook_secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
            )
        except stripe.SignatureVerificationError as exc:
            raise AccessDenied(ErrorCode.INVALID_WEBHOOK_SIGNATURE, "Webhook signature verification failed") from exc

        try:
            event = json.loads(payload)
        except ValueError as exc:
            raise ValidationFailed(ErrorCode.VALIDATION_ERROR, "Malformed webhook payload") from exc
        if not isinstance(event, dict):
            raise ValidationFailed(ErrorCode.VALIDATION_ERROR, "Malformed webhook payload")

        event_type = _EVENT_TYPES.get(event.get("type"), WebhookEventType.UNSUPPORTED)
        data = event.get("data", {}).get("object", {})

        refunded_amount = None
        if event_type == WebhookEventType.REFUND_SUCCEEDED:
            transaction_id = data.get("payment_intent")
            if isinstance(data.get("amount_refunded"), int):
                refunded_amount = from_minor_units(data["amount_refunded"])
        else:
            transaction_id = data.get("id")

        failure_reason = None
        if event_type == WebhookEventType.PAYMENT_FAILED:
            failure_reason = (data.get("last_payment_error") or {}).get("message") or "Payment failed"

        return WebhookEvent(
            event_type=event_type,
            transaction_id=transaction_id,
            failure_reason=failure_reason,
            provider_event_id=event.get("id"),
            refunded_amount=refunded_amount,
        )
