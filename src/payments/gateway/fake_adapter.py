"""Configurable fake payment gateway for development and testing.

This adapter simulates a real payment gateway without any external calls.
Outcomes are driven by the payment token, the same way Stripe's test mode
uses magic card tokens:

    tok_chargeDeclined   declined with "Your card was declined."
    tok_3ds_required     needs customer authentication (redirect)
    tok_timeout          the provider never answers
    anything else        succeeds

It can also be configured at runtime to fail every charge, which is useful
for manual API testing via /payments/gateway/configure.
"""

import hmac
import json
from decimal import Decimal, InvalidOperation
from uuid import uuid4

from payments.gateway.port import (
    ChargeResult,
    ChargeStatus,
    GatewayTimeout,
    PaymentGateway,
    RefundResult,
    WebhookEvent,
    WebhookEventType,
)
from shared.errors import AccessDenied, ErrorCode, ValidationFailed

DECLINED_TOKEN = "tok_chargeDeclined"
AUTHENTICATION_TOKEN = "tok_3ds_required"
TIMEOUT_TOKEN = "tok_timeout"

DECLINE_MESSAGE = "Your card was declined."


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, webhook_secret: str = "test-signature") -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = DECLINE_MESSAGE
        self.webhook_secret = webhook_secret
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = DECLINE_MESSAGE) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def charge(
        self,
        amount: Decimal,
        currency: str,
        token: str,
        metadata: dict,
        idempotency_key: str,
    ) -> ChargeResult:
        self.calls.append(
            {
                "method": "charge",
                "amount": amount,
                "currency": currency,
                "token": token,
                "metadata": metadata,
                "idempotency_key": idempotency_key,
            }
        )

        if token == TIMEOUT_TOKEN:
            raise GatewayTimeout("Payment provider did not respond in time")

        transaction_id = f"fake_txn_{uuid4().hex[:12]}"
        if token == DECLINED_TOKEN or not self.should_succeed:
            reason = DECLINE_MESSAGE if token == DECLINED_TOKEN else self.failure_reason
            return ChargeResult(
                status=ChargeStatus.FAILED,
                transaction_id=transaction_id,
                failure_reason=reason,
                raw={"decline_code": "card_declined"},
            )
        if token == AUTHENTICATION_TOKEN:
            return ChargeResult(
                status=ChargeStatus.REQUIRES_ACTION,
                transaction_id=transaction_id,
                action_url=f"https://payments.example.test/3ds/{transaction_id}",
                raw={"status": "requires_action"},
            )
        return ChargeResult(
            status=ChargeStatus.SUCCEEDED,
            transaction_id=transaction_id,
            raw={"status": "succeeded"},
        )

    def refund(
        self,
        transaction_id: str,
        amount: Decimal,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        self.calls.append(
            {
                "method": "refund",
                "transaction_id": transaction_id,
                "amount": amount,
                "reason": reason,
                "idempotency_key": idempotency_key,
            }
        )

        if self.should_succeed:
            return RefundResult(success=True, refund_id=f"fake_ref_{uuid4().hex[:12]}", status="succeeded")
        return RefundResult(success=False, status="failed", failure_reason=self.failure_reason)

    def parse_webhook(self, payload: str | bytes, signature: str) -> WebhookEvent:
        if not self.webhook_secret or not hmac.compare_digest((signature or "").encode(), self.webhook_secret.encode()):
            raise AccessDenied(ErrorCode.INVALID_WEBHOOK_SIGNATURE, "Webhook signature verification failed")

        try:
            body = json.loads(payload)
        except ValueError as exc:
            raise ValidationFailed(ErrorCode.VALIDATION_ERROR, "Malformed webhook payload") from exc
        if not isinstance(body, dict):
            raise ValidationFailed(ErrorCode.VALIDATION_ERROR, "Malformed webhook payload")

        try:
            event_type = WebhookEventType(body.get("type"))
        except ValueError:
            event_type = WebhookEventType.UNSUPPORTED

        refunded_amount = None
        if event_type == WebhookEventType.REFUND_SUCCEEDED and body.get("amount") is not None:
            try:
                refunded_amount = Decimal(str(body["amount"]))
            except InvalidOperation as exc:
                raise ValidationFailed(
                    ErrorCode.VALIDATION_ERROR, "Malformed webhook payload", {"amount": ["must be a number"]}
                ) from exc

        return WebhookEvent(
            event_type=event_type,
            transaction_id=body.get("transaction_id"),
            failure_reason=body.get("failure_reason"),
            provider_event_id=body.get("id"),
            refunded_amount=refunded_amount,
        )
