"""Payment webhook processing — command and handler.

The provider's adapter authenticates and normalizes the notification; the
payment is then found by (provider, provider transaction id). Deliveries are
at-least-once, so an event for an unknown transaction or one that was
already applied is acknowledged and ignored.
"""

from dataclasses import dataclass

import structlog
from pydantic import BaseModel
from sqlalchemy import select

from notifications.triggers import Trigger, fire
from payments.gateway import get_gateway
from payments.gateway.port import WebhookEventType
from payments.payment.payment import Payment, PaymentProvider
from payments.payment.settlement import confirm_paid_target
from shared.database import unit_of_work

logger = structlog.get_logger(__name__)

_TRIGGERS = {
    WebhookEventType.PAYMENT_SUCCEEDED: Trigger.PAYMENT_COMPLETED,
    WebhookEventType.PAYMENT_FAILED: Trigger.PAYMENT_FAILED,
    WebhookEventType.REFUND_SUCCEEDED: Trigger.PAYMENT_REFUNDED,
}


class HandleWebhook(BaseModel):
    provider: PaymentProvider
    payload: str
    signature: str


@dataclass(frozen=True)
class WebhookOutcome:
    processed: bool
    event_type: str
    payment_id: str | None = None


class WebhookHandler:
    def handle_webhook(self, command: HandleWebhook) -> WebhookOutcome:
        event = get_gateway(command.provider.value).parse_webhook(command.payload, command.signature)

        if event.event_type == WebhookEventType.UNSUPPORTED or not event.transaction_id:
            logger.info("Ignoring webhook event", provider=command.provider.value, event_type=event.event_type.value)
            return WebhookOutcome(processed=False, event_type=event.event_type.value)

        with unit_of_work() as session:
            payment = session.scalars(
                select(Payment).where(
                    Payment.provider == command.provider.value,
                    Payment.provider_transaction_id == event.transaction_id,
                )
            ).first()
            if payment is None:
                logger.warning(
                    "Webhook for unknown transaction",
                    provider=command.provider.value,
                    transaction_id=event.transaction_id,
                )
                return WebhookOutcome(processed=False, event_type=event.event_type.value)

            applied = payment.apply_webhook_event(event)
            if applied and event.event_type == WebhookEventType.PAYMENT_SUCCEEDED:
                confirm_paid_target(session, payment)

        if not applied:
            logger.info("Webhook already applied", payment_id=payment.id, event_type=event.event_type.value)
            return WebhookOutcome(processed=False, event_type=event.event_type.value, payment_id=payment.id)

        logger.info("Webhook applied", payment_id=payment.id, event_type=event.event_type.value, status=payment.status)
        payload = {
            "payment_id": payment.id,
            "order_id": payment.order_id,
            "booking_id": payment.booking_id,
            "amount": str(payment.amount),
        }
        if event.event_type == WebhookEventType.REFUND_SUCCEEDED:
            payload["refunded_amount"] = str(payment.refunded_amount)
        fire(_TRIGGERS[event.event_type], **payload)
        return WebhookOutcome(processed=True, event_type=event.event_type.value, payment_id=payment.id)
