"""Payment processing — command and handler.

Processing runs in three steps so that no database transaction is held open
while the provider is working:

1. Claim: flip PENDING → PROCESSING with a conditional update and commit.
   A second concurrent ``process`` for the same payment loses the claim.
2. Charge: call the provider adapter. A timeout or provider error becomes a
   FAILED outcome carrying the error message.
3. Record: store the outcome (COMPLETED, FAILED, or PROCESSING with a
   required customer action) and confirm the paid order or booking.
"""

from dataclasses import dataclass

import structlog
from pydantic import BaseModel, Field

from notifications.triggers import Trigger, fire
from payments.gateway import get_gateway
from payments.gateway.port import ChargeResult, ChargeStatus, GatewayError, PaymentGateway
from payments.payment.initiation import BillingAddress
from payments.payment.payment import Payment, PaymentStatus
from payments.payment.queries import get_payment
from payments.payment.settlement import confirm_paid_target
from shared.database import unit_of_work
from shared.errors import ErrorCode, StateError
from shared.status import compare_and_set_status

logger = structlog.get_logger(__name__)


class ProcessPayment(BaseModel):
    payment_id: str
    provider_token: str = Field(min_length=1, max_length=255)
    billing_address: BillingAddress | None = None


@dataclass(frozen=True)
class PaymentResult:
    payment: Payment
    requires_action: bool = False
    next_action: dict | None = None

    @property
    def status(self) -> PaymentStatus:
        return self.payment.current_status


class ProcessPaymentHandler:
    def process_payment(self, command: ProcessPayment) -> PaymentResult:
        billing_address = command.billing_address.model_dump() if command.billing_address else None

        with unit_of_work() as session:
            payment = get_payment(session, command.payment_id)
            payment.assert_processable()
            gateway = get_gateway(payment.provider)
            if not compare_and_set_status(
                session, Payment, payment.id, {PaymentStatus.PENDING}, PaymentStatus.PROCESSING
            ):
                raise StateError(
                    ErrorCode.INVALID_STATUS_TRANSITION,
                    f"Payment {payment.id} is already being processed",
                    {"payment_id": payment.id},
                )
            payment.start_processing(billing_address)

        result = self._charge(gateway, payment, command.provider_token)

        with unit_of_work() as session:
            payment = get_payment(session, command.payment_id)
            if payment.current_status != PaymentStatus.PROCESSING:
                # A provider webhook settled the payment while we waited.
                logger.info("Payment settled before charge result was recorded", payment_id=payment.id)
                return PaymentResult(payment=payment)

            payment.record_charge(result)
            if payment.current_status == PaymentStatus.COMPLETED:
                confirm_paid_target(session, payment)

        _announce(payment)
        return PaymentResult(
            payment=payment,
            requires_action=payment.requires_action,
            next_action=payment.next_action,
        )

    def _charge(self, gateway: PaymentGateway, payment: Payment, token: str) -> ChargeResult:
        metadata = {
            "payment_id": payment.id,
            "order_id": payment.order_id or "",
            "booking_id": payment.booking_id or "",
            "retry_count": payment.retry_count,
        }
        try:
            return gateway.charge(
                amount=payment.amount,
                currency=payment.currency,
                token=token,
                metadata=metadata,
                idempotency_key=f"{payment.id}:{payment.retry_count}",
            )
        except GatewayError as exc:
            logger.warning("Payment provider call failed", payment_id=payment.id, error=exc.message)
            return ChargeResult(status=ChargeStatus.FAILED, failure_reason=exc.message)


def _announce(payment: Payment) -> None:
    payload = {
        "payment_id": payment.id,
        "order_id": payment.order_id,
        "booking_id": payment.booking_id,
        "amount": str(payment.amount),
    }
    if payment.current_status == PaymentStatus.COMPLETED:
        logger.info("Payment completed", **payload)
        fire(Trigger.PAYMENT_COMPLETED, **payload)
    elif payment.current_status == PaymentStatus.FAILED:
        logger.info("Payment failed", reason=payment.failure_reason, **payload)
        fire(Trigger.PAYMENT_FAILED, reason=payment.failure_reason, **payload)
    elif payment.requires_action:
        logger.info("Payment requires customer action", **payload)
        fire(Trigger.PAYMENT_REQUIRES_ACTION, action_url=payment.action_url, **payload)
