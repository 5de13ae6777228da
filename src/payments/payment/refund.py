"""Payment refund — command and handler.

Refunds run in three steps, like charges:

1. Claim: validate the amount and set ``refund_in_progress`` with a
   conditional update. A second refund for the same payment loses the claim
   until the first one finishes.
2. Refund: call the provider. A rejection releases the claim.
3. Record: raise the refunded total to what it was at claim time plus this
   refund. The provider's refund webhook may already have done so, in which
   case nothing more is recorded.

A refunded total equal to the payment amount marks the payment REFUNDED;
smaller refunds only grow ``refunded_amount``.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field
from sqlalchemy import update
from sqlalchemy.orm import Session

from notifications.triggers import Trigger, fire
from payments.gateway import get_gateway
from payments.gateway.port import GatewayError
from payments.payment.payment import Payment, PaymentProvider, PaymentStatus
from payments.payment.queries import get_payment
from shared.database import unit_of_work, utc_now
from shared.errors import ConflictError, ErrorCode, ExternalServiceError

logger = structlog.get_logger(__name__)

REFUND_COMPLETION_DAYS = {
    PaymentProvider.STRIPE.value: 7,
    PaymentProvider.PAYPAL.value: 5,
}
DEFAULT_REFUND_COMPLETION_DAYS = 7


def expected_completion(provider: str, today: date | None = None) -> date:
    days = REFUND_COMPLETION_DAYS.get(provider, DEFAULT_REFUND_COMPLETION_DAYS)
    return (today or utc_now().date()) + timedelta(days=days)


class RefundPayment(BaseModel):
    payment_id: str
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    reason: str = Field(default="requested_by_customer", min_length=1, max_length=500)


@dataclass(frozen=True)
class RefundOutcome:
    payment: Payment
    refund_id: str
    status: str
    amount: Decimal
    reason: str
    expected_completion: date


class RefundPaymentHandler:
    def refund_payment(self, command: RefundPayment) -> RefundOutcome:
        with unit_of_work() as session:
            payment = get_payment(session, command.payment_id)
            amount = payment.validate_refund(command.amount)
            gateway = get_gateway(payment.provider)
            if not _claim_refund(session, payment.id):
                raise ConflictError(
                    ErrorCode.REFUND_IN_PROGRESS,
                    f"Another refund for payment {payment.id} is still in progress",
                    {"payment_id": payment.id},
                )
            refunded_before = payment.refunded_amount

        try:
            result = gateway.refund(
                transaction_id=payment.provider_transaction_id,
                amount=amount,
                reason=command.reason,
                idempotency_key=f"{payment.id}:refund:{uuid4().hex}",
            )
        except GatewayError as exc:
            _release_claim(payment.id)
            raise ExternalServiceError(ErrorCode.REFUND_FAILED, exc.message, {"payment_id": payment.id}) from exc
        if not result.success:
            _release_claim(payment.id)
            raise ExternalServiceError(
                ErrorCode.REFUND_FAILED,
                result.failure_reason or "Refund was rejected by the payment provider",
                {"payment_id": payment.id},
            )

        with unit_of_work() as session:
            payment = get_payment(session, command.payment_id)
            payment.refund_in_progress = False
            recorded = payment.record_refunded_total(refunded_before + amount)

        logger.info(
            "Payment refunded",
            payment_id=payment.id,
            amount=str(amount),
            refunded_total=str(payment.refunded_amount),
            status=payment.status,
            recorded_by_webhook=not recorded,
        )
        if recorded:
            # Otherwise the provider's webhook already announced it
            fire(
                Trigger.PAYMENT_REFUNDED,
                payment_id=payment.id,
                order_id=payment.order_id,
                booking_id=payment.booking_id,
                amount=str(amount),
            )
        return RefundOutcome(
            payment=payment,
            refund_id=result.refund_id,
            status=result.status,
            amount=amount,
            reason=command.reason,
            expected_completion=expected_completion(payment.provider),
        )


def _claim_refund(session: Session, payment_id: str) -> bool:
    """Mark a COMPLETED payment as having a refund out at the provider.

    False when another refund holds the claim or the payment is no longer
    COMPLETED. Same conditional-update shape as ``compare_and_set_status``.
    """
    result = session.execute(
        update(Payment)
        .where(
            Payment.id == payment_id,
            Payment.status == PaymentStatus.COMPLETED.value,
            Payment.refund_in_progress.is_(False),
        )
        .values(refund_in_progress=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _release_claim(payment_id: str) -> None:
    with unit_of_work() as session:
        get_payment(session, payment_id).refund_in_progress = False
