"""Payment retry — command and handler.

Only a FAILED payment can be retried. The retry clears the failure details,
bumps ``retry_count`` and puts the payment back to PENDING, then processes
it with the new token exactly like a first attempt.
"""

import structlog
from pydantic import BaseModel, Field

from payments.payment.initiation import BillingAddress
from payments.payment.processing import PaymentResult, ProcessPayment, ProcessPaymentHandler
from payments.payment.queries import get_payment
from shared.database import unit_of_work

logger = structlog.get_logger(__name__)


class RetryPayment(BaseModel):
    payment_id: str
    provider_token: str = Field(min_length=1, max_length=255)
    billing_address: BillingAddress | None = None


class RetryPaymentHandler:
    def __init__(self, processor: ProcessPaymentHandler | None = None):
        self._processor = processor or ProcessPaymentHandler()

    def retry_payment(self, command: RetryPayment) -> PaymentResult:
        with unit_of_work() as session:
            payment = get_payment(session, command.payment_id)
            payment.reset_for_retry()

        logger.info("Payment retry initiated", payment_id=payment.id, retry_count=payment.retry_count)
        return self._processor.process_payment(
            ProcessPayment(
                payment_id=command.payment_id,
                provider_token=command.provider_token,
                billing_address=command.billing_address,
            )
        )
