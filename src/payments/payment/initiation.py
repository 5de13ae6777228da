"""Payment initiation — command and handler.

Creates the single PENDING payment for an order or a booking. The amount
defaults to the target's total.
"""

from decimal import Decimal

import structlog
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.exc import IntegrityError

from booking.booking import Booking
from ordering.order.order import Order
from payments.gateway import get_gateway
from payments.payment.payment import Payment, PaymentMethod, PaymentProvider
from payments.payment.queries import find_payment_for_target
from shared.config import get_settings
from shared.database import unit_of_work
from shared.errors import ConflictError, ErrorCode, NotFoundError, ValidationFailed

logger = structlog.get_logger(__name__)


class BillingAddress(BaseModel):
    street_address: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=1, max_length=100)
    postal_code: str = Field(min_length=1, max_length=20)
    country: str = Field(default="US", min_length=2, max_length=2)


class CreatePayment(BaseModel):
    """Create the payment for an order or a booking."""

    order_id: str | None = None
    booking_id: str | None = None
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    method: PaymentMethod
    provider: PaymentProvider = PaymentProvider.STRIPE
    billing_address: BillingAddress | None = None
    metadata: dict = Field(default_factory=dict)

    @model_validator(mode="after")
    def _exactly_one_target(self):
        if (self.order_id is None) == (self.booking_id is None):
            raise ValidationFailed(
                ErrorCode.INVALID_PAYMENT_TARGET,
                "Provide exactly one of order_id or booking_id",
            )
        return self


class PaymentInitiationHandler:
    def create_payment(self, command: CreatePayment) -> Payment:
        # Fails fast for providers this deployment has no adapter for
        get_gateway(command.provider.value)

        with unit_of_work() as session:
            if command.order_id is not None:
                target = session.get(Order, command.order_id)
                if target is None:
                    raise NotFoundError(ErrorCode.ORDER_NOT_FOUND, f"Order {command.order_id} not found")
            else:
                target = session.get(Booking, command.booking_id)
                if target is None:
                    raise NotFoundError(ErrorCode.BOOKING_NOT_FOUND, f"Booking {command.booking_id} not found")

            if find_payment_for_target(session, order_id=command.order_id, booking_id=command.booking_id):
                raise _already_exists(command)

            payment = Payment.create(
                amount=command.amount if command.amount is not None else target.total_amount,
                method=command.method,
                provider=command.provider,
                order_id=command.order_id,
                booking_id=command.booking_id,
                currency=command.currency or getattr(target, "currency", None) or get_settings().default_currency,
                billing_address=command.billing_address.model_dump() if command.billing_address else None,
                metadata=command.metadata,
            )
            try:
                with session.begin_nested():
                    session.add(payment)
            except IntegrityError as exc:
                raise _already_exists(command) from exc

        logger.info(
            "Payment created",
            payment_id=payment.id,
            order_id=payment.order_id,
            booking_id=payment.booking_id,
            amount=str(payment.amount),
            provider=payment.provider,
        )
        return payment


def _already_exists(command: CreatePayment) -> ConflictError:
    target = {"order_id": command.order_id} if command.order_id else {"booking_id": command.booking_id}
    return ConflictError(ErrorCode.PAYMENT_ALREADY_EXISTS, "A payment already exists for this target", target)
