"""Payment aggregate — settles exactly one order or one booking.

A payment is created once per target and walks a small lifecycle. Failure
details are only ever cleared by an explicit retry, which also bumps
``retry_count``; everything else is append-only in effect.

State Machine:
    PENDING → PROCESSING → COMPLETED → REFUNDED
    PROCESSING → FAILED → PENDING (explicit retry)

A charge that needs customer authentication stays in PROCESSING with
``requires_action`` set until a provider webhook resolves it.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from payments.gateway.port import ChargeResult, ChargeStatus, WebhookEvent, WebhookEventType
from shared.database import Base, new_id, to_money, utc_now
from shared.errors import ErrorCode, StateError, ValidationFailed
from shared.status import StatusMachine


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PaymentStatus(Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(Enum):
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    PAYPAL = "PAYPAL"
    APPLE_PAY = "APPLE_PAY"
    GOOGLE_PAY = "GOOGLE_PAY"
    BANK_TRANSFER = "BANK_TRANSFER"


class PaymentProvider(Enum):
    STRIPE = "STRIPE"
    PAYPAL = "PAYPAL"
    MANUAL = "MANUAL"


PAYMENT_STATUS_MACHINE = StatusMachine(
    "payment",
    {
        PaymentStatus.PENDING: {PaymentStatus.PROCESSING},
        PaymentStatus.PROCESSING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
        PaymentStatus.FAILED: {PaymentStatus.PENDING},  # retry
        PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
        PaymentStatus.REFUNDED: set(),  # Terminal
    },
    initial=PaymentStatus.PENDING,
)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint(
            "(order_id IS NOT NULL AND booking_id IS NULL) OR (order_id IS NULL AND booking_id IS NOT NULL)",
            name="one_target",
        ),
        CheckConstraint("amount > 0", name="amount_positive"),
        CheckConstraint("refunded_amount >= 0 AND refunded_amount <= amount", name="refund_within_amount"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str | None] = mapped_column(ForeignKey("orders.id"), unique=True)
    booking_id: Mapped[str | None] = mapped_column(ForeignKey("bookings.id"), unique=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    provider_transaction_id: Mapped[str | None] = mapped_column(String(255), index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    requires_action: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    action_url: Mapped[str | None] = mapped_column(String(1000))
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    refunded_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    # Set while a refund is out at the provider; at most one at a time
    refund_in_progress: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    billing_address: Mapped[dict | None] = mapped_column(JSON)
    # "metadata" is reserved on declarative classes
    provider_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        amount: Decimal,
        method: PaymentMethod,
        provider: PaymentProvider,
        order_id: str | None = None,
        booking_id: str | None = None,
        currency: str = "USD",
        billing_address: dict | None = None,
        metadata: dict | None = None,
    ) -> "Payment":
        if (order_id is None) == (booking_id is None):
            raise ValidationFailed(
                ErrorCode.INVALID_PAYMENT_TARGET,
                "A payment must reference exactly one order or booking",
            )
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationFailed(
                ErrorCode.VALIDATION_ERROR,
                "Payment amount must be positive",
                {"amount": ["must be greater than 0"]},
            )

        now = utc_now()
        return cls(
            id=new_id(),
            order_id=order_id,
            booking_id=booking_id,
            amount=amount,
            currency=currency.upper(),
            method=method.value,
            provider=provider.value,
            status=PaymentStatus.PENDING.value,
            requires_action=False,
            retry_count=0,
            refunded_amount=Decimal("0.00"),
            refund_in_progress=False,
            billing_address=dict(billing_address) if billing_address else None,
            provider_metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> PaymentStatus:
        return PaymentStatus(self.status)

    @property
    def refundable_amount(self) -> Decimal:
        return to_money(self.amount - self.refunded_amount)

    @property
    def next_action(self) -> dict | None:
        if not self.requires_action:
            return None
        return {"type": "redirect_to_url", "url": self.action_url}

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def _transition_to(self, target: PaymentStatus) -> None:
        PAYMENT_STATUS_MACHINE.assert_transition(self.current_status, target)
        self.status = target.value
        self.updated_at = utc_now()

    def assert_processable(self) -> None:
        if self.current_status == PaymentStatus.COMPLETED:
            raise StateError(ErrorCode.PAYMENT_ALREADY_COMPLETED, f"Payment {self.id} has already been completed")
        PAYMENT_STATUS_MACHINE.assert_transition(self.current_status, PaymentStatus.PROCESSING)

    def start_processing(self, billing_address: dict | None = None) -> None:
        self.assert_processable()
        self._transition_to(PaymentStatus.PROCESSING)
        if billing_address:
            self.billing_address = dict(billing_address)

    def record_charge(self, result: ChargeResult) -> None:
        """Land a PROCESSING payment on the outcome the provider reported."""
        if result.transaction_id:
            self.provider_transaction_id = result.transaction_id
        if result.raw:
            self.provider_metadata = {**(self.provider_metadata or {}), "provider_response": dict(result.raw)}

        if result.status == ChargeStatus.SUCCEEDED:
            self.mark_completed()
        elif result.status == ChargeStatus.FAILED:
            self.mark_failed(result.failure_reason or "Payment failed")
        elif result.status == ChargeStatus.REQUIRES_ACTION:
            self.requires_action = True
            self.action_url = result.action_url
            self.updated_at = utc_now()

    def mark_completed(self) -> None:
        self._transition_to(PaymentStatus.COMPLETED)
        self.processed_at = self.updated_at
        self.requires_action = False
        self.action_url = None

    def mark_failed(self, reason: str) -> None:
        self._transition_to(PaymentStatus.FAILED)
        self.failed_at = self.updated_at
        self.failure_reason = reason
        self.requires_action = False
        self.action_url = None

    def reset_for_retry(self) -> None:
        if self.current_status != PaymentStatus.FAILED:
            raise StateError(
                ErrorCode.PAYMENT_NOT_FAILED,
                f"Only failed payments can be retried, payment is {self.status}",
                {"status": self.status},
            )
        self._transition_to(PaymentStatus.PENDING)
        self.failure_reason = None
        self.failed_at = None
        self.retry_count += 1

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    def validate_refund(self, amount: Decimal | None = None) -> Decimal:
        """Return the amount to refund, defaulting to everything still refundable."""
        if self.current_status != PaymentStatus.COMPLETED:
            raise StateError(
                ErrorCode.PAYMENT_NOT_COMPLETED,
                f"Only completed payments can be refunded, payment is {self.status}",
                {"status": self.status},
            )

        amount = self.refundable_amount if amount is None else to_money(amount)
        if amount <= 0 or amount > self.refundable_amount:
            raise ValidationFailed(
                ErrorCode.INVALID_REFUND_AMOUNT,
                f"Refund amount must be between 0.01 and {self.refundable_amount}",
                {
                    "requested": str(amount),
                    "amount": str(self.amount),
                    "already_refunded": str(self.refunded_amount),
                },
            )
        return amount

    def apply_refund(self, amount: Decimal) -> None:
        amount = self.validate_refund(amount)
        self.record_refunded_total(self.refunded_amount + amount)

    def record_refunded_total(self, total: Decimal) -> bool:
        """Raise ``refunded_amount`` to ``total``.

        Refund totals only grow, so a total at or below what is already
        recorded is a no-op and returns False. Reaching the full amount
        marks the payment REFUNDED.
        """
        total = to_money(total)
        if total <= self.refunded_amount:
            return False
        if self.current_status != PaymentStatus.COMPLETED:
            raise StateError(
                ErrorCode.PAYMENT_NOT_COMPLETED,
                f"Only completed payments can be refunded, payment is {self.status}",
                {"status": self.status},
            )
        if total > self.amount:
            raise ValidationFailed(
                ErrorCode.INVALID_REFUND_AMOUNT,
                f"Refunded total {total} exceeds the payment amount {self.amount}",
                {"requested": str(total), "amount": str(self.amount)},
            )

        self.refunded_amount = total
        self.updated_at = utc_now()
        if self.refundable_amount == 0:
            self._transition_to(PaymentStatus.REFUNDED)
            self.refunded_at = self.updated_at
        return True

    # -------------------------------------------------------------------
    # Provider notifications
    # -------------------------------------------------------------------
    def apply_webhook_event(self, event: WebhookEvent) -> bool:
        """Apply a provider event; False when it was already applied or does not fit."""
        status = self.current_status
        if event.event_type == WebhookEventType.PAYMENT_SUCCEEDED and status == PaymentStatus.PROCESSING:
            self.mark_completed()
            return True
        if event.event_type == WebhookEventType.PAYMENT_FAILED and status == PaymentStatus.PROCESSING:
            self.mark_failed(event.failure_reason or "Payment failed")
            return True
        if event.event_type == WebhookEventType.REFUND_SUCCEEDED and status == PaymentStatus.COMPLETED:
            if event.refunded_amount is None:
                return self.record_refunded_total(self.amount)
            return self.record_refunded_total(min(to_money(event.refunded_amount), self.amount))
        return False
