"""Payment gateway port (abstract interface).

Defines the contract that all payment provider adapters must implement.
This enables swapping between FakeGateway (dev/test) and StripeGateway
(production) without changing any workflow code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from shared.errors import ErrorCode, ExternalServiceError


class ChargeStatus(Enum):
    SUCCEEDED = "succeeded"
    REQUIRES_ACTION = "requires_action"
    PENDING = "pending"
    FAILED = "failed"


class WebhookEventType(Enum):
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"
    REFUND_SUCCEEDED = "refund.succeeded"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class ChargeResult:
    """Result of a payment charge attempt."""

    status: ChargeStatus
    transaction_id: str | None = None
    action_url: str | None = None
    failure_reason: str | None = None
    raw: dict = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == ChargeStatus.SUCCEEDED

    @property
    def requires_action(self) -> bool:
        return self.status == ChargeStatus.REQUIRES_ACTION


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    refund_id: str | None = None
    status: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class WebhookEvent:
    """A provider notification, normalized to what reconciliation needs."""

    event_type: WebhookEventType
    transaction_id: str | None = None
    failure_reason: str | None = None
    provider_event_id: str | None = None
    # Cumulative amount refunded on the charge, when the provider reports it
    refunded_amount: Decimal | None = None


class GatewayError(ExternalServiceError):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(ErrorCode.PROVIDER_ERROR, message, details)


class GatewayTimeout(GatewayError):
    pass


class PaymentGateway(ABC):
    """Abstract payment gateway interface.

    ``charge`` reports declines through ``ChargeResult``; it raises
    :class:`GatewayError` (or :class:`GatewayTimeout`) only when the provider
    could not give an answer at all.
    """

    @abstractmethod
    def charge(
        self,
        amount: Decimal,
        currency: str,
        token: str,
        metadata: dict,
        idempotency_key: str,
    ) -> ChargeResult:
        """Charge the payment method identified by ``token``."""
        ...

    @abstractmethod
    def refund(
        self,
        transaction_id: str,
        amount: Decimal,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        """Refund (part of) a previous charge."""
        ...

    @abstractmethod
    def parse_webhook(self, payload: str | bytes, signature: str) -> WebhookEvent:
        """Verify a webhook's signature and normalize its event.

        Raises ``AccessDenied(INVALID_WEBHOOK_SIGNATURE)`` when the payload
        cannot be authenticated.
        """
        ...
