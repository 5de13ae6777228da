"""Error taxonomy shared by every bounded context.

Each failure carries a stable symbolic ``code`` (from :class:`ErrorCode`) that
callers and the HTTP layer can switch on, a human readable ``message`` and an
optional ``details`` mapping. The exception class encodes the category, and
the category decides the HTTP status.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    USER_ID_OR_SESSION_ID_REQUIRED = "USER_ID_OR_SESSION_ID_REQUIRED"
    INVALID_CART_ITEM = "INVALID_CART_ITEM"
    CART_EMPTY = "CART_EMPTY"
    CART_VALIDATION_FAILED = "CART_VALIDATION_FAILED"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    INVALID_BOOKING_DATE = "INVALID_BOOKING_DATE"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    INVALID_ADD_ON = "INVALID_ADD_ON"
    INVALID_PAYMENT_TARGET = "INVALID_PAYMENT_TARGET"
    INVALID_REFUND_AMOUNT = "INVALID_REFUND_AMOUNT"
    UNSUPPORTED_PAYMENT_PROVIDER = "UNSUPPORTED_PAYMENT_PROVIDER"
    TRACKING_NUMBER_REQUIRED = "TRACKING_NUMBER_REQUIRED"
    PRODUCT_NOT_AVAILABLE = "PRODUCT_NOT_AVAILABLE"
    SERVICE_NOT_AVAILABLE = "SERVICE_NOT_AVAILABLE"

    # Conflict
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    TIME_SLOT_UNAVAILABLE = "TIME_SLOT_UNAVAILABLE"
    NUMBER_COLLISION = "NUMBER_COLLISION"
    PAYMENT_ALREADY_EXISTS = "PAYMENT_ALREADY_EXISTS"
    REFUND_IN_PROGRESS = "REFUND_IN_PROGRESS"

    # State
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    ORDER_NOT_CANCELLABLE = "ORDER_NOT_CANCELLABLE"
    BOOKING_CANNOT_BE_CANCELLED = "BOOKING_CANNOT_BE_CANCELLED"
    PAYMENT_ALREADY_COMPLETED = "PAYMENT_ALREADY_COMPLETED"
    PAYMENT_NOT_FAILED = "PAYMENT_NOT_FAILED"
    PAYMENT_NOT_COMPLETED = "PAYMENT_NOT_COMPLETED"

    # Not found
    CART_NOT_FOUND = "CART_NOT_FOUND"
    CART_ITEM_NOT_FOUND = "CART_ITEM_NOT_FOUND"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    SERVICE_NOT_FOUND = "SERVICE_NOT_FOUND"

    # Access
    ACCESS_DENIED = "ACCESS_DENIED"
    INVALID_WEBHOOK_SIGNATURE = "INVALID_WEBHOOK_SIGNATURE"

    # External
    PROVIDER_ERROR = "PROVIDER_ERROR"
    REFUND_FAILED = "REFUND_FAILED"

    # Unexpected
    INTERNAL_ERROR = "INTERNAL_ERROR"


class CommerceError(Exception):
    """Base class for every failure raised by the commerce core."""

    category = "error"
    http_status = 500

    def __init__(self, code: ErrorCode, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code.value!r}, {self.message!r})"


class ValidationFailed(CommerceError):
    category = "validation"
    http_status = 422


class ConflictError(CommerceError):
    category = "conflict"
    http_status = 409


class StateError(CommerceError):
    category = "state"
    http_status = 409


class NotFoundError(CommerceError):
    category = "not_found"
    http_status = 404


class AccessDenied(CommerceError):
    category = "access"
    http_status = 403

    def __init__(self, code: ErrorCode, message: str, details: dict[str, Any] | None = None):
        super().__init__(code, message, details)
        if self.code == ErrorCode.INVALID_WEBHOOK_SIGNATURE:
            self.http_status = 401


class ExternalServiceError(CommerceError):
    category = "external"
    http_status = 502
