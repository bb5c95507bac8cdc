"""
Error taxonomy for payment processing.

Business-rule and concurrency rejections are raised before any mutation and
leave no partial state behind. Gateway transport failures never surface here
as exceptions: they are recorded as failed attempts.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Caller-visible rejection kinds."""

    ORDER_NOT_FOUND = "order_not_found"
    ALREADY_PAID = "already_paid"
    INVALID_ORDER_STATE = "invalid_order_state"
    INVALID_AMOUNT = "invalid_amount"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    CONCURRENT_ATTEMPT = "concurrent_attempt"
    GATEWAY_UNAVAILABLE = "gateway_unavailable"
    INVALID_TRANSITION = "invalid_transition"


class PaymentError(Exception):
    """Base exception for payment processing errors."""

    kind: ErrorKind

    def __init__(
        self,
        message: str,
        order_id: Optional[str] = None,
        retry_after_seconds: Optional[float] = None,
    ):
        super().__init__(message)
        self.message = message
        self.order_id = order_id
        self.retry_after_seconds = retry_after_seconds


class OrderNotFound(PaymentError):
    kind = ErrorKind.ORDER_NOT_FOUND


class AlreadyPaid(PaymentError):
    """The order is paid and accepts no further payments."""

    kind = ErrorKind.ALREADY_PAID


class InvalidOrderState(PaymentError):
    kind = ErrorKind.INVALID_ORDER_STATE


class InvalidAmount(PaymentError):
    kind = ErrorKind.INVALID_AMOUNT


class TooManyAttempts(PaymentError):
    """Too many failed attempts inside the throttle window."""

    kind = ErrorKind.TOO_MANY_ATTEMPTS


class ConcurrentAttempt(PaymentError):
    """Another attempt holds the order lease. Retry after a short delay."""

    kind = ErrorKind.CONCURRENT_ATTEMPT


class GatewayUnavailable(PaymentError):
    """The gateway circuit is open; no attempt was made."""

    kind = ErrorKind.GATEWAY_UNAVAILABLE


class InvalidTransition(PaymentError):
    """A status change outside the state machine. Indicates a logic bug."""

    kind = ErrorKind.INVALID_TRANSITION


class GatewayTransportError(Exception):
    """Timeout or connection failure after exhausting gateway retries."""

    def __init__(self, message: str, attempts: int, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.attempts = attempts
        self.original_error = original_error
