"""
Domain Layer - order/payment states, transitions, events and errors.

No dependencies on persistence or the network: everything here can be
tested without a database or a gateway.
"""
from .errors import (
    AlreadyPaid,
    ConcurrentAttempt,
    ErrorKind,
    GatewayTransportError,
    GatewayUnavailable,
    InvalidAmount,
    InvalidOrderState,
    InvalidTransition,
    OrderNotFound,
    PaymentError,
    TooManyAttempts,
)
from .events import OrderEvent, OrderEventKind
from .status import (
    OrderStatus,
    PaymentStatus,
    StatusTransition,
    allowed_transitions,
    is_valid_transition,
)

__all__ = [
    "AlreadyPaid",
    "ConcurrentAttempt",
    "ErrorKind",
    "GatewayTransportError",
    "GatewayUnavailable",
    "InvalidAmount",
    "InvalidOrderState",
    "InvalidTransition",
    "OrderEvent",
    "OrderEventKind",
    "OrderNotFound",
    "OrderStatus",
    "PaymentError",
    "PaymentStatus",
    "StatusTransition",
    "TooManyAttempts",
    "allowed_transitions",
    "is_valid_transition",
]
