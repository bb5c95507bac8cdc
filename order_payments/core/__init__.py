"""Payment processing core."""
from .attempt_guard import AttemptGuard
from .notifications import LoggingEventSink, OrderEventSink
from .order_lock import InMemoryOrderLock, LockHandle, OrderLock, RedisOrderLock, build_order_lock
from .order_service import OrderService
from .payment_processor import PaymentProcessor
from .state_machine import OrderStateMachine

__all__ = [
    "AttemptGuard",
    "InMemoryOrderLock",
    "LockHandle",
    "LoggingEventSink",
    "OrderEventSink",
    "OrderLock",
    "OrderService",
    "OrderStateMachine",
    "PaymentProcessor",
    "RedisOrderLock",
    "build_order_lock",
]
