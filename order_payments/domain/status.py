"""
Order and payment states.

Order state machine:

    PENDING ──success──> PAID (terminal)
       │                  ^
    failure            success
       v                  │
    FAILED ───────────────┘
       │  ^
       │  └── failure (another failed attempt)
       └──── reset ──> PENDING

Nothing leaves PAID.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import FrozenSet


class OrderStatus(str, Enum):
    """Order lifecycle states."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"

    @property
    def label(self) -> str:
        """Human readable label."""
        return _ORDER_LABELS[self]

    @property
    def is_terminal(self) -> bool:
        return self is OrderStatus.PAID

    @property
    def accepts_payments(self) -> bool:
        return self in (OrderStatus.PENDING, OrderStatus.FAILED)


_ORDER_LABELS = {
    OrderStatus.PENDING: "Pending",
    OrderStatus.PAID: "Paid",
    OrderStatus.FAILED: "Failed",
}


class PaymentStatus(str, Enum):
    """Outcome of a single payment attempt. Immutable once recorded."""

    SUCCESS = "success"
    FAILED = "failed"

    @classmethod
    def from_charge(cls, success: bool) -> PaymentStatus:
        return cls.SUCCESS if success else cls.FAILED


# A self-transition is listed where it is legitimate: FAILED -> FAILED is a
# further failed attempt, PENDING -> PENDING is a no-op reset.
_TRANSITIONS: dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.FAILED, OrderStatus.PENDING}),
    OrderStatus.FAILED: frozenset({OrderStatus.PAID, OrderStatus.FAILED, OrderStatus.PENDING}),
    OrderStatus.PAID: frozenset(),
}


def allowed_transitions(from_status: OrderStatus) -> FrozenSet[OrderStatus]:
    """Target states reachable from ``from_status``."""
    return _TRANSITIONS[OrderStatus(from_status)]


def is_valid_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    return OrderStatus(to_status) in allowed_transitions(from_status)


@dataclass(frozen=True)
class StatusTransition:
    """An applied order status change."""

    order_id: str
    from_status: OrderStatus
    to_status: OrderStatus
    occurred_at: datetime

    @property
    def is_noop(self) -> bool:
        return self.from_status is self.to_status
