"""
Applies order status transitions.

The payment processor is the only caller; order status is never assigned
anywhere else.
"""
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import structlog

from order_payments.database.models import Order, Payment, utcnow
from order_payments.domain.errors import InvalidTransition
from order_payments.domain.events import OrderEvent, OrderEventKind
from order_payments.domain.status import OrderStatus, StatusTransition, is_valid_transition

logger = structlog.get_logger(__name__)

_EVENT_KINDS = {
    OrderStatus.PAID: OrderEventKind.ORDER_PAID,
    OrderStatus.FAILED: OrderEventKind.ORDER_FAILED,
    OrderStatus.PENDING: OrderEventKind.ORDER_RESET,
}


class OrderStateMachine:
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    def transition(self, order: Order, to_status: OrderStatus) -> StatusTransition:
        """
        Move ``order`` to ``to_status``.

        A PENDING -> PENDING reset leaves the order untouched.

        Raises:
            InvalidTransition: If the state machine forbids the change
        """
        from_status = OrderStatus(order.status)
        to_status = OrderStatus(to_status)
        if not is_valid_transition(from_status, to_status):
            logger.error(
                "invalid_order_transition",
                order_id=order.id,
                from_status=from_status.value,
                to_status=to_status.value,
            )
            raise InvalidTransition(
                f"Cannot move order from {from_status.value} to {to_status.value}",
                order_id=order.id,
            )

        now = self._clock()
        transition = StatusTransition(
            order_id=order.id, from_status=from_status, to_status=to_status, occurred_at=now
        )
        if transition.is_noop and to_status is OrderStatus.PENDING:
            return transition

        order.status = to_status
        order.updated_at = now
        return transition

    def build_event(
        self,
        transition: StatusTransition,
        order: Order,
        payment: Optional[Payment] = None,
        **context: Any,
    ) -> Optional[OrderEvent]:
        """
        Notification for an applied transition, or None for a no-op reset.

        A repeated FAILED is a new failed attempt and is reported again.
        """
        if transition.is_noop and transition.to_status is OrderStatus.PENDING:
            return None

        payload: Dict[str, Any] = {
            "customer": order.customer_name,
            "amount": str(order.amount),
            "previous_status": transition.from_status.value,
        }
        if payment is not None and transition.to_status is OrderStatus.FAILED:
            payload["gateway_message"] = payment.external_message
        payload.update(context)

        return OrderEvent(
            kind=_EVENT_KINDS[transition.to_status],
            order_id=order.id,
            payment_id=payment.id if payment is not None else None,
            occurred_at=transition.occurred_at,
            context=payload,
        )
