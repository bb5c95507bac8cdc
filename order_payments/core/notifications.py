"""Sinks receiving order status notifications."""
from abc import ABC, abstractmethod

import structlog

from order_payments.domain.events import OrderEvent, OrderEventKind

logger = structlog.get_logger(__name__)


class OrderEventSink(ABC):
    """Receives one event per applied status transition."""

    @abstractmethod
    async def emit(self, event: OrderEvent) -> None:
        """Deliver the event. Errors are logged by the caller and dropped."""


class LoggingEventSink(OrderEventSink):
    """Writes each event as a structured log line."""

    async def emit(self, event: OrderEvent) -> None:
        fields = {
            "order_id": event.order_id,
            "payment_id": event.payment_id,
            "occurred_at": event.occurred_at.isoformat(),
            **event.context,
        }
        if event.kind is OrderEventKind.ORDER_PAID:
            logger.info("order_marked_paid", **fields)
        elif event.kind is OrderEventKind.ORDER_FAILED:
            logger.warning("order_marked_failed", **fields)
        else:
            logger.info("order_reset_to_pending", **fields)
