"""
Order events emitted on status transitions.

Events describe past facts and never carry mutable order state back into the
processing flow.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class OrderEventKind(str, Enum):
    ORDER_PAID = "order.paid"
    ORDER_FAILED = "order.failed"
    ORDER_RESET = "order.reset"


class OrderEvent(BaseModel):
    """Structured notification for the observability sink."""

    model_config = ConfigDict(frozen=True)

    kind: OrderEventKind
    order_id: str
    payment_id: Optional[str] = None
    occurred_at: datetime
    context: Dict[str, Any] = Field(default_factory=dict)
