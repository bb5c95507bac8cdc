"""Pre-charge checks: order state, amount and failed-attempt throttle."""
from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from order_payments.config import Settings
from order_payments.database import repository
from order_payments.database.models import Order, utcnow
from order_payments.domain.errors import (
    AlreadyPaid,
    InvalidAmount,
    InvalidOrderState,
    TooManyAttempts,
)
from order_payments.domain.status import OrderStatus

logger = structlog.get_logger(__name__)


class AttemptGuard:
    """
    Decides whether a new payment attempt may start.

    Must run on an order read after the order lock was taken, so two
    attempts cannot both see the same failure count and both proceed.
    """

    def __init__(
        self,
        window_seconds: int = 300,
        max_failed_attempts: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.window = timedelta(seconds=window_seconds)
        self.max_failed_attempts = max_failed_attempts
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "AttemptGuard":
        return cls(
            window_seconds=settings.throttle_window_seconds,
            max_failed_attempts=settings.throttle_max_failed_attempts,
        )

    async def recent_failed_attempts(
        self, db: AsyncSession, order_id: str, now: Optional[datetime] = None
    ) -> int:
        now = now or self._clock()
        return await repository.count_failed_since(db, order_id, now - self.window)

    async def check(self, db: AsyncSession, order: Order, now: Optional[datetime] = None) -> None:
        """
        Validate that ``order`` can be charged now.

        Raises:
            AlreadyPaid: The order is paid
            InvalidOrderState: The order is neither pending nor failed
            InvalidAmount: The amount is not positive
            TooManyAttempts: Too many failures inside the throttle window
        """
        if order.status is OrderStatus.PAID:
            raise AlreadyPaid(
                "Order has already been paid and accepts no new payments", order_id=order.id
            )

        if not OrderStatus(order.status).accepts_payments:
            raise InvalidOrderState(
                f"Order status '{order.status}' does not allow payments", order_id=order.id
            )

        if order.amount is None or order.amount <= 0:
            raise InvalidAmount("Order amount must be greater than 0", order_id=order.id)

        now = now or self._clock()
        since = now - self.window
        failed = await repository.count_failed_since(db, order.id, since)
        if failed >= self.max_failed_attempts:
            oldest = await repository.oldest_failed_since(db, order.id, since)
            retry_after = (
                max((oldest + self.window - now).total_seconds(), 0.0)
                if oldest is not None
                else self.window.total_seconds()
            )
            logger.warning(
                "payment_attempts_throttled",
                order_id=order.id,
                failed_attempts=failed,
                retry_after_seconds=retry_after,
            )
            raise TooManyAttempts(
                "Too many failed attempts recently. Please wait before trying again.",
                order_id=order.id,
                retry_after_seconds=retry_after,
            )
