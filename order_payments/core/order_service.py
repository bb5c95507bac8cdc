"""Order creation and read-side queries."""
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_payments.database import repository
from order_payments.database.connection import get_session_factory
from order_payments.database.models import Order, Payment, utcnow
from order_payments.domain.errors import InvalidAmount
from order_payments.domain.status import OrderStatus

logger = structlog.get_logger(__name__)


class OrderService:
    """Creates orders and serves listings and statistics."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self.session_factory = session_factory or get_session_factory()

    async def create_order(self, customer_name: str, amount: Decimal) -> Order:
        """
        Insert a new pending order.

        Args:
            customer_name: Normalized customer name
            amount: Positive amount with at most 2 decimals

        Raises:
            InvalidAmount: If the amount is not positive
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            raise InvalidAmount("Order amount must be greater than 0")

        now = utcnow()
        order = Order(
            customer_name=customer_name,
            amount=amount,
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        async with self.session_factory() as db:
            db.add(order)
            await db.commit()

        logger.info(
            "order_created",
            order_id=order.id,
            customer=customer_name,
            amount=str(amount),
        )
        return order

    async def get_order(self, order_id: str) -> Order:
        async with self.session_factory() as db:
            return await repository.get_order(db, str(order_id))

    async def list_orders(
        self, page: int = 1, per_page: int = 20
    ) -> Tuple[List[Tuple[Order, int]], int]:
        """Orders newest first with their payment counts, and the total count."""
        async with self.session_factory() as db:
            return await repository.list_orders(db, limit=per_page, offset=(page - 1) * per_page)

    async def get_order_stats(self) -> Dict[str, Any]:
        async with self.session_factory() as db:
            return await repository.order_stats(db)

    async def list_payments(
        self, order_id: str, page: int = 1, per_page: int = 10
    ) -> Tuple[List[Payment], int]:
        """
        Payment history of one order, newest first.

        Raises:
            OrderNotFound: If the order does not exist
        """
        async with self.session_factory() as db:
            await repository.get_order(db, str(order_id))
            return await repository.list_payments(
                db, str(order_id), limit=per_page, offset=(page - 1) * per_page
            )
