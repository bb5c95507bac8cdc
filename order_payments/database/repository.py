"""Queries over orders and their payment history."""
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from order_payments.database.models import Order, Payment
from order_payments.domain.errors import OrderNotFound
from order_payments.domain.status import OrderStatus, PaymentStatus

CENT = Decimal("0.01")


@dataclass(frozen=True)
class ProcessingStats:
    """Attempt statistics for one order."""

    total_attempts: int
    successful_attempts: int
    failed_attempts: int
    last_attempt_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_attempts": self.total_attempts,
            "successful_attempts": self.successful_attempts,
            "failed_attempts": self.failed_attempts,
            "last_attempt_at": self.last_attempt_at.isoformat() if self.last_attempt_at else None,
        }


async def get_order(db: AsyncSession, order_id: str, for_update: bool = False) -> Order:
    """
    Load an order, always reading the current row.

    Args:
        db: Database session
        order_id: Order ID
        for_update: Take a row lock for the rest of the transaction

    Raises:
        OrderNotFound: If no such order exists
    """
    stmt = (
        select(Order)
        .where(Order.id == str(order_id))
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    order = result.scalar_one_or_none()
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found", order_id=str(order_id))
    return order


async def count_failed_since(db: AsyncSession, order_id: str, since: datetime) -> int:
    stmt = select(func.count(Payment.id)).where(
        Payment.order_id == order_id,
        Payment.status == PaymentStatus.FAILED,
        Payment.created_at >= since,
    )
    return int((await db.execute(stmt)).scalar_one())


async def oldest_failed_since(
    db: AsyncSession, order_id: str, since: datetime
) -> Optional[datetime]:
    stmt = select(func.min(Payment.created_at)).where(
        Payment.order_id == order_id,
        Payment.status == PaymentStatus.FAILED,
        Payment.created_at >= since,
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def attempt_stats(db: AsyncSession, order_id: str) -> ProcessingStats:
    """Total/successful/failed attempt counts and the latest attempt time."""
    stmt = select(
        func.count(Payment.id),
        func.sum(case((Payment.status == PaymentStatus.SUCCESS, 1), else_=0)),
        func.sum(case((Payment.status == PaymentStatus.FAILED, 1), else_=0)),
        func.max(Payment.created_at),
    ).where(Payment.order_id == order_id)
    total, successful, failed, last_attempt_at = (await db.execute(stmt)).one()
    return ProcessingStats(
        total_attempts=int(total or 0),
        successful_attempts=int(successful or 0),
        failed_attempts=int(failed or 0),
        last_attempt_at=last_attempt_at,
    )


async def list_payments(
    db: AsyncSession, order_id: str, limit: int, offset: int = 0
) -> Tuple[List[Payment], int]:
    """Payment history for an order, newest first, with the total count."""
    total = (
        await db.execute(select(func.count(Payment.id)).where(Payment.order_id == order_id))
    ).scalar_one()
    stmt = (
        select(Payment)
        .where(Payment.order_id == order_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .limit(limit)
        .offset(offset)
    )
    payments = list((await db.execute(stmt)).scalars().all())
    return payments, int(total)


async def list_orders(
    db: AsyncSession, limit: int, offset: int = 0
) -> Tuple[List[Tuple[Order, int]], int]:
    """Orders newest first, each paired with its payment count."""
    payment_counts = (
        select(Payment.order_id, func.count(Payment.id).label("payment_count"))
        .group_by(Payment.order_id)
        .subquery()
    )
    stmt = (
        select(Order, func.coalesce(payment_counts.c.payment_count, 0))
        .outerjoin(payment_counts, payment_counts.c.order_id == Order.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .offset(offset)
    )
    rows = [(order, int(count)) for order, count in (await db.execute(stmt)).all()]
    total = (await db.execute(select(func.count(Order.id)))).scalar_one()
    return rows, int(total)


def _money(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


async def order_stats(db: AsyncSession) -> Dict[str, Any]:
    """Order counts per status plus revenue figures over paid orders."""
    counts = dict(
        (await db.execute(select(Order.status, func.count(Order.id)).group_by(Order.status))).all()
    )
    revenue = (
        await db.execute(select(func.sum(Order.amount)).where(Order.status == OrderStatus.PAID))
    ).scalar_one_or_none()
    paid = counts.get(OrderStatus.PAID, 0)
    total_revenue = _money(revenue)
    return {
        "total_orders": sum(counts.values()),
        "pending_orders": counts.get(OrderStatus.PENDING, 0),
        "paid_orders": paid,
        "failed_orders": counts.get(OrderStatus.FAILED, 0),
        "total_revenue": total_revenue,
        "average_order_value": _money(total_revenue / paid) if paid else _money(0),
    }
