"""SQLAlchemy database models for orders and payment attempts."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from order_payments.domain.status import OrderStatus, PaymentStatus


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every timestamp column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls: Any) -> list[str]:
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Order(Base):
    """
    Orders table.

    ``amount`` is fixed at creation. ``status`` only changes through
    ``OrderStateMachine``.
    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    customer_name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        Enum(
            OrderStatus,
            name="order_status",
            native_enum=False,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(), nullable=False, default=utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("amount > 0", name="positive_amount"),
        Index("idx_orders_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation of Order."""
        return f"<Order(id={self.id}, amount={self.amount}, status={self.status})>"


class Payment(Base):
    """
    Payment attempts table.

    One row per completed gateway call, written in the same transaction as
    the owning order's status change. Never updated or deleted.
    """

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(
            PaymentStatus,
            name="payment_status",
            native_enum=False,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        index=True,
    )
    external_response: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(), nullable=False, default=utcnow, index=True
    )

    __table_args__ = (Index("idx_payments_order_created", "order_id", "created_at"),)

    @property
    def is_successful(self) -> bool:
        return self.status is PaymentStatus.SUCCESS

    @property
    def external_message(self) -> str:
        return (self.external_response or {}).get("message") or "No message"

    @property
    def external_transaction_id(self) -> str | None:
        response = self.external_response or {}
        return response.get("external_id") or response.get("transaction_id")

    def __repr__(self) -> str:
        """String representation of Payment."""
        return f"<Payment(id={self.id}, order_id={self.order_id}, status={self.status})>"
