"""
Pytest configuration and fixtures.
"""
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncGenerator, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from order_payments.config import Settings
from order_payments.core import (
    InMemoryOrderLock,
    OrderEventSink,
    OrderService,
    PaymentProcessor,
)
from order_payments.database import create_engine_from_settings, init_db, make_session_factory
from order_payments.database.models import Order, Payment, utcnow
from order_payments.domain.events import OrderEvent, OrderEventKind
from order_payments.domain.status import OrderStatus, PaymentStatus
from order_payments.integrations import FakePaymentGateway


class RecordingEventSink(OrderEventSink):
    """Keeps emitted events in memory."""

    def __init__(self) -> None:
        self.events: List[OrderEvent] = []

    async def emit(self, event: OrderEvent) -> None:
        self.events.append(event)

    def kinds(self) -> List[OrderEventKind]:
        return [event.kind for event in self.events]


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'payments_test.db'}",
        app_name="order-payments-test",
        app_env="test",
        log_level="DEBUG",
        lock_backend="memory",
        gateway_use_fake=True,
    )


@pytest_asyncio.fixture
async def test_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, Any]:
    """Create a throwaway SQLite database with all tables."""
    engine = create_engine_from_settings(test_settings)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(test_engine)


@pytest.fixture
def fake_gateway() -> FakePaymentGateway:
    return FakePaymentGateway(clock=lambda: 1700000000)


@pytest.fixture
def order_lock() -> InMemoryOrderLock:
    return InMemoryOrderLock(lease_seconds=5.0)


@pytest.fixture
def event_sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def processor(
    session_factory: async_sessionmaker[AsyncSession],
    fake_gateway: FakePaymentGateway,
    order_lock: InMemoryOrderLock,
    event_sink: RecordingEventSink,
) -> PaymentProcessor:
    return PaymentProcessor(
        session_factory=session_factory,
        gateway=fake_gateway,
        order_lock=order_lock,
        event_sink=event_sink,
    )


@pytest.fixture
def order_service(session_factory: async_sessionmaker[AsyncSession]) -> OrderService:
    return OrderService(session_factory)


@pytest.fixture
def make_order(session_factory: async_sessionmaker[AsyncSession]) -> Any:
    """Insert an order directly, bypassing the order service."""

    async def _make_order(
        amount: str = "100.00",
        customer_name: str = "Jane Doe",
        status: OrderStatus = OrderStatus.PENDING,
        created_at: Optional[datetime] = None,
    ) -> Order:
        now = created_at or utcnow()
        order = Order(
            customer_name=customer_name,
            amount=Decimal(amount),
            status=status,
            created_at=now,
            updated_at=now,
        )
        async with session_factory() as db:
            db.add(order)
            await db.commit()
        return order

    return _make_order


@pytest.fixture
def add_payment(session_factory: async_sessionmaker[AsyncSession]) -> Any:
    """Insert a past payment attempt for an order."""

    async def _add_payment(
        order_id: str,
        status: PaymentStatus = PaymentStatus.FAILED,
        created_at: Optional[datetime] = None,
    ) -> Payment:
        payment = Payment(
            order_id=order_id,
            status=status,
            external_response={"success": status is PaymentStatus.SUCCESS, "message": "seeded"},
            created_at=created_at or utcnow(),
        )
        async with session_factory() as db:
            db.add(payment)
            await db.commit()
        return payment

    return _add_payment


@pytest.fixture
def count_payments(session_factory: async_sessionmaker[AsyncSession]) -> Any:
    async def _count_payments(order_id: str) -> int:
        async with session_factory() as db:
            result = await db.execute(
                select(func.count(Payment.id)).where(Payment.order_id == order_id)
            )
            return int(result.scalar_one())

    return _count_payments


@pytest.fixture
def load_order(session_factory: async_sessionmaker[AsyncSession]) -> Any:
    async def _load_order(order_id: str) -> Order:
        async with session_factory() as db:
            return (await db.execute(select(Order).where(Order.id == order_id))).scalar_one()

    return _load_order
