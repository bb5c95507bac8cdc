"""
Payment processor with per-order locking.

Orchestrates one payment attempt:
1. Acquire the order lock
2. Re-read the order and run the attempt guard
3. Call the gateway (outside any database transaction)
4. Insert the payment and transition the order in one transaction
5. Emit the transition notification
6. Release the lock
"""
import time
import uuid
from datetime import datetime
from typing import Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_payments.config import Settings, get_settings
from order_payments.core.attempt_guard import AttemptGuard
from order_payments.core.notifications import LoggingEventSink, OrderEventSink
from order_payments.core.order_lock import LockHandle, OrderLock, build_order_lock
from order_payments.core.state_machine import OrderStateMachine
from order_payments.database import repository
from order_payments.database.connection import get_session_factory
from order_payments.database.models import Order, Payment, new_id, utcnow
from order_payments.database.repository import ProcessingStats
from order_payments.domain.errors import ConcurrentAttempt, GatewayUnavailable, PaymentError
from order_payments.domain.events import OrderEvent
from order_payments.domain.status import OrderStatus, PaymentStatus
from order_payments.integrations import ChargeResult, PaymentGateway, build_gateway
from order_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

# Hint returned with ConcurrentAttempt
BUSY_RETRY_AFTER_SECONDS = 1.0


class PaymentProcessor:
    """
    Main payment processing orchestrator.

    The gateway call happens between two short transactions: the first reads
    and validates the order, the second inserts the payment and updates the
    order status together. The order lock keeps both, and the call between
    them, exclusive to one worker. A database failure after a successful
    charge leaves the charge without a local record; the error propagates
    and is logged with the gateway transaction id.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: PaymentGateway,
        order_lock: OrderLock,
        attempt_guard: Optional[AttemptGuard] = None,
        event_sink: Optional[OrderEventSink] = None,
        state_machine: Optional[OrderStateMachine] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize payment processor.

        Raises:
            ValueError: If the gateway can outlive the lock lease
        """
        if gateway.retry_budget_seconds >= order_lock.lease_seconds:
            raise ValueError(
                f"Gateway retry budget ({gateway.retry_budget_seconds:.2f}s) must be "
                f"shorter than the order lock lease ({order_lock.lease_seconds:.2f}s)"
            )

        self.session_factory = session_factory
        self.gateway = gateway
        self.order_lock = order_lock
        self.attempt_guard = attempt_guard or AttemptGuard(clock=clock)
        self.event_sink = event_sink or LoggingEventSink()
        self.state_machine = state_machine or OrderStateMachine(clock=clock)
        self._clock = clock

        logger.info(
            "payment_processor_initialized",
            gateway=type(gateway).__name__,
            order_lock=type(order_lock).__name__,
            lease_seconds=order_lock.lease_seconds,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        gateway: Optional[PaymentGateway] = None,
        order_lock: Optional[OrderLock] = None,
        event_sink: Optional[OrderEventSink] = None,
    ) -> "PaymentProcessor":
        settings = settings or get_settings()
        return cls(
            session_factory=session_factory or get_session_factory(),
            gateway=gateway or build_gateway(settings),
            order_lock=order_lock or build_order_lock(settings),
            attempt_guard=AttemptGuard.from_settings(settings),
            event_sink=event_sink,
        )

    async def _acquire(self, order_id: str) -> LockHandle:
        handle = await self.order_lock.acquire(order_id)
        if handle is None:
            metrics.record_order_lock("busy")
            metrics.record_rejection(ConcurrentAttempt.kind.value)
            logger.warning("payment_lock_acquisition_failed", order_id=order_id)
            raise ConcurrentAttempt(
                "Payment is already being processed for this order. Please wait.",
                order_id=order_id,
                retry_after_seconds=BUSY_RETRY_AFTER_SECONDS,
            )
        metrics.record_order_lock("acquired")
        logger.info("payment_lock_acquired", order_id=order_id)
        return handle

    async def _release(self, handle: LockHandle, started: float) -> None:
        await self.order_lock.release(handle)
        metrics.record_order_lock("released", time.perf_counter() - started)
        logger.info("payment_lock_released", order_id=handle.order_id)

    async def _notify(self, event: Optional[OrderEvent]) -> None:
        if event is None:
            return
        try:
            await self.event_sink.emit(event)
        except Exception as e:
            # The transition is committed; a failing sink cannot undo it
            metrics.record_order_event(event.kind.value, "failed")
            logger.error(
                "order_event_emit_failed",
                order_id=event.order_id,
                event_kind=event.kind.value,
                error=str(e),
            )
            return
        metrics.record_order_event(event.kind.value, "emitted")

    async def _charge(self, order: Order) -> ChargeResult:
        try:
            return await self.gateway.charge(order)
        except Exception as e:
            logger.exception("gateway_charge_raised", order_id=order.id, error=str(e))
            return ChargeResult.error(f"Gateway error: {e}")

    async def process_payment(self, order_id: str) -> Payment:
        """
        Run one payment attempt for an order.

        Args:
            order_id: Order ID

        Returns:
            Payment: The recorded attempt, successful or failed

        Raises:
            OrderNotFound: If the order does not exist
            ConcurrentAttempt: If another attempt holds the order lock
            AlreadyPaid: If the order is already paid
            InvalidOrderState: If the order does not accept payments
            InvalidAmount: If the order amount is not positive
            TooManyAttempts: If too many attempts failed recently
            GatewayUnavailable: If the gateway circuit is open
        """
        order_id = str(order_id)
        correlation_id = str(uuid.uuid4())
        started = time.perf_counter()
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

        try:
            logger.info("payment_processing_started", order_id=order_id)
            handle = await self._acquire(order_id)
            try:
                payment, event = await self._process_locked(order_id)
                await self._notify(event)
            finally:
                await self._release(handle, started)
        except PaymentError as e:
            if not isinstance(e, ConcurrentAttempt):
                metrics.record_rejection(e.kind.value)
            logger.warning(
                "payment_rejected", order_id=order_id, kind=e.kind.value, reason=e.message
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("correlation_id")

        metrics.record_payment_attempt(payment.status.value, time.perf_counter() - started)
        return payment

    async def _process_locked(self, order_id: str) -> tuple[Payment, Optional[OrderEvent]]:
        async with self.session_factory() as db:
            order = await repository.get_order(db, order_id)
            await self.attempt_guard.check(db, order, self._clock())
            failed_before = await self.attempt_guard.recent_failed_attempts(
                db, order_id, self._clock()
            )

        if not self.gateway.available:
            raise GatewayUnavailable(
                "Payment gateway is temporarily unavailable", order_id=order_id
            )

        logger.info("payment_gateway_call_started", order_id=order_id, amount=str(order.amount))
        result = await self._charge(order)
        logger.info(
            "payment_gateway_call_completed",
            order_id=order_id,
            success=result.success,
            gateway_status=result.gateway_status,
            transaction_id=result.external_transaction_id,
        )

        async with self.session_factory() as db:
            try:
                order = await repository.get_order(db, order_id, for_update=True)
                payment = Payment(
                    id=new_id(),
                    order_id=order.id,
                    status=PaymentStatus.from_charge(result.success),
                    external_response=result.to_payload(),
                    created_at=self._clock(),
                )
                db.add(payment)
                target = OrderStatus.PAID if result.success else OrderStatus.FAILED
                transition = self.state_machine.transition(order, target)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.error(
                    "payment_record_failed",
                    order_id=order_id,
                    charge_success=result.success,
                    transaction_id=result.external_transaction_id,
                )
                raise

        logger.info(
            "payment_recorded",
            order_id=order_id,
            payment_id=payment.id,
            payment_status=payment.status.value,
            order_status=order.status.value,
        )

        context = {}
        if not result.success:
            context["attempts"] = failed_before + 1
        event = self.state_machine.build_event(transition, order, payment, **context)
        return payment, event

    async def get_processing_stats(self, order_id: str) -> ProcessingStats:
        """Attempt statistics for an order. Read-only."""
        async with self.session_factory() as db:
            await repository.get_order(db, str(order_id))
            return await repository.attempt_stats(db, str(order_id))

    async def reset_order(self, order_id: str) -> Order:
        """
        Administrative reset of a failed order back to pending.

        Raises:
            OrderNotFound: If the order does not exist
            ConcurrentAttempt: If a payment attempt holds the order lock
            InvalidTransition: If the order is paid
        """
        order_id = str(order_id)
        started = time.perf_counter()
        handle = await self._acquire(order_id)
        try:
            async with self.session_factory() as db:
                try:
                    order = await repository.get_order(db, order_id, for_update=True)
                    transition = self.state_machine.transition(order, OrderStatus.PENDING)
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise

            if not transition.is_noop:
                logger.info(
                    "order_reset", order_id=order_id, from_status=transition.from_status.value
                )
            await self._notify(self.state_machine.build_event(transition, order))
        finally:
            await self._release(handle, started)
        return order

    async def aclose(self) -> None:
        await self.gateway.aclose()
