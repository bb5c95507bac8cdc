"""In-process gateway with a preset outcome, for tests and local runs."""
import asyncio
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from order_payments.integrations.gateway import ChargeResult, PaymentGateway

if TYPE_CHECKING:
    from order_payments.database.models import Order

FAKE_STRATEGY = "fake"


class FakePaymentGateway(PaymentGateway):
    """
    Deterministic gateway honoring the same contract as the HTTP client.

    Approves or declines every charge according to the current preset and
    records which orders it was asked to charge.
    """

    def __init__(
        self,
        should_succeed: bool = True,
        message: Optional[str] = None,
        transaction_id: Optional[str] = None,
        delay_seconds: float = 0.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.should_succeed = should_succeed
        self.message = message
        self.transaction_id = transaction_id
        self.delay_seconds = delay_seconds
        self._timeout = False
        self._clock = clock
        self.charged_order_ids: List[str] = []

    def force_success(
        self, message: Optional[str] = None, transaction_id: Optional[str] = None
    ) -> "FakePaymentGateway":
        self.should_succeed = True
        self.message = message
        self.transaction_id = transaction_id
        self._timeout = False
        return self

    def force_failure(self, message: Optional[str] = None) -> "FakePaymentGateway":
        self.should_succeed = False
        self.message = message
        self.transaction_id = None
        self._timeout = False
        return self

    def simulate_timeout(self) -> "FakePaymentGateway":
        """Next charges fail as if the gateway never answered."""
        self.should_succeed = False
        self.message = "Gateway timeout"
        self.transaction_id = None
        self._timeout = True
        return self

    async def charge(self, order: "Order") -> ChargeResult:
        self.charged_order_ids.append(order.id)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        timestamp = datetime.now(timezone.utc).isoformat()

        if self._timeout:
            return ChargeResult.error(
                f"Gateway transport error: {self.message}", strategy=FAKE_STRATEGY
            )

        if self.should_succeed:
            message = self.message or "Payment processed successfully"
            transaction_id = self.transaction_id or f"txn_fake_{int(self._clock())}"
            data: Dict[str, Any] = {
                "status": "approved",
                "message": message,
                "transaction_id": transaction_id,
                "amount_charged": str(order.amount),
                "currency": "USD",
                "timestamp": timestamp,
            }
            return ChargeResult(
                success=True,
                message=message,
                gateway_status="approved",
                external_transaction_id=transaction_id,
                http_status=200,
                data=data,
                strategy=FAKE_STRATEGY,
            )

        message = self.message or "Insufficient funds"
        return ChargeResult(
            success=False,
            message=message,
            gateway_status="declined",
            http_status=200,
            data={
                "status": "declined",
                "message": message,
                "error_code": "INSUFFICIENT_FUNDS",
                "timestamp": timestamp,
            },
            strategy=FAKE_STRATEGY,
        )

    @property
    def retry_budget_seconds(self) -> float:
        return self.delay_seconds

    async def health_check(self) -> Dict[str, Any]:
        return {
            "healthy": True,
            "status": 200,
            "response_time": 50,  # ms
            "fake_service": True,
        }
