"""
Payment gateway contract.

Every gateway returns a ``ChargeResult``; no exception crosses ``charge``.
A declined charge is a successful call with ``success=False``.
"""
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from order_payments.database.models import Order

SUCCESS_ENDPOINT = "/payment-success"
FAILURE_ENDPOINT = "/payment-failed"


class MockStrategy(str, Enum):
    """Which simulated outcome endpoint a charge is routed to."""

    ALWAYS_SUCCESS = "always_success"
    ALWAYS_FAILURE = "always_failure"
    AMOUNT_BASED = "amount_based"
    RANDOM = "random"


def amount_in_cents(amount: Decimal | float | str) -> int:
    """Convert an amount to integer cents, rounding half away from zero."""
    cents = Decimal(str(amount)) * 100
    return int(cents.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def select_endpoint(
    amount: Decimal | float | str,
    strategy: MockStrategy = MockStrategy.AMOUNT_BASED,
    rng: Optional[random.Random] = None,
) -> str:
    """
    Pick the outcome endpoint for a charge.

    ``amount_based`` routes even cent amounts to success and odd ones to
    failure.
    """
    strategy = MockStrategy(strategy)
    if strategy is MockStrategy.ALWAYS_SUCCESS:
        return SUCCESS_ENDPOINT
    if strategy is MockStrategy.ALWAYS_FAILURE:
        return FAILURE_ENDPOINT
    if strategy is MockStrategy.RANDOM:
        return SUCCESS_ENDPOINT if (rng or random).randint(0, 1) == 1 else FAILURE_ENDPOINT
    return SUCCESS_ENDPOINT if amount_in_cents(amount) % 2 == 0 else FAILURE_ENDPOINT


@dataclass(frozen=True)
class ChargeResult:
    """Normalized outcome of one gateway charge."""

    success: bool
    message: str
    gateway_status: str
    external_transaction_id: Optional[str] = None
    http_status: Optional[int] = None
    data: Optional[Dict[str, Any]] = None
    endpoint: Optional[str] = None
    strategy: Optional[str] = None

    @classmethod
    def error(
        cls,
        message: str,
        http_status: Optional[int] = None,
        endpoint: Optional[str] = None,
        strategy: Optional[str] = None,
    ) -> "ChargeResult":
        """Failure that never reached a well-formed gateway decision."""
        return cls(
            success=False,
            message=message,
            gateway_status="error",
            http_status=http_status,
            endpoint=endpoint,
            strategy=strategy,
        )

    def to_payload(self) -> Dict[str, Any]:
        """Raw payload stored verbatim on the payment record."""
        return {
            "success": self.success,
            "message": self.message,
            "external_id": self.external_transaction_id,
            "gateway_status": self.gateway_status,
            "data": self.data,
            "http_status": self.http_status,
            "mock_endpoint": self.endpoint,
            "mock_strategy": self.strategy,
        }


class PaymentGateway(ABC):
    """Interface shared by the HTTP gateway and the fake."""

    @abstractmethod
    async def charge(self, order: "Order") -> ChargeResult:
        """Charge the order's amount. Must not raise."""

    @property
    def available(self) -> bool:
        """False while the gateway refuses calls (e.g. open circuit)."""
        return True

    @property
    def retry_budget_seconds(self) -> float:
        """Worst-case duration of one ``charge`` call."""
        return 0.0

    async def health_check(self) -> Dict[str, Any]:
        return {"healthy": self.available}

    async def aclose(self) -> None:
        """Release network resources."""
        return None
