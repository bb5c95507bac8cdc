"""Payment gateway integrations."""
from order_payments.config import Settings

from .circuit_breaker import CircuitBreaker
from .fake_gateway import FakePaymentGateway
from .gateway import (
    FAILURE_ENDPOINT,
    SUCCESS_ENDPOINT,
    ChargeResult,
    MockStrategy,
    PaymentGateway,
    amount_in_cents,
    select_endpoint,
)
from .http_gateway import HttpPaymentGateway


def build_gateway(settings: Settings) -> PaymentGateway:
    """The fake gateway only when explicitly requested, else the HTTP client."""
    if settings.gateway_use_fake:
        return FakePaymentGateway()
    return HttpPaymentGateway.from_settings(settings)


__all__ = [
    "FAILURE_ENDPOINT",
    "SUCCESS_ENDPOINT",
    "ChargeResult",
    "CircuitBreaker",
    "FakePaymentGateway",
    "HttpPaymentGateway",
    "MockStrategy",
    "PaymentGateway",
    "amount_in_cents",
    "build_gateway",
    "select_endpoint",
]
