"""
Service providers for the API.

Each provider builds its service once per process. Tests swap them through
``app.dependency_overrides``.
"""
from functools import lru_cache

from order_payments.core import OrderService, PaymentProcessor
from order_payments.monitoring.health import HealthCheck


@lru_cache()
def get_payment_processor() -> PaymentProcessor:
    return PaymentProcessor.from_settings()


@lru_cache()
def get_order_service() -> OrderService:
    return OrderService()


@lru_cache()
def get_health_check() -> HealthCheck:
    return HealthCheck(gateway=get_payment_processor().gateway)


async def shutdown_services() -> None:
    """Close the gateway client if a processor was built."""
    if get_payment_processor.cache_info().currsize:
        await get_payment_processor().aclose()
    for provider in (get_payment_processor, get_order_service, get_health_check):
        provider.cache_clear()
