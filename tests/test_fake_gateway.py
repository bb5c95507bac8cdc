"""
Tests for the in-process fake gateway and gateway selection.
"""
from decimal import Decimal

import pytest

from order_payments.config import Settings
from order_payments.database.models import Order
from order_payments.domain.status import OrderStatus
from order_payments.integrations import FakePaymentGateway, HttpPaymentGateway, build_gateway


def _order() -> Order:
    return Order(
        id="order-1", customer_name="Jane Doe", amount=Decimal("100.00"), status=OrderStatus.PENDING
    )


class TestFakePaymentGateway:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_default_success_has_synthetic_transaction_id(self) -> None:
        gateway = FakePaymentGateway(clock=lambda: 1700000000)

        result = await gateway.charge(_order())

        assert result.success is True
        assert result.gateway_status == "approved"
        assert result.external_transaction_id == "txn_fake_1700000000"
        assert result.data["amount_charged"] == "100.00"
        assert gateway.charged_order_ids == ["order-1"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_force_success_with_preset_values(self) -> None:
        gateway = FakePaymentGateway().force_success("All good", "txn_custom")

        result = await gateway.charge(_order())

        assert result.message == "All good"
        assert result.external_transaction_id == "txn_custom"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_force_failure_declines(self) -> None:
        gateway = FakePaymentGateway().force_failure()

        result = await gateway.charge(_order())

        assert result.success is False
        assert result.gateway_status == "declined"
        assert result.message == "Insufficient funds"
        assert result.data["error_code"] == "INSUFFICIENT_FUNDS"
        assert result.external_transaction_id is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_simulated_timeout_is_a_failed_result(self) -> None:
        gateway = FakePaymentGateway().simulate_timeout()

        result = await gateway.charge(_order())

        assert result.success is False
        assert result.gateway_status == "error"
        assert "timeout" in result.message.lower()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_health_check(self) -> None:
        health = await FakePaymentGateway().health_check()
        assert health["healthy"] is True
        assert health["fake_service"] is True

    @pytest.mark.unit
    def test_retry_budget_is_the_delay(self) -> None:
        assert FakePaymentGateway(delay_seconds=0.25).retry_budget_seconds == 0.25


class TestBuildGateway:
    @pytest.mark.unit
    def test_fake_when_requested(self, test_settings: Settings) -> None:
        assert isinstance(build_gateway(test_settings), FakePaymentGateway)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_http_by_default(self) -> None:
        settings = Settings(gateway_use_fake=False, gateway_mock_strategy="always_success")

        gateway = build_gateway(settings)

        assert isinstance(gateway, HttpPaymentGateway)
        assert gateway.get_config()["mock_strategy"] == "always_success"
        assert gateway.retry_budget_seconds < settings.lock_lease_seconds
        await gateway.aclose()
