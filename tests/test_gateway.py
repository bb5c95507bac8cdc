"""
Tests for endpoint selection, the HTTP gateway client and its circuit breaker.
"""
import asyncio
import json
import random
import time
from decimal import Decimal
from typing import Any, AsyncGenerator, Callable, Dict, List

import httpx
import pytest
import pytest_asyncio

from order_payments.database.models import Order
from order_payments.domain.status import OrderStatus
from order_payments.integrations import (
    FAILURE_ENDPOINT,
    SUCCESS_ENDPOINT,
    CircuitBreaker,
    HttpPaymentGateway,
    MockStrategy,
    amount_in_cents,
    select_endpoint,
)

BASE_URL = "https://gateway.test"


def _order(amount: str = "100.00") -> Order:
    return Order(
        id="order-1",
        customer_name="Jane Doe",
        amount=Decimal(amount),
        status=OrderStatus.PENDING,
    )


class Recorder:
    """Transport handler that records requests and replays a responder."""

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response]) -> None:
        self.responder = responder
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)


def _gateway(recorder: Recorder, **kwargs: Any) -> HttpPaymentGateway:
    options: Dict[str, Any] = {"timeout_seconds": 1.0, "retries": 2, "retry_delay_seconds": 0}
    options.update(kwargs)
    return HttpPaymentGateway(
        base_url=BASE_URL,
        client=httpx.AsyncClient(transport=httpx.MockTransport(recorder)),
        **options,
    )


def _by_endpoint(request: httpx.Request) -> httpx.Response:
    if request.url.path == SUCCESS_ENDPOINT:
        return httpx.Response(
            200,
            json={"status": "approved", "message": "Approved", "transaction_id": "txn_123"},
        )
    return httpx.Response(200, json={"status": "declined", "message": "Insufficient funds"})


class TestEndpointSelection:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "amount, expected",
        [
            ("100.00", SUCCESS_ENDPOINT),
            ("99.99", FAILURE_ENDPOINT),
            ("0.01", FAILURE_ENDPOINT),
            ("0.02", SUCCESS_ENDPOINT),
            ("0.015", SUCCESS_ENDPOINT),
        ],
    )
    def test_amount_based_parity(self, amount: str, expected: str) -> None:
        assert select_endpoint(Decimal(amount)) == expected

    @pytest.mark.unit
    def test_float_amounts_are_rounded_to_cents(self) -> None:
        assert amount_in_cents(19.99) == 1999
        assert amount_in_cents(0.1 + 0.2) == 30

    @pytest.mark.unit
    def test_fixed_strategies(self) -> None:
        assert select_endpoint("99.99", MockStrategy.ALWAYS_SUCCESS) == SUCCESS_ENDPOINT
        assert select_endpoint("100.00", MockStrategy.ALWAYS_FAILURE) == FAILURE_ENDPOINT

    @pytest.mark.unit
    def test_random_strategy_uses_both_endpoints(self) -> None:
        rng = random.Random(42)
        picks = {select_endpoint("100.00", MockStrategy.RANDOM, rng) for _ in range(50)}
        assert picks == {SUCCESS_ENDPOINT, FAILURE_ENDPOINT}


class TestHttpPaymentGateway:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_approved_charge(self) -> None:
        recorder = Recorder(_by_endpoint)
        gateway = _gateway(recorder)

        result = await gateway.charge(_order("100.00"))

        assert result.success is True
        assert result.gateway_status == "approved"
        assert result.external_transaction_id == "txn_123"
        assert result.endpoint == SUCCESS_ENDPOINT
        assert result.to_payload()["external_id"] == "txn_123"
        assert result.to_payload()["mock_strategy"] == "amount_based"

        request = recorder.requests[0]
        assert str(request.url) == f"{BASE_URL}{SUCCESS_ENDPOINT}"
        assert request.headers["X-Mock-Strategy"] == "amount_based"
        assert request.headers["Accept"] == "application/json"
        body = json.loads(request.content)
        assert body["order_id"] == "order-1"
        assert body["amount"] == "100.00"
        assert body["customer_name"] == "Jane Doe"
        assert body["currency"] == "USD"
        assert body["reference"].startswith("ORD_order-1_")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_declined_charge_is_not_retried(self) -> None:
        recorder = Recorder(_by_endpoint)
        gateway = _gateway(recorder)

        result = await gateway.charge(_order("99.99"))

        assert result.success is False
        assert result.gateway_status == "declined"
        assert result.message == "Insufficient funds"
        assert result.endpoint == FAILURE_ENDPOINT
        assert len(recorder.requests) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_server_error_is_http_error(self) -> None:
        recorder = Recorder(lambda request: httpx.Response(500, text="boom"))
        gateway = _gateway(recorder)

        result = await gateway.charge(_order())

        assert result.success is False
        assert result.gateway_status == "http_error"
        assert result.http_status == 500
        assert len(recorder.requests) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_malformed_body_is_error(self) -> None:
        recorder = Recorder(lambda request: httpx.Response(200, text="<html>oops</html>"))
        gateway = _gateway(recorder)

        result = await gateway.charge(_order())

        assert result.success is False
        assert result.gateway_status == "error"
        assert result.message == "Malformed gateway response"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_status_is_unknown(self) -> None:
        recorder = Recorder(lambda request: httpx.Response(200, json={"message": "?"}))
        gateway = _gateway(recorder)

        result = await gateway.charge(_order())

        assert result.success is False
        assert result.gateway_status == "unknown"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_transport_errors_are_retried_then_normalized(self) -> None:
        def timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        recorder = Recorder(timeout)
        gateway = _gateway(recorder, retries=2)

        result = await gateway.charge(_order())

        assert result.success is False
        assert result.gateway_status == "error"
        assert "transport" in result.message.lower()
        assert len(recorder.requests) == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_transport_error_then_success(self) -> None:
        calls = {"count": 0}

        def flaky(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            if calls["count"] == 1:
                raise httpx.ConnectError("refused", request=request)
            return _by_endpoint(request)

        gateway = _gateway(Recorder(flaky))

        result = await gateway.charge(_order("100.00"))

        assert result.success is True
        assert calls["count"] == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_open_circuit_skips_the_call(self) -> None:
        def timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        recorder = Recorder(timeout)
        gateway = _gateway(
            recorder, retries=0, circuit_breaker=CircuitBreaker(failure_threshold=2, timeout=60)
        )

        await gateway.charge(_order())
        await gateway.charge(_order())
        assert gateway.available is False

        result = await gateway.charge(_order())

        assert result.success is False
        assert "circuit" in result.message.lower()
        assert len(recorder.requests) == 2
        assert (await gateway.health_check())["healthy"] is False

    @pytest.mark.unit
    def test_set_mock_strategy(self) -> None:
        gateway = _gateway(Recorder(_by_endpoint))

        gateway.set_mock_strategy("always_failure")
        assert gateway.get_config()["mock_strategy"] == "always_failure"
        assert gateway.determine_endpoint(_order("100.00")) == FAILURE_ENDPOINT

        with pytest.raises(ValueError, match="Invalid mock strategy"):
            gateway.set_mock_strategy("sometimes")

    @pytest.mark.unit
    def test_retry_budget(self) -> None:
        gateway = _gateway(
            Recorder(_by_endpoint), timeout_seconds=1.0, retries=2, retry_delay_seconds=0.1
        )
        assert gateway.retry_budget_seconds == pytest.approx(3.2)


class TestCircuitBreaker:
    @pytest.mark.unit
    def test_opens_after_threshold_and_recovers(self) -> None:
        now = {"t": 0.0}
        breaker = CircuitBreaker(failure_threshold=2, timeout=30.0, clock=lambda: now["t"])

        breaker.on_failure()
        assert breaker.allow_request()
        breaker.on_failure()
        assert breaker.state == "open"
        assert not breaker.allow_request()

        now["t"] = 31.0
        assert breaker.allow_request()
        assert breaker.state == "half_open"

        breaker.on_success()
        assert breaker.state == "closed"

    @pytest.mark.unit
    def test_half_open_failure_reopens(self) -> None:
        now = {"t": 0.0}
        breaker = CircuitBreaker(failure_threshold=1, timeout=10.0, clock=lambda: now["t"])

        breaker.on_failure()
        now["t"] = 11.0
        assert breaker.allow_request()

        breaker.on_failure()
        assert breaker.state == "open"
        assert not breaker.allow_request()

    @pytest.mark.unit
    def test_success_resets_failure_count(self) -> None:
        breaker = CircuitBreaker(failure_threshold=2)

        breaker.on_failure()
        breaker.on_success()
        breaker.on_failure()

        assert breaker.state == "closed"


@pytest_asyncio.fixture
async def trickling_gateway_url() -> AsyncGenerator[str, Any]:
    """
    Local gateway that answers 200 at once, then sends the body one byte at
    a time, each byte well inside httpx's per-read timeout.
    """
    writers: List[asyncio.StreamWriter] = []
    body = json.dumps({"status": "approved", "transaction_id": "txn_slow"}).encode()

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writers.append(writer)
        await reader.read(65536)
        writer.write(
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: application/json\r\n"
            b"Content-Length: " + str(len(body)).encode() + b"\r\n\r\n"
        )
        for index in range(len(body)):
            if writer.is_closing():
                return
            writer.write(body[index : index + 1])
            try:
                await writer.drain()
            except ConnectionError:
                return
            await asyncio.sleep(0.2)

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    yield f"http://127.0.0.1:{port}"

    for writer in writers:
        writer.close()
    server.close()
    await server.wait_closed()


class TestGatewayDeadline:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_trickling_response_stays_inside_retry_budget(
        self, trickling_gateway_url: str
    ) -> None:
        gateway = HttpPaymentGateway(
            base_url=trickling_gateway_url,
            timeout_seconds=0.5,
            retries=1,
            retry_delay_seconds=0,
        )

        started = time.perf_counter()
        result = await gateway.charge(_order("100.00"))
        elapsed = time.perf_counter() - started
        await gateway.aclose()

        assert result.success is False
        assert result.gateway_status == "error"
        assert "did not answer" in result.message
        assert elapsed < gateway.retry_budget_seconds + 0.25
