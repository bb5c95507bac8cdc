"""
HTTP payment gateway client with retry logic and response normalization.

Implements:
- Endpoint selection by mock strategy
- Fixed-delay retries for transport failures and per-try deadlines only
- Circuit breaker over consecutive transport/5xx failures
- Normalization of every outcome into a ChargeResult
"""
import asyncio
import random
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from order_payments.config import Settings, retry_budget_seconds
from order_payments.domain.errors import GatewayTransportError
from order_payments.integrations.circuit_breaker import CircuitBreaker
from order_payments.integrations.gateway import (
    FAILURE_ENDPOINT,
    SUCCESS_ENDPOINT,
    ChargeResult,
    MockStrategy,
    PaymentGateway,
    select_endpoint,
)
from order_payments.monitoring.metrics import metrics

if TYPE_CHECKING:
    from order_payments.database.models import Order

logger = structlog.get_logger(__name__)

USER_AGENT = "Order-Payments-API/1.0"


class HttpPaymentGateway(PaymentGateway):
    """
    Gateway client posting charges to the mock settlement endpoints.

    A well-formed ``declined`` answer is a completed call and is never
    retried; only ``httpx.TransportError`` (timeouts, refused connections)
    or a try running past ``timeout_seconds`` of wall-clock time
    triggers another try.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 1.0,
        retries: int = 2,
        retry_delay_seconds: float = 0.1,
        strategy: MockStrategy | str = MockStrategy.AMOUNT_BASED,
        currency: str = "USD",
        circuit_breaker: Optional[CircuitBreaker] = None,
        client: Optional[httpx.AsyncClient] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retries = retries
        self.retry_delay_seconds = retry_delay_seconds
        self.strategy = MockStrategy(strategy)
        self.currency = currency
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._rng = rng or random.Random()

        logger.info(
            "gateway_client_initialized",
            base_url=self.base_url,
            strategy=self.strategy.value,
            timeout_seconds=timeout_seconds,
            retries=retries,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpPaymentGateway":
        return cls(
            base_url=settings.gateway_url,
            timeout_seconds=settings.gateway_timeout_seconds,
            retries=settings.gateway_retries,
            retry_delay_seconds=settings.gateway_retry_delay_seconds,
            strategy=settings.gateway_mock_strategy,
            currency=settings.gateway_currency,
            circuit_breaker=CircuitBreaker(
                failure_threshold=settings.gateway_circuit_failure_threshold,
                timeout=settings.gateway_circuit_reset_seconds,
            ),
        )

    @property
    def available(self) -> bool:
        return self.circuit_breaker.allow_request()

    @property
    def retry_budget_seconds(self) -> float:
        return retry_budget_seconds(self.timeout_seconds, self.retries, self.retry_delay_seconds)

    def set_mock_strategy(self, strategy: str) -> "HttpPaymentGateway":
        """
        Switch the endpoint selection strategy.

        Raises:
            ValueError: If the strategy name is unknown
        """
        try:
            self.strategy = MockStrategy(strategy)
        except ValueError:
            raise ValueError(f"Invalid mock strategy: {strategy}") from None
        return self

    def get_config(self) -> Dict[str, Any]:
        return {
            "base_url": self.base_url,
            "timeout": self.timeout_seconds,
            "retries": self.retries,
            "retry_delay": self.retry_delay_seconds,
            "mock_strategy": self.strategy.value,
            "endpoints": {"success": SUCCESS_ENDPOINT, "failure": FAILURE_ENDPOINT},
        }

    def determine_endpoint(self, order: "Order") -> str:
        return select_endpoint(order.amount, self.strategy, self._rng)

    def build_payload(self, order: "Order") -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        return {
            "order_id": order.id,
            "amount": str(order.amount),
            "customer_name": order.customer_name,
            "currency": self.currency,
            "timestamp": now.isoformat(),
            "reference": f"ORD_{order.id}_{int(now.timestamp())}",
            "mock_strategy": self.strategy.value,
        }

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
            "X-Mock-Strategy": self.strategy.value,
        }

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "gateway_request_retry",
            attempt=retry_state.attempt_number,
            error=str(error),
            error_type=type(error).__name__,
        )

    async def _post(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        """
        POST with fixed-delay retries on transport failures.

        httpx applies ``timeout`` per connect/read/write phase, so a server
        trickling its body could hold one try open indefinitely. Each try is
        also capped at ``timeout_seconds`` of wall-clock time, which keeps the
        whole call inside ``retry_budget_seconds``.

        Raises:
            GatewayTransportError: If every try failed at the transport level
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception_type((httpx.TransportError, asyncio.TimeoutError)),
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_fixed(self.retry_delay_seconds),
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await asyncio.wait_for(
                        self._client.post(
                            url,
                            json=payload,
                            headers=self._headers(),
                            timeout=self.timeout_seconds,
                        ),
                        timeout=self.timeout_seconds,
                    )
        except asyncio.TimeoutError as e:
            raise GatewayTransportError(
                f"Gateway did not answer within {self.timeout_seconds:.2f}s",
                attempts=self.retries + 1,
                original_error=e,
            ) from e
        except httpx.TransportError as e:
            raise GatewayTransportError(
                str(e) or type(e).__name__,
                attempts=self.retries + 1,
                original_error=e,
            ) from e
        raise GatewayTransportError("Gateway request was not attempted", attempts=0)

    async def charge(self, order: "Order") -> ChargeResult:
        """
        Charge an order.

        Returns:
            ChargeResult: Normalized outcome; transport and HTTP failures
            come back as ``success=False``
        """
        endpoint = self.determine_endpoint(order)
        url = f"{self.base_url}{endpoint}"
        strategy = self.strategy.value

        if not self.circuit_breaker.allow_request():
            logger.warning("gateway_circuit_open", order_id=order.id)
            return ChargeResult.error("Gateway circuit open", endpoint=endpoint, strategy=strategy)

        logger.info(
            "gateway_charge_started",
            order_id=order.id,
            endpoint=endpoint,
            strategy=strategy,
            amount=str(order.amount),
            url=url,
        )

        start_time = time.perf_counter()
        try:
            response = await self._post(url, self.build_payload(order))
        except GatewayTransportError as e:
            self.circuit_breaker.on_failure()
            logger.error(
                "gateway_transport_error",
                order_id=order.id,
                url=url,
                attempts=e.attempts,
                error=str(e),
            )
            result = ChargeResult.error(
                f"Gateway transport error: {e}", endpoint=endpoint, strategy=strategy
            )
        except httpx.HTTPError as e:
            self.circuit_breaker.on_failure()
            logger.error("gateway_request_error", order_id=order.id, url=url, error=str(e))
            result = ChargeResult.error(
                f"Gateway request error: {e}", endpoint=endpoint, strategy=strategy
            )
        else:
            if response.status_code >= 500:
                self.circuit_breaker.on_failure()
            else:
                self.circuit_breaker.on_success()
            result = self._normalize(order, response, endpoint)

        metrics.record_gateway_call(result.gateway_status, time.perf_counter() - start_time)
        return result

    def _normalize(self, order: "Order", response: httpx.Response, endpoint: str) -> ChargeResult:
        strategy = self.strategy.value
        log_context = {
            "order_id": order.id,
            "endpoint": endpoint,
            "http_status": response.status_code,
        }

        if not response.is_success:
            logger.error("gateway_http_error", response_body=response.text[:500], **log_context)
            return ChargeResult(
                success=False,
                message=f"Gateway HTTP error: {response.status_code}",
                gateway_status="http_error",
                http_status=response.status_code,
                endpoint=endpoint,
                strategy=strategy,
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            logger.error("gateway_malformed_response", response_body=response.text[:500], **log_context)
            return ChargeResult.error(
                "Malformed gateway response",
                http_status=response.status_code,
                endpoint=endpoint,
                strategy=strategy,
            )

        status = data.get("status")
        is_success = status == "approved"
        gateway_status = status if isinstance(status, str) and status else "unknown"
        message = data.get("message") or (
            "Payment processed successfully" if is_success else "Payment was declined"
        )

        logger.info(
            "gateway_response",
            gateway_status=gateway_status,
            success=is_success,
            message=message,
            **log_context,
        )

        return ChargeResult(
            success=is_success,
            message=str(message),
            gateway_status=gateway_status,
            external_transaction_id=data.get("transaction_id"),
            http_status=response.status_code,
            data=data,
            endpoint=endpoint,
            strategy=strategy,
        )

    async def health_check(self) -> Dict[str, Any]:
        return {
            "healthy": self.circuit_breaker.state != "open",
            "circuit_state": self.circuit_breaker.state,
            "base_url": self.base_url,
            "mock_strategy": self.strategy.value,
        }

    async def aclose(self) -> None:
        await self._client.aclose()
