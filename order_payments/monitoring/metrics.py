"""
Prometheus metrics for payment processing.

Tracks:
- Payment attempts by outcome
- Processing duration
- Rejections by error kind
- Gateway calls and latency
- Order lock acquisitions
- Gateway circuit breaker state
- HTTP requests by route template
"""
from prometheus_client import Counter, Gauge, Histogram

payment_attempts_total = Counter(
    "payment_attempts_total",
    "Total completed payment attempts",
    ["status"],  # success, failed
)

payment_processing_duration_seconds = Histogram(
    "payment_processing_duration_seconds",
    "Payment processing duration in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

payment_rejections_total = Counter(
    "payment_rejections_total",
    "Payment attempts rejected before charging",
    ["kind"],
)

gateway_requests_total = Counter(
    "gateway_requests_total",
    "Total gateway charge calls",
    ["gateway_status"],  # approved, declined, http_error, error, unknown
)

gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "Gateway charge duration in seconds including retries",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

gateway_circuit_breaker_state = Gauge(
    "gateway_circuit_breaker_state",
    "Gateway circuit breaker state (0=closed, 1=open, 2=half_open)",
)

order_lock_acquisitions_total = Counter(
    "order_lock_acquisitions_total",
    "Order lock acquisition attempts",
    ["status"],  # acquired, busy, released
)

order_lock_hold_seconds = Histogram(
    "order_lock_hold_seconds",
    "Order lock hold duration in seconds",
    buckets=(0.05, 0.1, 0.5, 1.0, 2.5, 5.0),
)

order_events_emitted_total = Counter(
    "order_events_emitted_total",
    "Order status notifications emitted",
    ["kind", "status"],  # status: emitted, failed
)

http_requests_total = Counter(
    "http_requests_total",
    "HTTP requests served",
    ["method", "route", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "route"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0),
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_payment_attempt(status: str, duration_seconds: float) -> None:
        payment_attempts_total.labels(status=status).inc()
        payment_processing_duration_seconds.observe(duration_seconds)

    @staticmethod
    def record_rejection(kind: str) -> None:
        payment_rejections_total.labels(kind=kind).inc()

    @staticmethod
    def record_gateway_call(gateway_status: str, duration_seconds: float) -> None:
        gateway_requests_total.labels(gateway_status=gateway_status).inc()
        gateway_request_duration_seconds.observe(duration_seconds)

    @staticmethod
    def set_circuit_breaker_state(state: str) -> None:
        """Set circuit breaker state."""
        state_map = {"closed": 0, "open": 1, "half_open": 2}
        gateway_circuit_breaker_state.set(state_map.get(state, 0))

    @staticmethod
    def record_order_lock(status: str, duration_seconds: float = 0) -> None:
        """Record order lock acquisition, and hold time on release."""
        order_lock_acquisitions_total.labels(status=status).inc()
        if duration_seconds > 0:
            order_lock_hold_seconds.observe(duration_seconds)

    @staticmethod
    def record_order_event(kind: str, status: str) -> None:
        order_events_emitted_total.labels(kind=kind, status=status).inc()

    @staticmethod
    def record_http_request(
        method: str, route: str, status_code: int, duration_seconds: float
    ) -> None:
        http_requests_total.labels(
            method=method, route=route, status_code=str(status_code)
        ).inc()
        http_request_duration_seconds.labels(method=method, route=route).observe(
            duration_seconds
        )


# Export singleton instance
metrics = MetricsCollector()
