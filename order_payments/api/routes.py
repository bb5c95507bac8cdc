"""
API routes for orders and payments.
"""
import math
import time
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from order_payments.core import OrderService, PaymentProcessor
from order_payments.domain.errors import ErrorKind, PaymentError
from order_payments.monitoring.health import HealthCheck

from .dependencies import get_health_check, get_order_service, get_payment_processor
from .schemas import (
    CreateOrderRequest,
    ErrorResponse,
    HealthCheckResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
    PaymentListResponse,
    PaymentResponse,
    PayOrderResponse,
    ProcessingStatsResponse,
)

logger = structlog.get_logger(__name__)

# Create routers
order_router = APIRouter(prefix="/orders", tags=["orders"])
monitoring_router = APIRouter(tags=["monitoring"])

ERROR_STATUS_CODES = {
    ErrorKind.ORDER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ALREADY_PAID: 422,
    ErrorKind.INVALID_ORDER_STATE: 422,
    ErrorKind.INVALID_AMOUNT: 422,
    ErrorKind.TOO_MANY_ATTEMPTS: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.CONCURRENT_ATTEMPT: status.HTTP_409_CONFLICT,
    ErrorKind.GATEWAY_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INVALID_TRANSITION: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

ERROR_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    code: {"model": ErrorResponse} for code in set(ERROR_STATUS_CODES.values())
}


def to_http_exception(error: PaymentError) -> HTTPException:
    """Map a payment error to its HTTP status, with Retry-After where known."""
    headers = None
    if error.retry_after_seconds is not None:
        headers = {"Retry-After": str(max(1, math.ceil(error.retry_after_seconds)))}
    detail = ErrorResponse(
        error=error.kind.value,
        message=error.message,
        order_id=error.order_id,
        retry_after_seconds=error.retry_after_seconds,
    ).model_dump()
    return HTTPException(
        status_code=ERROR_STATUS_CODES.get(error.kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=detail,
        headers=headers,
    )


def _pages(total: int, per_page: int) -> int:
    return max(1, math.ceil(total / per_page))


@order_router.get(
    "",
    response_model=OrderListResponse,
    summary="List orders",
    description="Orders newest first with their payment counts",
)
async def list_orders(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    service: OrderService = Depends(get_order_service),
) -> Dict[str, Any]:
    rows, total = await service.list_orders(page=page, per_page=per_page)
    return {
        "items": [OrderResponse.from_order(order, count) for order, count in rows],
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": _pages(total, per_page),
    }


@order_router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an order",
    responses=ERROR_RESPONSES,
)
async def create_order(
    request: CreateOrderRequest,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    logger.info(
        "api_create_order_request",
        customer_name=request.customer_name,
        amount=str(request.amount),
    )
    try:
        order = await service.create_order(request.customer_name, request.amount)
    except PaymentError as e:
        logger.warning("api_create_order_rejected", kind=e.kind.value, error=e.message)
        raise to_http_exception(e)
    return OrderResponse.from_order(order, payment_attempts=0)


@order_router.get(
    "/stats",
    response_model=OrderStatsResponse,
    summary="Order statistics",
)
async def order_stats(service: OrderService = Depends(get_order_service)) -> Dict[str, Any]:
    stats = await service.get_order_stats()
    return {
        **stats,
        "total_revenue": float(stats["total_revenue"]),
        "average_order_value": float(stats["average_order_value"]),
    }


@order_router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get an order",
    responses=ERROR_RESPONSES,
)
async def get_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> OrderResponse:
    try:
        order = await service.get_order(order_id)
        stats = await processor.get_processing_stats(order_id)
    except PaymentError as e:
        raise to_http_exception(e)
    return OrderResponse.from_order(order, payment_attempts=stats.total_attempts)


@order_router.post(
    "/{order_id}/pay",
    response_model=PayOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Pay an order",
    description="Run one payment attempt against the gateway",
    responses=ERROR_RESPONSES,
)
async def pay_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> PayOrderResponse:
    """
    Process a payment for an order.

    A declined or failed charge is still a recorded attempt and returns 201
    with ``success = false``.
    """
    start_time = time.time()
    logger.info("api_pay_order_request", order_id=order_id)

    try:
        payment = await processor.process_payment(order_id)
        order = await service.get_order(order_id)
        stats = await processor.get_processing_stats(order_id)
    except PaymentError as e:
        logger.warning("api_pay_order_rejected", order_id=order_id, kind=e.kind.value)
        raise to_http_exception(e)

    logger.info(
        "api_pay_order_completed",
        order_id=order_id,
        payment_id=payment.id,
        payment_status=payment.status.value,
        duration_seconds=time.time() - start_time,
    )

    return PayOrderResponse(
        message="Payment processed successfully" if payment.is_successful else "Payment failed",
        success=payment.is_successful,
        transaction_id=payment.external_transaction_id,
        payment=PaymentResponse.from_payment(payment),
        order=OrderResponse.from_order(order, payment_attempts=stats.total_attempts),
        attempts=ProcessingStatsResponse.from_stats(stats),
    )


@order_router.get(
    "/{order_id}/payments",
    response_model=PaymentListResponse,
    summary="Payment history of an order",
    responses=ERROR_RESPONSES,
)
async def list_payments(
    order_id: str,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    service: OrderService = Depends(get_order_service),
) -> Dict[str, Any]:
    try:
        payments, total = await service.list_payments(order_id, page=page, per_page=per_page)
    except PaymentError as e:
        raise to_http_exception(e)
    return {
        "items": [PaymentResponse.from_payment(payment) for payment in payments],
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": _pages(total, per_page),
    }


@order_router.post(
    "/{order_id}/reset",
    response_model=OrderResponse,
    summary="Reset a failed order",
    description="Administrative reset of a failed order back to pending",
    responses=ERROR_RESPONSES,
)
async def reset_order(
    order_id: str,
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> OrderResponse:
    try:
        order = await processor.reset_order(order_id)
        stats = await processor.get_processing_stats(order_id)
    except PaymentError as e:
        logger.warning("api_reset_order_rejected", order_id=order_id, kind=e.kind.value)
        raise to_http_exception(e)
    return OrderResponse.from_order(order, payment_attempts=stats.total_attempts)


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    try:
        return await health_check.check_all()
    except Exception as e:
        logger.error("health_check_error", error=str(e))
        return {
            "status": "unhealthy",
            "checks": {"error": str(e)},
        }


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
)
async def liveness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    return await health_check.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
)
async def readiness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Readiness probe endpoint."""
    try:
        result = await health_check.readiness()
        if result["status"] != "healthy":
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
        return result
    except HTTPException:
        raise
    except Exception as e:
        logger.error("readiness_check_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "error": str(e)},
        )


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
