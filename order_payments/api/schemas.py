"""
Pydantic schemas for API request/response models.
"""
import re
import string
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from order_payments.database.models import Order, Payment
from order_payments.database.repository import ProcessingStats

MIN_AMOUNT = Decimal("0.01")
MAX_AMOUNT = Decimal("999999.99")


class CreateOrderRequest(BaseModel):
    """Request schema for creating an order."""

    customer_name: str = Field(..., description="Customer name (letters, spaces, hyphens, dots)")
    amount: Decimal = Field(..., description="Order amount, 0.01 to 999999.99")

    @field_validator("customer_name")
    @classmethod
    def normalize_customer_name(cls, v: str) -> str:
        """Collapse whitespace and title-case each word."""
        v = " ".join(v.split())
        if len(v) < 2:
            raise ValueError("Customer name must be at least 2 characters")
        if len(v) > 100:
            raise ValueError("Customer name cannot exceed 100 characters")
        if not all(ch.isalpha() or ch in " -." for ch in v):
            raise ValueError("Customer name may only contain letters, spaces, hyphens and dots")
        return string.capwords(v.lower())

    @field_validator("amount", mode="before")
    @classmethod
    def clean_amount(cls, v: Any) -> Any:
        """Accept a comma decimal separator and drop stray characters."""
        if isinstance(v, str):
            v = re.sub(r"[^\d.]", "", v.replace(",", "."))
            try:
                return Decimal(v)
            except InvalidOperation:
                raise ValueError("Amount must be a valid decimal (e.g. 100.50)")
        return v

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        exponent = v.as_tuple().exponent
        if isinstance(exponent, int) and exponent < -2:
            raise ValueError("Amount can have at most 2 decimal places")
        if v < MIN_AMOUNT:
            raise ValueError("Amount must be at least 0.01")
        if v > MAX_AMOUNT:
            raise ValueError("Amount cannot exceed 999999.99")
        return v.quantize(Decimal("0.01"))

    model_config = {
        "json_schema_extra": {
            "examples": [{"customer_name": "Jane Doe", "amount": "100.00"}]
        }
    }


class OrderResponse(BaseModel):
    """Response schema for an order."""

    id: str = Field(..., description="Order ID")
    customer_name: str = Field(..., description="Customer name")
    amount: float = Field(..., description="Order amount")
    status: str = Field(..., description="Order status")
    status_label: str = Field(..., description="Human readable status")
    payment_attempts: Optional[int] = Field(default=None, description="Number of payments")
    created_at: str = Field(..., description="Creation timestamp (ISO 8601)")
    updated_at: str = Field(..., description="Last update timestamp (ISO 8601)")

    @classmethod
    def from_order(cls, order: Order, payment_attempts: Optional[int] = None) -> "OrderResponse":
        return cls(
            id=order.id,
            customer_name=order.customer_name,
            amount=float(order.amount),
            status=order.status.value,
            status_label=order.status.label,
            payment_attempts=payment_attempts,
            created_at=order.created_at.isoformat(),
            updated_at=order.updated_at.isoformat(),
        )


class PaymentResponse(BaseModel):
    """Response schema for a payment attempt."""

    id: str = Field(..., description="Payment ID")
    order_id: str = Field(..., description="Order ID")
    status: str = Field(..., description="Payment status (success/failed)")
    status_label: str = Field(..., description="Human readable status")
    external_transaction_id: Optional[str] = Field(
        default=None, description="Gateway transaction ID"
    )
    external_message: str = Field(..., description="Gateway message")
    external_response: Optional[Dict[str, Any]] = Field(
        default=None, description="Normalized gateway response"
    )
    created_at: str = Field(..., description="Creation timestamp (ISO 8601)")

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            id=payment.id,
            order_id=payment.order_id,
            status=payment.status.value,
            status_label="Successful" if payment.is_successful else "Failed",
            external_transaction_id=payment.external_transaction_id,
            external_message=payment.external_message,
            external_response=payment.external_response,
            created_at=payment.created_at.isoformat(),
        )


class ProcessingStatsResponse(BaseModel):
    """Attempt statistics for one order."""

    total_attempts: int
    successful_attempts: int
    failed_attempts: int
    last_attempt_at: Optional[str] = None

    @classmethod
    def from_stats(cls, stats: ProcessingStats) -> "ProcessingStatsResponse":
        return cls(**stats.to_dict())


class PayOrderResponse(BaseModel):
    """Response schema for a processed payment attempt."""

    message: str = Field(..., description="Outcome summary")
    success: bool = Field(..., description="Whether the charge succeeded")
    transaction_id: Optional[str] = Field(default=None, description="Gateway transaction ID")
    payment: PaymentResponse
    order: OrderResponse
    attempts: ProcessingStatsResponse


class OrderListResponse(BaseModel):
    items: List[OrderResponse]
    total: int
    page: int
    per_page: int
    pages: int


class PaymentListResponse(BaseModel):
    items: List[PaymentResponse]
    total: int
    page: int
    per_page: int
    pages: int


class OrderStatsResponse(BaseModel):
    """Aggregate order statistics."""

    total_orders: int
    pending_orders: int
    paid_orders: int
    failed_orders: int
    total_revenue: float = Field(..., description="Sum of paid order amounts")
    average_order_value: float = Field(..., description="Average paid order amount")


class ErrorResponse(BaseModel):
    """Body of a rejected request."""

    error: str = Field(..., description="Error kind")
    message: str = Field(..., description="Error message")
    order_id: Optional[str] = Field(default=None, description="Order ID")
    retry_after_seconds: Optional[float] = Field(
        default=None, description="Suggested wait before retrying"
    )


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")
