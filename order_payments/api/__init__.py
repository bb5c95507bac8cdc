"""FastAPI application and routes."""
from .main import app
from .schemas import (
    CreateOrderRequest,
    OrderResponse,
    PaymentResponse,
    PayOrderResponse,
)

__all__ = [
    "app",
    "CreateOrderRequest",
    "OrderResponse",
    "PaymentResponse",
    "PayOrderResponse",
]
