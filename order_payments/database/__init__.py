"""Database package for order payments."""
from .connection import (
    close_db,
    create_engine_from_settings,
    get_session_factory,
    init_db,
    make_session_factory,
)
from .models import Base, Order, Payment, utcnow

__all__ = [
    "Base",
    "Order",
    "Payment",
    "close_db",
    "create_engine_from_settings",
    "get_session_factory",
    "init_db",
    "make_session_factory",
    "utcnow",
]
