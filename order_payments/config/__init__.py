"""Configuration package for order payments."""
from .settings import Settings, get_settings, retry_budget_seconds

__all__ = ["Settings", "get_settings", "retry_budget_seconds"]
