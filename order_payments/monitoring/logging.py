"""
Structured logging configuration.

Every log line is one JSON object: structlog renders the event, stdlib
logging carries it to stdout through python-json-logger. Payment cycles
bind ``correlation_id`` and HTTP requests bind ``request_id``, both via
contextvars, so they appear on every line emitted inside them.
"""
import logging
import sys
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog
from pythonjsonlogger import jsonlogger

from order_payments.config import Settings, get_settings

# Libraries whose INFO output drowns the payment events
_QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "redis")


def add_app_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Tag each event with the service name and environment."""
    settings = get_settings()
    event_dict["app_name"] = settings.app_name
    event_dict["app_env"] = settings.app_env
    return event_dict


def render_domain_values(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Log amounts as plain decimal strings and statuses by value."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
        elif isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def _renderer(settings: Settings) -> Any:
    if settings.debug and not settings.is_production:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structlog and the root stdlib logger.

    Safe to call more than once; the root handler is replaced each time.
    """
    settings = settings or get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_app_context,
            render_domain_values,
            _renderer(settings),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "@timestamp", "levelname": "level", "name": "logger"},
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(settings.log_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
        lock_backend=settings.lock_backend,
        gateway_use_fake=settings.gateway_use_fake,
    )
