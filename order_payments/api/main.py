"""
Main FastAPI application.

Order payment API with:
- CORS configuration
- Error handling
- Request ID tracking
- Structured logging
- Prometheus metrics
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from order_payments import __version__
from order_payments.config import get_settings
from order_payments.database.connection import close_db, init_db
from order_payments.monitoring.logging import setup_logging
from order_payments.monitoring.metrics import metrics

from .dependencies import shutdown_services
from .routes import monitoring_router, order_router

# Logging must be configured before any module logger is used
setup_logging()
logger = structlog.get_logger(__name__)

settings = get_settings()

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    """Create tables on startup; close the gateway client and engine on shutdown."""
    logger.info(
        "application_startup",
        version=__version__,
        env=settings.app_env,
        lock_backend=settings.lock_backend,
        lock_lease_seconds=settings.lock_lease_seconds,
        gateway_url=None if settings.gateway_use_fake else settings.gateway_url,
        gateway_strategy=settings.gateway_mock_strategy,
        gateway_retry_budget_seconds=settings.gateway_retry_budget_seconds,
    )
    await init_db()

    try:
        yield
    finally:
        logger.info("application_shutdown")
        try:
            await shutdown_services()
        finally:
            await close_db()

app = FastAPI(
    title="Order Payments API",
    description=(
        "Order payment processing with per-order locking, attempt throttling, "
        "gateway retries and an explicit order state machine."
    ),
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

def _route_template(request: Request) -> str:
    """Route path template, so metrics are not labelled per order id."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"

@app.middleware("http")
async def request_context_middleware(request: Request, call_next: Any) -> Response:
    """
    Bind a request id for the duration of the request.

    An incoming ``X-Request-ID`` is honored so callers can correlate their
    own logs; otherwise one is generated. The id is echoed on the response.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    started = time.perf_counter()
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )
    logger.debug("request_started")

    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        duration = time.perf_counter() - started
        metrics.record_http_request(
            request.method, _route_template(request), status_code, duration
        )
        logger.info("request_completed", status_code=status_code, duration_seconds=duration)
        structlog.contextvars.clear_contextvars()

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_exception",
        error_type=type(exc).__name__,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred. Please try again later.",
            "request_id": getattr(request.state, "request_id", None),
        },
    )

app.include_router(order_router)
app.include_router(monitoring_router)

@app.get("/", tags=["root"])
async def root() -> dict[str, Any]:
    """Root endpoint with API information."""
    return {
        "service": settings.app_name,
        "version": __version__,
        "status": "operational",
        "environment": settings.app_env,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics",
    }

def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run(
        "order_payments.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=settings.api_workers if not settings.debug else 1,
        log_level=settings.log_level.lower(),
    )

if __name__ == "__main__":
    run()
