"""Exception handlers for the order error taxonomy."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from delivery.errors import OrderError, RateLimited

logger = structlog.get_logger(__name__)


async def order_error_handler(request: Request, exc: OrderError) -> JSONResponse:
    logger.info("order request rejected", path=request.url.path, code=exc.code, **exc.detail)
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.detail.get("retry_after_seconds", 60))}
    return JSONResponse(
        status_code=exc.status_code,
        content=dict(exc.to_dict(), retryable=exc.retryable),
        headers=headers,
    )


def register_delivery_exception_handlers(app: FastAPI) -> None:
    """Protean's handlers plus the order taxonomy."""
    register_exception_handlers(app)
    app.add_exception_handler(OrderError, order_error_handler)
