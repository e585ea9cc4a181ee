"""
Error responses

Maps store and request errors raised anywhere below a route onto JSON
responses with a stable ``error`` code.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from admin_panel.database.errors import StoreConfigurationError, StoreUnavailableError
from admin_panel.reconciliation import InvalidPageRequestError

logger = structlog.get_logger(__name__)


async def invalid_page_handler(request: Request, exc: InvalidPageRequestError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "invalid_request", "message": str(exc)},
    )


async def store_configuration_handler(request: Request, exc: StoreConfigurationError) -> JSONResponse:
    logger.error("Store misconfigured", store=exc.store, error=exc.message, path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "configuration_error", "message": exc.message, "store": exc.store},
    )


async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    logger.warning("Store unavailable", store=exc.store, error=exc.message, path=request.url.path)
    return JSONResponse(
        status_code=503,
        content={"error": "store_unavailable", "message": exc.message, "store": exc.store},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InvalidPageRequestError, invalid_page_handler)
    app.add_exception_handler(StoreConfigurationError, store_configuration_handler)
    app.add_exception_handler(StoreUnavailableError, store_unavailable_handler)
