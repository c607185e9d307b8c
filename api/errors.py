"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from core.errors import (
    DuplicateInvoiceNumber,
    InvoiceNotFound,
    InvoiceValidationError,
    InvoicingError,
    NumberAllocationFailed,
    PersistenceFailure,
    QuotaExceeded,
)

logger = logging.getLogger(__name__)


def status_for(exc: InvoicingError) -> int:
    """HTTP status for an invoice engine error."""
    if isinstance(exc, InvoiceNotFound):
        return 404
    if isinstance(exc, DuplicateInvoiceNumber):
        return 409
    if isinstance(exc, InvoiceValidationError):
        return 400
    if isinstance(exc, QuotaExceeded):
        return 402
    if isinstance(exc, (NumberAllocationFailed, PersistenceFailure)):
        return 503
    return 500


def _json(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message, request_id).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(InvoicingError)
    async def invoicing_error_handler(request: Request, exc: InvoicingError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{exc.code} on {request.url.path}: {exc}")
        return _json(request, status_code, exc.code, str(exc))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        message = str(exc)
        if "not found" in message.lower():
            return _json(request, 404, ErrorCodes.NOT_FOUND, message)
        return _json(request, 400, ErrorCodes.INVALID_REQUEST, message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _json(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _json(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
