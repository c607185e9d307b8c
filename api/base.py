"""Unified API response format and error handling."""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from utils.timezone import now_utc


class APIError(BaseModel):
    """Error details in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")


class APIMeta(BaseModel):
    """Metadata included in every API response."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Unique request identifier for tracing")


class APIResponse(BaseModel):
    """
    Unified response format for all API endpoints.

    Every endpoint returns this structure, making client parsing predictable.
    """

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def success_response(data: Any, request_id: str | None = None) -> APIResponse:
    """Create a success response. request_id defaults to a fresh one."""
    return APIResponse(
        success=True,
        data=data,
        error=None,
        meta=APIMeta(
            timestamp=now_utc(),
            request_id=request_id or str(uuid4()),
        ),
    )


def error_response(code: str, message: str, request_id: str | None = None) -> APIResponse:
    """Create an error response."""
    return APIResponse(
        success=False,
        data=None,
        error=APIError(code=code, message=message),
        meta=APIMeta(
            timestamp=now_utc(),
            request_id=request_id or str(uuid4()),
        ),
    )


class ErrorCodes:
    """
    Standard error codes for consistent error handling.

    Invoice engine errors carry the same string as their `code` attribute,
    so the error handlers can pass it straight through.
    """

    # Tenant context
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"

    # Resource Errors
    NOT_FOUND = "NOT_FOUND"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Invoice numbering
    MISSING_INVOICE_NUMBER = "MISSING_INVOICE_NUMBER"
    DUPLICATE_INVOICE_NUMBER = "DUPLICATE_INVOICE_NUMBER"
    NUMBER_ALLOCATION_FAILED = "NUMBER_ALLOCATION_FAILED"

    # Invoice lifecycle
    INVALID_CREDIT_TARGET = "INVALID_CREDIT_TARGET"
    INVALID_INVOICE_STATE = "INVALID_INVOICE_STATE"

    # Payments
    INVALID_AMOUNT = "INVALID_AMOUNT"
    PAYMENT_EXCEEDS_BALANCE = "PAYMENT_EXCEEDS_BALANCE"

    # Subscription
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
