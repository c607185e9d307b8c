"""Tests for api/base.py - Unified API response format."""

from datetime import timezone

import pytest

from api.base import (
    success_response,
    error_response,
    ErrorCodes,
)
from core.errors import (
    DuplicateInvoiceNumber,
    InvalidAmount,
    InvalidCreditTarget,
    InvalidInvoiceState,
    InvoiceNotFound,
    MissingInvoiceNumber,
    NumberAllocationFailed,
    PaymentExceedsBalance,
    PersistenceFailure,
    QuotaExceeded,
)


class TestSuccessResponse:
    """Tests for success_response()."""

    def test_structure(self):
        resp = success_response({"foo": "bar"})
        assert resp.success is True
        assert resp.data == {"foo": "bar"}
        assert resp.error is None

    def test_request_id_generated(self):
        resp = success_response({})
        assert len(resp.meta.request_id) > 0

    def test_request_id_passed_through(self):
        resp = success_response({}, "req-123")
        assert resp.meta.request_id == "req-123"

    def test_timestamp_is_utc(self):
        resp = success_response({})
        assert resp.meta.timestamp.tzinfo == timezone.utc


class TestErrorResponse:
    """Tests for error_response()."""

    def test_structure(self):
        resp = error_response("TEST_ERROR", "Something went wrong")
        assert resp.success is False
        assert resp.data is None
        assert resp.error.code == "TEST_ERROR"
        assert resp.error.message == "Something went wrong"

    def test_request_id_generated(self):
        resp = error_response("ERR", "msg")
        assert len(resp.meta.request_id) > 0

    def test_timestamp_is_utc(self):
        resp = error_response("ERR", "msg")
        assert resp.meta.timestamp.tzinfo == timezone.utc


class TestErrorCodes:
    """Every engine error code has a matching ErrorCodes constant."""

    @pytest.mark.parametrize("error_class", [
        InvoiceNotFound,
        MissingInvoiceNumber,
        DuplicateInvoiceNumber,
        InvalidCreditTarget,
        InvalidAmount,
        PaymentExceedsBalance,
        InvalidInvoiceState,
        QuotaExceeded,
        NumberAllocationFailed,
        PersistenceFailure,
    ])
    def test_engine_code_is_listed(self, error_class):
        assert getattr(ErrorCodes, error_class.code) == error_class.code

    def test_has_internal_error(self):
        assert ErrorCodes.INTERNAL_ERROR == "INTERNAL_ERROR"

    def test_has_not_authenticated(self):
        assert ErrorCodes.NOT_AUTHENTICATED == "NOT_AUTHENTICATED"
