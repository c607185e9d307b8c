"""Tests for invoice engine exceptions."""

import pytest
from decimal import Decimal
from uuid import uuid4

import psycopg2

from core.errors import (
    DuplicateInvoiceNumber,
    InvalidAmount,
    InvalidCreditTarget,
    InvalidInvoiceState,
    InvoiceNotFound,
    InvoiceValidationError,
    InvoicingError,
    MissingInvoiceNumber,
    NumberAllocationFailed,
    PaymentExceedsBalance,
    PersistenceFailure,
    QuotaExceeded,
    translate_db_errors,
)


class TestErrorFamilies:
    """Callers branch on the family, not on individual classes."""

    @pytest.mark.parametrize("error", [
        MissingInvoiceNumber(),
        DuplicateInvoiceNumber("INV-0001"),
        InvalidCreditTarget("nope"),
        InvalidAmount("nope"),
        PaymentExceedsBalance(Decimal("2"), Decimal("1")),
        InvalidInvoiceState("nope"),
    ])
    def test_validation_errors(self, error):
        assert isinstance(error, InvoiceValidationError)

    @pytest.mark.parametrize("error", [
        QuotaExceeded(10, 10),
        NumberAllocationFailed(uuid4(), 5),
        PersistenceFailure("down"),
        InvoiceNotFound(uuid4()),
    ])
    def test_non_validation_errors(self, error):
        assert isinstance(error, InvoicingError)
        assert not isinstance(error, InvoiceValidationError)

    def test_codes_are_distinct(self):
        classes = [
            InvoiceNotFound, InvoiceValidationError, MissingInvoiceNumber,
            DuplicateInvoiceNumber, InvalidCreditTarget, InvalidAmount,
            PaymentExceedsBalance, InvalidInvoiceState, QuotaExceeded,
            NumberAllocationFailed, PersistenceFailure,
        ]
        codes = [cls.code for cls in classes]
        assert len(set(codes)) == len(codes)


class TestMessages:

    def test_duplicate_number_names_the_number(self):
        error = DuplicateInvoiceNumber("INV-0042")
        assert error.invoice_number == "INV-0042"
        assert "INV-0042" in str(error)

    def test_quota_exceeded_mentions_upgrade(self):
        error = QuotaExceeded(10, 10)
        assert error.limit == 10
        assert "Upgrade" in str(error)

    def test_not_found_message(self):
        invoice_id = uuid4()
        assert str(InvoiceNotFound(invoice_id)) == f"Invoice {invoice_id} not found"


class TestTranslateDbErrors:

    def test_driver_error_becomes_persistence_failure(self):
        with pytest.raises(PersistenceFailure, match="Loading invoice failed") as exc_info:
            with translate_db_errors("Loading invoice"):
                raise psycopg2.OperationalError("server closed the connection")

        assert isinstance(exc_info.value.__cause__, psycopg2.OperationalError)

    def test_domain_errors_pass_through(self):
        with pytest.raises(InvalidAmount):
            with translate_db_errors("Recording payment"):
                raise InvalidAmount("negative")

    def test_no_error(self):
        with translate_db_errors("Noop"):
            value = 1
        assert value == 1
