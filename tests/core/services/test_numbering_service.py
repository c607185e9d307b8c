"""Tests for NumberingService and invoice number helpers."""

import pytest
from unittest.mock import Mock
from uuid import UUID

from clients.postgres_client import PostgresClient
from core.config import EngineConfig
from core.errors import DuplicateInvoiceNumber, MissingInvoiceNumber, NumberAllocationFailed
from core.models import NumberingSettingsUpdate, NumberingMode
from core.services.numbering_service import (
    MAX_SKIPPED_NUMBERS,
    NumberingService,
    format_invoice_number,
    luhn_check_digit,
    payment_reference_for,
)

# Primary test organization (must match conftest.py)
TEST_ORG_ID = UUID("00000000-0000-0000-0000-0000000000a1")


def _org_row(next_number=1, mode="automatic", prefix="INV", tier="free"):
    return {
        "id": TEST_ORG_ID,
        "name": "Test Org",
        "invoice_numbering_mode": mode,
        "invoice_number_prefix": prefix,
        "next_invoice_number": next_number,
        "subscription_tier": tier,
    }


@pytest.fixture
def postgres():
    return Mock(spec=PostgresClient)


class TestFormatting:

    def test_zero_padded(self):
        assert format_invoice_number("INV", 5) == "INV-0005"

    def test_wider_than_width_is_not_truncated(self):
        assert format_invoice_number("INV", 12345) == "INV-12345"

    def test_custom_width(self):
        assert format_invoice_number("F", 7, width=6) == "F-000007"


class TestPaymentReference:
    """OCR reference: digits without leading zeros, padded to two, plus Luhn digit."""

    @pytest.mark.parametrize("number,expected", [
        ("INV-0042", "422"),
        ("INV-0001", "018"),
        ("INV-0123", "1230"),
    ])
    def test_reference_for_number(self, number, expected):
        assert payment_reference_for(number) == expected

    def test_no_digits(self):
        assert payment_reference_for("DRAFT") is None

    def test_luhn_known_value(self):
        """Classic Luhn example: 7992739871 -> 3."""
        assert luhn_check_digit("7992739871") == 3


class TestManualValidation:

    def test_accepts_unused_number(self, postgres):
        postgres.execute_scalar.return_value = None

        number = NumberingService(postgres).validate_manual(TEST_ORG_ID, "  2024-17 ")

        assert number == "2024-17"
        assert postgres.execute_scalar.call_args.args[1] == (TEST_ORG_ID, "2024-17")

    @pytest.mark.parametrize("number", [None, "", "   "])
    def test_blank_number(self, postgres, number):
        with pytest.raises(MissingInvoiceNumber):
            NumberingService(postgres).validate_manual(TEST_ORG_ID, number)
        postgres.execute_scalar.assert_not_called()

    def test_duplicate_number(self, postgres):
        postgres.execute_scalar.return_value = 1

        with pytest.raises(DuplicateInvoiceNumber, match="2024-17"):
            NumberingService(postgres).validate_manual(TEST_ORG_ID, "2024-17")


class TestAllocate:

    def test_takes_counter_value(self, postgres):
        postgres.execute_single.return_value = _org_row(next_number=42)
        postgres.execute_returning.return_value = [{"next_invoice_number": 43}]
        postgres.execute_scalar.return_value = None

        number = NumberingService(postgres).allocate(TEST_ORG_ID)

        assert number == "INV-0042"
        query, params = postgres.execute_returning.call_args.args
        assert "next_invoice_number = %s" in query
        assert params[1:] == (TEST_ORG_ID, 42)

    def test_retries_after_losing_race(self, postgres):
        """A concurrent increment makes the CAS miss; the re-read value is used."""
        postgres.execute_single.side_effect = [_org_row(next_number=7), _org_row(next_number=8)]
        postgres.execute_returning.side_effect = [[], [{"next_invoice_number": 9}]]
        postgres.execute_scalar.return_value = None

        number = NumberingService(postgres).allocate(TEST_ORG_ID)

        assert number == "INV-0008"
        assert postgres.execute_returning.call_count == 2

    def test_gives_up_after_configured_attempts(self, postgres):
        postgres.execute_single.return_value = _org_row(next_number=7)
        postgres.execute_returning.return_value = []
        service = NumberingService(postgres, EngineConfig(number_allocation_attempts=3))

        with pytest.raises(NumberAllocationFailed) as exc_info:
            service.allocate(TEST_ORG_ID)

        assert exc_info.value.attempts == 3
        assert postgres.execute_returning.call_count == 3

    def test_skips_numbers_taken_manually(self, postgres):
        """A number already entered by hand is passed over, not reused."""
        postgres.execute_single.side_effect = [_org_row(next_number=3), _org_row(next_number=4)]
        postgres.execute_returning.return_value = [{"next_invoice_number": 0}]
        postgres.execute_scalar.side_effect = [1, None]

        number = NumberingService(postgres).allocate(TEST_ORG_ID)

        assert number == "INV-0004"

    def test_bounded_skipping(self, postgres):
        postgres.execute_single.return_value = _org_row(next_number=3)
        postgres.execute_returning.return_value = [{"next_invoice_number": 4}]
        postgres.execute_scalar.return_value = 1

        with pytest.raises(NumberAllocationFailed):
            NumberingService(postgres).allocate(TEST_ORG_ID)

        assert postgres.execute_scalar.call_count == MAX_SKIPPED_NUMBERS


class TestPreview:

    def test_automatic(self, postgres):
        postgres.execute_single.return_value = _org_row(next_number=11, prefix="F")

        assert NumberingService(postgres).preview_next_number(TEST_ORG_ID) == "F-0011"
        postgres.execute_returning.assert_not_called()

    def test_manual_has_no_preview(self, postgres):
        postgres.execute_single.return_value = _org_row(mode="manual")

        assert NumberingService(postgres).preview_next_number(TEST_ORG_ID) is None

    def test_unknown_organization(self, postgres):
        postgres.execute_single.return_value = None

        with pytest.raises(ValueError, match="not found"):
            NumberingService(postgres).get_organization(TEST_ORG_ID)


class TestUpdateSettings:

    def test_updates_only_supplied_fields(self, postgres, as_test_tenant):
        postgres.execute_returning.return_value = [_org_row(mode="manual")]

        org = NumberingService(postgres).update_settings(
            NumberingSettingsUpdate(invoice_numbering_mode=NumberingMode.MANUAL)
        )

        assert org.invoice_numbering_mode == NumberingMode.MANUAL
        query, params = postgres.execute_returning.call_args.args
        assert "invoice_numbering_mode = %s" in query
        assert "invoice_number_prefix" not in query.split("RETURNING")[0]
        assert "next_invoice_number" not in query.split("RETURNING")[0]
        assert params[0] == "manual"
        assert params[-1] == TEST_ORG_ID

    def test_empty_update_reads_settings(self, postgres, as_test_tenant):
        postgres.execute_single.return_value = _org_row()

        org = NumberingService(postgres).update_settings(NumberingSettingsUpdate())

        assert org.invoice_number_prefix == "INV"
        postgres.execute_returning.assert_not_called()


class TestNumberingIntegration:
    """Against a real database."""

    def test_sequential_allocation(self, clean_db, as_test_tenant):
        service = NumberingService(clean_db)

        assert service.allocate(TEST_ORG_ID) == "INV-0001"
        assert service.allocate(TEST_ORG_ID) == "INV-0002"
        assert service.get_organization(TEST_ORG_ID).next_invoice_number == 3

    def test_concurrent_allocation_never_duplicates(self, clean_db):
        from concurrent.futures import ThreadPoolExecutor

        service = NumberingService(clean_db, EngineConfig(number_allocation_attempts=50))

        with ThreadPoolExecutor(max_workers=8) as pool:
            numbers = list(pool.map(lambda _: service.allocate(TEST_ORG_ID), range(20)))

        assert len(set(numbers)) == 20
        assert sorted(numbers) == [format_invoice_number("INV", n) for n in range(1, 21)]
