"""
Invoice numbering service.

Automatic mode draws numbers from the organization's next_invoice_number
counter with a compare-and-swap UPDATE (WHERE next_invoice_number = <value
read>), retried a bounded number of times when another request won the race.
The counter only ever moves forward: values are never handed back, so a
creation that fails after allocation leaves a gap rather than a duplicate.

Manual mode validates a caller-supplied number for presence and for
uniqueness within the organization (exact, case-sensitive match).
"""

import logging
import re
from uuid import UUID

from clients.postgres_client import PostgresClient
from core.config import EngineConfig
from core.errors import (
    DuplicateInvoiceNumber,
    MissingInvoiceNumber,
    NumberAllocationFailed,
    translate_db_errors,
)
from core.models import NumberingMode, NumberingSettingsUpdate, Organization
from utils.tenant_context import get_current_organization_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

# Counter values whose formatted number was already taken by a manual entry
MAX_SKIPPED_NUMBERS = 100


def format_invoice_number(prefix: str, number: int, width: int = 4) -> str:
    """Automatic invoice number, e.g. ("INV", 5) -> "INV-0005"."""
    return f"{prefix}-{number:0{width}d}"


def luhn_check_digit(digits: str) -> int:
    """Modulo-10 (Luhn) check digit for a string of digits."""
    total = 0
    for position, char in enumerate(reversed(digits)):
        digit = int(char)
        if position % 2 == 0:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return (10 - total % 10) % 10


def payment_reference_for(invoice_number: str) -> str | None:
    """
    Bankgirot OCR payment reference for an invoice number.

    The digits of the invoice number without leading zeros, padded to at
    least two digits, followed by a Luhn check digit: "INV-0042" -> "422".
    Returns None when the number contains no digits.
    """
    digits = re.sub(r"\D", "", invoice_number)
    if not digits:
        return None

    base = str(int(digits)).zfill(2)
    return f"{base}{luhn_check_digit(base)}"


class NumberingService:
    """Allocates and validates invoice numbers per organization."""

    def __init__(self, postgres: PostgresClient, config: EngineConfig | None = None):
        self.postgres = postgres
        self.config = config or EngineConfig()

    def get_organization(self, organization_id: UUID | None = None) -> Organization:
        """
        Read the organization's numbering and subscription settings.

        Raises:
            ValueError: If the organization does not exist
        """
        organization_id = organization_id or get_current_organization_id()

        row = self.postgres.execute_single(
            """
            SELECT id, name, invoice_numbering_mode, invoice_number_prefix,
                   next_invoice_number, subscription_tier
            FROM organizations
            WHERE id = %s
            """,
            (organization_id,)
        )
        if row is None:
            raise ValueError(f"Organization {organization_id} not found")

        return Organization.model_validate(row)

    def number_exists(self, organization_id: UUID, invoice_number: str) -> bool:
        """Whether the exact number is used by any invoice (deleted drafts included)."""
        found = self.postgres.execute_scalar(
            """
            SELECT 1 FROM invoices
            WHERE organization_id = %s AND invoice_number = %s
            LIMIT 1
            """,
            (organization_id, invoice_number)
        )
        return found is not None

    def validate_manual(self, organization_id: UUID, invoice_number: str | None) -> str:
        """
        Accept a caller-supplied invoice number.

        Returns:
            The number with surrounding whitespace removed

        Raises:
            MissingInvoiceNumber: Empty or blank number
            DuplicateInvoiceNumber: Number already used in the organization
        """
        number = (invoice_number or "").strip()
        if not number:
            raise MissingInvoiceNumber()

        if self.number_exists(organization_id, number):
            raise DuplicateInvoiceNumber(number)

        return number

    def allocate(self, organization_id: UUID) -> str:
        """
        Take the next automatic number for an organization.

        Reads the counter, then increments it only if nobody else did in
        between. Losing the race re-reads and retries, up to
        config.number_allocation_attempts times.

        Raises:
            NumberAllocationFailed: Every attempt lost the race
        """
        attempts = self.config.number_allocation_attempts
        conflicts = 0
        skipped = 0

        while True:
            organization = self.get_organization(organization_id)
            current = organization.next_invoice_number

            won = self.postgres.execute_returning(
                """
                UPDATE organizations
                SET next_invoice_number = next_invoice_number + 1, updated_at = %s
                WHERE id = %s AND next_invoice_number = %s
                RETURNING next_invoice_number
                """,
                (now_utc(), organization_id, current)
            )

            if not won:
                conflicts += 1
                logger.info(
                    "Invoice counter conflict for organization %s at %s (attempt %d/%d)",
                    organization_id, current, conflicts, attempts,
                )
                if conflicts >= attempts:
                    raise NumberAllocationFailed(organization_id, conflicts)
                continue

            number = format_invoice_number(
                organization.invoice_number_prefix, current, self.config.invoice_number_width
            )

            if self.number_exists(organization_id, number):
                skipped += 1
                logger.warning(
                    "Skipping invoice number %s for organization %s: already in use",
                    number, organization_id,
                )
                if skipped >= MAX_SKIPPED_NUMBERS:
                    raise NumberAllocationFailed(organization_id, conflicts + skipped)
                continue

            return number

    def preview_next_number(self, organization_id: UUID | None = None) -> str | None:
        """
        Number the next automatic invoice would most likely get.

        Advisory only (another request may take it first). None in manual mode.
        """
        with translate_db_errors("Reading numbering settings"):
            organization = self.get_organization(organization_id)

        if organization.invoice_numbering_mode == NumberingMode.MANUAL:
            return None

        return format_invoice_number(
            organization.invoice_number_prefix,
            organization.next_invoice_number,
            self.config.invoice_number_width,
        )

    def update_settings(self, data: NumberingSettingsUpdate) -> Organization:
        """
        Change numbering mode and/or prefix for the current organization.

        Existing invoices keep their numbers and the counter is left alone,
        so switching manual -> automatic continues where automatic left off.
        """
        organization_id = get_current_organization_id()
        fields = data.model_dump(exclude_unset=True, exclude_none=True, mode="json")

        with translate_db_errors("Updating numbering settings"):
            if not fields:
                return self.get_organization(organization_id)

            assignments = ", ".join(f"{column} = %s" for column in fields)
            rows = self.postgres.execute_returning(
                f"""
                UPDATE organizations
                SET {assignments}, updated_at = %s
                WHERE id = %s
                RETURNING id, name, invoice_numbering_mode, invoice_number_prefix,
                          next_invoice_number, subscription_tier
                """,
                (*fields.values(), now_utc(), organization_id)
            )

        if not rows:
            raise ValueError(f"Organization {organization_id} not found")

        logger.info("Numbering settings updated for organization %s: %s", organization_id, fields)
        return Organization.model_validate(rows[0])
