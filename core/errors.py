"""
Typed exceptions for invoice lifecycle failures.

Three families, handled differently at the boundary:

- InvoiceValidationError: the request was rejected; show a targeted message
  and keep the form open.
- QuotaExceeded: not an error in the request; route the caller to upgrade.
- NumberAllocationFailed / PersistenceFailure: the attempt failed; state is
  unchanged or indeterminate and the caller may resubmit after re-querying.
"""

from contextlib import contextmanager
from decimal import Decimal
from uuid import UUID

import psycopg2


class InvoicingError(Exception):
    """Base class for invoice engine errors. `code` is machine-readable."""

    code = "INVOICING_ERROR"


class InvoiceNotFound(InvoicingError):
    """Invoice does not exist in the current organization (or was deleted)."""

    code = "NOT_FOUND"

    def __init__(self, invoice_id: UUID):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice {invoice_id} not found")


# =============================================================================
# VALIDATION
# =============================================================================


class InvoiceValidationError(InvoicingError):
    """Rejected input. Recoverable by the caller correcting the request."""

    code = "VALIDATION_ERROR"


class MissingInvoiceNumber(InvoiceValidationError):
    """Manual numbering mode and no invoice number supplied."""

    code = "MISSING_INVOICE_NUMBER"

    def __init__(self):
        super().__init__("Invoice number is required in manual numbering mode")


class DuplicateInvoiceNumber(InvoiceValidationError):
    """Invoice number already used within the organization."""

    code = "DUPLICATE_INVOICE_NUMBER"

    def __init__(self, invoice_number: str):
        self.invoice_number = invoice_number
        super().__init__(f"Invoice number '{invoice_number}' is already in use")


class InvalidCreditTarget(InvoiceValidationError):
    """Credit invoice references an invoice it may not credit."""

    code = "INVALID_CREDIT_TARGET"


class InvalidAmount(InvoiceValidationError):
    """Amount has the wrong sign or is zero where a positive value is required."""

    code = "INVALID_AMOUNT"


class PaymentExceedsBalance(InvoiceValidationError):
    """Payment larger than what is still owed on the invoice."""

    code = "PAYMENT_EXCEEDS_BALANCE"

    def __init__(self, amount: Decimal, remaining_balance: Decimal):
        self.amount = amount
        self.remaining_balance = remaining_balance
        super().__init__(
            f"Payment amount {amount} exceeds remaining balance of {remaining_balance}"
        )


class InvalidInvoiceState(InvoiceValidationError):
    """Operation not allowed in the invoice's current status (edit lock, void, paid)."""

    code = "INVALID_INVOICE_STATE"


# =============================================================================
# BUSINESS CONDITIONS
# =============================================================================


class QuotaExceeded(InvoicingError):
    """
    Free-tier invoice limit reached.

    Deliberately not an InvoiceValidationError: the request itself is fine,
    the organization needs to upgrade.
    """

    code = "QUOTA_EXCEEDED"

    def __init__(self, limit: int, invoice_count: int):
        self.limit = limit
        self.invoice_count = invoice_count
        super().__init__(
            f"Free plan allows {limit} invoices ({invoice_count} used). Upgrade to create more."
        )


# =============================================================================
# FAILURES
# =============================================================================


class NumberAllocationFailed(InvoicingError):
    """Counter kept changing under us. Safe to resubmit the creation request."""

    code = "NUMBER_ALLOCATION_FAILED"

    def __init__(self, organization_id: UUID, attempts: int):
        self.organization_id = organization_id
        self.attempts = attempts
        super().__init__(
            f"Could not allocate an invoice number for organization {organization_id} "
            f"after {attempts} attempts"
        )


class PersistenceFailure(InvoicingError):
    """Underlying data store error. Outcome is indeterminate; re-query before retrying."""

    code = "PERSISTENCE_FAILURE"


@contextmanager
def translate_db_errors(operation: str):
    """Re-raise driver errors as PersistenceFailure, leaving domain errors untouched."""
    try:
        yield
    except psycopg2.Error as e:
        raise PersistenceFailure(f"{operation} failed: {e}") from e
