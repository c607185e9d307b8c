"""
Payment ledger rules.

Pure functions over (total, payments). The stored invoice status is a cache
of derive_status(); every write that changes payments recomputes it inside
the same transaction, so the two never drift apart.

Balance is measured against the absolute total, so a credit invoice
(negative total) is settled by positive refund payments the same way a
debet invoice is settled by incoming ones.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable

from core.errors import InvalidAmount, PaymentExceedsBalance
from core.models.invoice import InvoiceStatus, to_money

ZERO = Decimal("0")

# Largest value a numeric(14, 2) column holds
MAX_AMOUNT = Decimal("999999999999.99")


def amount_paid(payment_amounts: Iterable[Decimal]) -> Decimal:
    return sum(payment_amounts, ZERO)


def remaining_balance(total_amount: Decimal, paid: Decimal) -> Decimal:
    """|total| minus what has been paid. Never negative while the ledger invariant holds."""
    return abs(total_amount) - paid


def check_payment_amount(amount: Decimal) -> None:
    """
    Check a payment amount on its own, before any balance is known.

    Raises:
        InvalidAmount: amount is zero or negative, has fractions of a cent,
            or does not fit a money column
    """
    if amount <= ZERO:
        raise InvalidAmount(f"Payment amount must be positive, got {amount}")
    if amount > MAX_AMOUNT:
        raise InvalidAmount(f"Payment amount is too large, got {amount}")
    if to_money(amount) != amount:
        raise InvalidAmount(f"Payment amount cannot have more than two decimals, got {amount}")


def validate_payment_amount(amount: Decimal, remaining: Decimal) -> None:
    """
    Check a payment against the remaining balance.

    Raises:
        InvalidAmount: see check_payment_amount
        PaymentExceedsBalance: amount is larger than what is owed (no overpayment)
    """
    check_payment_amount(amount)
    if amount > remaining:
        raise PaymentExceedsBalance(amount, remaining)


def derive_status(
    current: InvoiceStatus,
    total_amount: Decimal,
    paid: Decimal,
    due_date: date | None = None,
    today: date | None = None,
) -> InvoiceStatus:
    """
    Status implied by the payments recorded against an invoice.

    - void stays void
    - paid in full -> paid (never when nothing has been paid)
    - some payment -> partially_paid
    - no payment: the lifecycle status stands, except that a sent invoice
      past its due date is overdue when `today` is supplied
    """
    if current == InvoiceStatus.VOID:
        return InvoiceStatus.VOID

    if paid > ZERO:
        if paid >= abs(total_amount):
            return InvoiceStatus.PAID
        return InvoiceStatus.PARTIALLY_PAID

    if current in (InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID):
        current = InvoiceStatus.SENT

    if (
        current == InvoiceStatus.SENT
        and due_date is not None
        and today is not None
        and due_date < today
    ):
        return InvoiceStatus.OVERDUE

    return current
