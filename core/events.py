"""
Domain events for the invoice lifecycle.

Immutable event objects published after a mutation has committed. Services
publish what happened; handlers react without the publisher knowing who is
listening.

Events carry the full domain objects so handlers don't need to re-fetch state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class InvoicingEvent:
    """Base class for all invoice lifecycle events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class InvoiceEvent(InvoicingEvent):
    """Events related to invoice lifecycle."""
    pass


@dataclass(frozen=True)
class InvoiceCreated(InvoiceEvent):
    """A new draft invoice was created (directly or as a copy)."""
    invoice: Any = None  # Invoice; Any avoids a circular import

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceCreated":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoiceSent(InvoiceEvent):
    """Invoice was sent to the client."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceSent":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoicePaid(InvoiceEvent):
    """Invoice was fully paid."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoicePaid":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class CreditInvoiceCreated(InvoiceEvent):
    """A credit invoice was created against a debet invoice."""
    credit_invoice: Any = None
    credited_invoice: Any = None

    @classmethod
    def create(cls, credit_invoice: Any, credited_invoice: Any) -> "CreditInvoiceCreated":
        return cls(credit_invoice=credit_invoice, credited_invoice=credited_invoice)


# =============================================================================
# PAYMENT EVENTS
# =============================================================================


@dataclass(frozen=True)
class PaymentRecorded(InvoicingEvent):
    """A payment was committed against an invoice."""
    payment: Any = None
    invoice: Any = None

    @classmethod
    def create(cls, payment: Any, invoice: Any) -> "PaymentRecorded":
        return cls(payment=payment, invoice=invoice)
