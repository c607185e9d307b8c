"""Read model for rendering an invoice to a client-facing document."""

from decimal import Decimal

from pydantic import BaseModel, Field

from core.models.invoice import Invoice
from core.models.payment import Payment


class InvoiceDocument(BaseModel):
    """An invoice together with its client and payment summary."""

    invoice: Invoice
    client_name: str
    client_email: str | None = None
    payments: list[Payment] = Field(default_factory=list)
    amount_paid: Decimal
    remaining_balance: Decimal
    credits: list[Invoice] = Field(default_factory=list)
