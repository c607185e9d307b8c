"""Payment domain models.

Payments are append-only: there is no update or delete model.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.invoice import Invoice


class PaymentMethod(str, Enum):
    """How the client paid."""

    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    CASH = "cash"
    SWISH = "swish"
    OTHER = "other"


class PaymentCreate(BaseModel):
    """
    Data required to record a payment.

    Amount is not range-checked here; the ledger rejects non-positive,
    sub-cent and oversized amounts with InvalidAmount so callers get the
    specific error kind.
    """

    amount: Decimal
    payment_date: date | None = None
    payment_method: PaymentMethod
    reference: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=1000)


class Payment(BaseModel):
    """Full payment entity as stored."""

    id: UUID
    invoice_id: UUID
    organization_id: UUID
    user_id: UUID
    amount: Decimal
    payment_date: date
    payment_method: PaymentMethod
    reference: str | None
    notes: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class Balance(BaseModel):
    """What an invoice is worth, what has been paid, and what is left."""

    invoice_id: UUID
    total_amount: Decimal
    amount_paid: Decimal
    remaining_balance: Decimal


class NotificationOutcome(BaseModel):
    """Result of the post-commit confirmation email, reported next to the payment."""

    status: Literal["sent", "failed", "skipped"]
    error: str | None = None

    @property
    def delivered(self) -> bool:
        return self.status == "sent"


class PaymentResult(BaseModel):
    """A committed payment, the invoice after status recomputation, and the email outcome."""

    payment: Payment
    invoice: Invoice
    notification: NotificationOutcome
