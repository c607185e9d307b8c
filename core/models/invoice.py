"""Invoice domain models.

Amounts are Decimal with two fractional digits (NUMERIC(14, 2) in storage).
Quantities are signed: credit invoices carry negative quantities, which makes
their totals negative. Tax rate is a percentage (25 = 25%).
"""

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

MONEY = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    """Round to cents, half up (how amounts are printed on the invoice)."""
    return Decimal(value).quantize(MONEY, rounding=ROUND_HALF_UP)


class InvoiceType(str, Enum):
    """DEBET bills the client, CREDIT reverses (part of) a DEBET invoice."""

    DEBET = "DEBET"
    CREDIT = "CREDIT"


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    VOID = "void"


class LineItemInput(BaseModel):
    """One row of an invoice as submitted."""

    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., max_digits=12, decimal_places=3)
    unit_price: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    tax_rate: Decimal = Field(Decimal("25"), ge=0, le=100)

    @property
    def amount(self) -> Decimal:
        """Row amount before tax."""
        return to_money(self.quantity * self.unit_price)


class LineItem(BaseModel):
    """Full line item as stored."""

    id: UUID
    invoice_id: UUID
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    amount: Decimal
    sort_order: int

    model_config = {"from_attributes": True}


class InvoiceTotals(BaseModel):
    """Computed money fields of an invoice."""

    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def calculate_totals(line_items: list[LineItemInput]) -> InvoiceTotals:
    """
    Sum line items into subtotal, tax and total.

    Tax is computed per row and rounded once on the sum, so mixed tax rates
    on one invoice do not accumulate rounding error.
    """
    subtotal = sum((item.amount for item in line_items), Decimal("0"))
    tax = sum(
        (item.amount * item.tax_rate / Decimal("100") for item in line_items),
        Decimal("0"),
    )
    subtotal = to_money(subtotal)
    tax = to_money(tax)
    return InvoiceTotals(subtotal=subtotal, tax_amount=tax, total_amount=subtotal + tax)


class InvoiceCreate(BaseModel):
    """Data required to create an invoice."""

    client_id: UUID
    invoice_type: InvoiceType = InvoiceType.DEBET
    invoice_number: str | None = Field(None, max_length=50)
    credited_invoice_id: UUID | None = None
    currency: str | None = Field(None, min_length=3, max_length=3)
    exchange_rate: Decimal = Field(Decimal("1"), gt=0)
    issue_date: date | None = None
    due_date: date | None = None
    payment_reference: str | None = Field(None, max_length=50)
    notes: str | None = Field(None, max_length=2000)
    line_items: list[LineItemInput] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_dates(self) -> "InvoiceCreate":
        if self.issue_date and self.due_date and self.due_date < self.issue_date:
            raise ValueError("due_date cannot be before issue_date")
        return self


class InvoiceUpdate(BaseModel):
    """Editable fields of a draft invoice. All optional."""

    currency: str | None = Field(None, min_length=3, max_length=3)
    exchange_rate: Decimal | None = Field(None, gt=0)
    issue_date: date | None = None
    due_date: date | None = None
    payment_reference: str | None = Field(None, max_length=50)
    notes: str | None = Field(None, max_length=2000)
    line_items: list[LineItemInput] | None = Field(None, min_length=1)


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: UUID
    organization_id: UUID
    client_id: UUID
    invoice_number: str
    invoice_type: InvoiceType
    status: InvoiceStatus
    credited_invoice_id: UUID | None
    currency: str
    exchange_rate: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    issue_date: date
    due_date: date | None
    payment_reference: str | None
    reminder_count: int = 0
    last_reminder_at: datetime | None = None
    notes: str | None
    sent_at: datetime | None = None
    paid_at: datetime | None = None
    voided_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None
    line_items: list[LineItem] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    @property
    def is_credit(self) -> bool:
        return self.invoice_type == InvoiceType.CREDIT

    @property
    def is_locked(self) -> bool:
        """Only drafts can be edited or deleted."""
        return self.status != InvoiceStatus.DRAFT

    @property
    def absolute_total(self) -> Decimal:
        """Amount that payments settle, regardless of invoice direction."""
        return abs(self.total_amount)
