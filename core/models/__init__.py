"""Core domain models."""

from core.models.organization import (
    Organization, NumberingMode, NumberingSettingsUpdate, SubscriptionTier, QuotaUsage,
)
from core.models.invoice import (
    Invoice, InvoiceCreate, InvoiceUpdate, InvoiceStatus, InvoiceType,
    InvoiceTotals, LineItem, LineItemInput, calculate_totals, to_money,
)
from core.models.payment import (
    Payment, PaymentCreate, PaymentMethod, PaymentResult, Balance, NotificationOutcome,
)
from core.models.invoice_event import InvoiceEvent, AuditEventType
from core.models.document import InvoiceDocument

__all__ = [
    # Organization
    "Organization", "NumberingMode", "NumberingSettingsUpdate", "SubscriptionTier", "QuotaUsage",
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceUpdate", "InvoiceStatus", "InvoiceType",
    "InvoiceTotals", "LineItem", "LineItemInput", "calculate_totals", "to_money",
    # Payment
    "Payment", "PaymentCreate", "PaymentMethod", "PaymentResult", "Balance", "NotificationOutcome",
    # Audit
    "InvoiceEvent", "AuditEventType",
    # Read models
    "InvoiceDocument",
]
