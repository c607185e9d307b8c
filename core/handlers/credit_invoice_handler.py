"""
Handler for CreditInvoiceCreated events.

Mirrors the credit on the credited invoice's own timeline, so the original
invoice shows that (and by which document) it was credited.
"""

import logging
from typing import Callable

from core.events import CreditInvoiceCreated
from core.models import AuditEventType

logger = logging.getLogger(__name__)


def handle_credit_invoice_created(audit) -> Callable:
    """
    Factory that returns a CreditInvoiceCreated handler.

    Args:
        audit: InvoiceAuditTrail instance

    Returns:
        Handler callable that appends credit_created to the credited invoice
    """

    def handler(event: CreditInvoiceCreated):
        credit = event.credit_invoice
        credited = event.credited_invoice

        audit.record(credited.id, AuditEventType.CREDIT_CREATED, {
            "invoice_number": credited.invoice_number,
            "credit_invoice_id": str(credit.id),
            "credit_invoice_number": credit.invoice_number,
            "credit_total_amount": str(credit.total_amount),
        })

    return handler
