"""
Handler for invoice activity events.

Writes one log line per lifecycle step (created, sent, payment recorded,
paid), keyed by organization and invoice number, so operations can follow
an organization's invoicing from the application log.
"""

import logging
from typing import Callable

from core.events import (
    InvoiceCreated,
    InvoicePaid,
    InvoiceSent,
    InvoicingEvent,
    PaymentRecorded,
)

logger = logging.getLogger(__name__)

ACTIVITY_EVENTS = (InvoiceCreated, InvoiceSent, InvoicePaid, PaymentRecorded)


def handle_invoice_activity() -> Callable:
    """
    Factory that returns a handler for the invoice activity events.

    Returns:
        Handler callable that logs the event at info level
    """

    def handler(event: InvoicingEvent):
        if isinstance(event, PaymentRecorded):
            payment = event.payment
            logger.info(
                "Payment of %s (%s) recorded on invoice %s for organization %s, status %s",
                payment.amount, payment.payment_method.value,
                event.invoice.invoice_number, payment.organization_id,
                event.invoice.status.value,
            )
            return

        invoice = event.invoice
        if isinstance(event, InvoiceCreated):
            logger.info(
                "%s invoice %s created for organization %s, total %s %s",
                invoice.invoice_type.value, invoice.invoice_number,
                invoice.organization_id, invoice.total_amount, invoice.currency,
            )
        elif isinstance(event, InvoiceSent):
            logger.info(
                "Invoice %s sent for organization %s",
                invoice.invoice_number, invoice.organization_id,
            )
        elif isinstance(event, InvoicePaid):
            logger.info(
                "Invoice %s paid in full for organization %s",
                invoice.invoice_number, invoice.organization_id,
            )

    return handler
