"""
Payment confirmation email.

Runs as a post-commit task after a payment transaction. Whatever happens here
the payment stays recorded; the outcome is handed back to the caller so a
failed email can be shown separately from the successful payment.
"""

import logging

import psycopg2

from clients.email_client import EmailGatewayClient, EmailGatewayError
from clients.postgres_client import PostgresClient
from core.config import EngineConfig
from core.models import Invoice, InvoiceStatus, NotificationOutcome, Payment

logger = logging.getLogger(__name__)


class PaymentConfirmationSender:
    """Emails the invoice's client a receipt for one payment."""

    def __init__(
        self,
        postgres: PostgresClient,
        email: EmailGatewayClient | None,
        config: EngineConfig | None = None,
    ):
        self.postgres = postgres
        self.email = email
        self.config = config or EngineConfig()

    def __call__(self, payment: Payment, invoice: Invoice) -> NotificationOutcome:
        if not self.config.payment_confirmation_enabled or self.email is None:
            return NotificationOutcome(status="skipped", error="Payment confirmations are disabled")

        try:
            client = self.postgres.execute_single(
                "SELECT name, email FROM clients WHERE id = %s",
                (invoice.client_id,)
            )
        except psycopg2.Error as e:
            logger.error(f"Could not load client for payment confirmation {payment.id}: {e}")
            return NotificationOutcome(status="failed", error="Client lookup failed")

        if client is None or not client.get("email"):
            return NotificationOutcome(status="skipped", error="Client has no email address")

        subject, body = self.render(payment, invoice, client["name"])

        try:
            self.email.send_email(to=client["email"], subject=subject, body=body)
        except EmailGatewayError as e:
            logger.warning(f"Payment confirmation for payment {payment.id} not sent: {e}")
            return NotificationOutcome(status="failed", error=str(e))

        return NotificationOutcome(status="sent")

    def render(self, payment: Payment, invoice: Invoice, client_name: str) -> tuple[str, str]:
        """Subject and plain-text body of the confirmation."""
        subject = f"Payment received for invoice {invoice.invoice_number}"
        body = (
            f"Hello {client_name},\n\n"
            f"We have received your payment of {payment.amount} {invoice.currency} "
            f"on {payment.payment_date.isoformat()} for invoice {invoice.invoice_number}.\n"
        )
        if invoice.status == InvoiceStatus.PAID:
            body += "The invoice is now paid in full. Thank you!\n"
        else:
            body += "Thank you! The invoice remains open.\n"
        body += f"\n{self.config.app_name}\n"
        return subject, body
