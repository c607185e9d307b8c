"""
Payment ledger service.

Recording a payment is one transaction: the invoice row is locked, the paid
sum re-read under the lock, the amount checked against what is left, the
payment inserted and the invoice status recomputed. Two concurrent payments
on one invoice therefore serialize, and the sum of payments can never pass
the invoice's absolute total.

Audit events, domain events and the confirmation email all happen after
commit. None of them can undo a recorded payment.
"""

import logging
from decimal import Decimal
from typing import Callable
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import InvoiceAuditTrail
from core.errors import (
    InvalidInvoiceState,
    InvoiceNotFound,
    translate_db_errors,
)
from core.event_bus import EventBus
from core.events import InvoicePaid, PaymentRecorded
from core.ledger import (
    check_payment_amount,
    derive_status,
    remaining_balance,
    validate_payment_amount,
)
from core.models import (
    AuditEventType,
    Balance,
    Invoice,
    InvoiceStatus,
    NotificationOutcome,
    Payment,
    PaymentCreate,
    PaymentResult,
)
from utils.tenant_context import get_current_organization_id, get_current_user_id
from utils.timezone import now_utc, today_utc

logger = logging.getLogger(__name__)

ConfirmationSender = Callable[[Payment, Invoice], NotificationOutcome]


class PaymentService:
    """Records payments and reports balances."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: InvoiceAuditTrail,
        event_bus: EventBus,
        confirmation: ConfirmationSender | None = None,
    ):
        self.postgres = postgres
        self.audit = audit
        self.event_bus = event_bus
        self.confirmation = confirmation

    def record_payment(self, invoice_id: UUID, data: PaymentCreate) -> PaymentResult:
        """
        Record a payment against an invoice.

        Args:
            invoice_id: Invoice being paid
            data: Amount, date (defaults to today), method, reference, notes

        Returns:
            The committed payment, the invoice with its recomputed status,
            and the outcome of the confirmation email

        Raises:
            InvalidAmount: amount <= 0, finer than a cent, or too large
            InvoiceNotFound: No such invoice in the current organization
            InvalidInvoiceState: Invoice is void
            PaymentExceedsBalance: amount > remaining balance
            PersistenceFailure: Store error; the payment was not recorded
        """
        check_payment_amount(data.amount)

        organization_id = get_current_organization_id()
        user_id = get_current_user_id()
        payment_date = data.payment_date or today_utc()

        with translate_db_errors("Recording payment"):
            with self.postgres.transaction() as tx:
                tx.execute(
                    """
                    SELECT * FROM invoices
                    WHERE id = %s AND organization_id = %s AND deleted_at IS NULL
                    FOR UPDATE
                    """,
                    (invoice_id, organization_id)
                )
                row = tx.fetchone()
                if row is None:
                    raise InvoiceNotFound(invoice_id)

                invoice = Invoice.model_validate(row)
                if invoice.status == InvoiceStatus.VOID:
                    raise InvalidInvoiceState(
                        f"Invoice {invoice.invoice_number} is void and cannot receive payments"
                    )

                tx.execute(
                    "SELECT COALESCE(SUM(amount), 0) AS paid FROM payments WHERE invoice_id = %s",
                    (invoice_id,)
                )
                paid = Decimal(tx.fetchone()["paid"])

                validate_payment_amount(data.amount, remaining_balance(invoice.total_amount, paid))

                now = now_utc()
                tx.execute(
                    """
                    INSERT INTO payments (
                        id, invoice_id, organization_id, user_id, amount,
                        payment_date, payment_method, reference, notes, created_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        uuid4(), invoice_id, organization_id, user_id, data.amount,
                        payment_date, data.payment_method.value, data.reference, data.notes, now
                    )
                )
                payment = Payment.model_validate(tx.fetchone())

                new_status = derive_status(invoice.status, invoice.total_amount, paid + data.amount)
                paid_at = now if new_status == InvoiceStatus.PAID else invoice.paid_at

                tx.execute(
                    """
                    UPDATE invoices
                    SET status = %s, paid_at = %s, updated_at = %s
                    WHERE id = %s
                    RETURNING *
                    """,
                    (new_status.value, paid_at, now, invoice_id)
                )
                updated = Invoice.model_validate(tx.fetchone())

        logger.info(
            "Payment %s of %s recorded on invoice %s (%s -> %s)",
            payment.id, payment.amount, invoice.invoice_number,
            invoice.status.value, updated.status.value,
        )

        self.audit.record(invoice_id, AuditEventType.PAYMENT_RECORDED, {
            "invoice_number": invoice.invoice_number,
            "amount": str(payment.amount),
            "payment_method": payment.payment_method.value,
            "payment_date": payment.payment_date.isoformat(),
        })

        if updated.status != invoice.status:
            self.audit.record(invoice_id, AuditEventType.STATUS_CHANGED, {
                "old_status": invoice.status.value,
                "new_status": updated.status.value,
            })

        self.event_bus.publish(PaymentRecorded.create(payment=payment, invoice=updated))
        if updated.status == InvoiceStatus.PAID:
            self.event_bus.publish(InvoicePaid.create(invoice=updated))

        return PaymentResult(
            payment=payment,
            invoice=updated,
            notification=self._confirm(payment, updated),
        )

    def _confirm(self, payment: Payment, invoice: Invoice) -> NotificationOutcome:
        if self.confirmation is None:
            return NotificationOutcome(status="skipped", error="No confirmation sender configured")

        try:
            return self.confirmation(payment, invoice)
        except Exception as e:
            logger.exception("Payment confirmation for payment %s crashed", payment.id)
            return NotificationOutcome(status="failed", error=str(e))

    def _get_invoice_total(self, invoice_id: UUID) -> Decimal:
        total = self.postgres.execute_scalar(
            """
            SELECT total_amount FROM invoices
            WHERE id = %s AND organization_id = %s AND deleted_at IS NULL
            """,
            (invoice_id, get_current_organization_id())
        )
        if total is None:
            raise InvoiceNotFound(invoice_id)
        return Decimal(total)

    def get_balance(self, invoice_id: UUID) -> Balance:
        """Total, amount paid, and what is still owed on an invoice."""
        with translate_db_errors("Reading invoice balance"):
            total = self._get_invoice_total(invoice_id)
            paid = self.postgres.execute_scalar(
                "SELECT COALESCE(SUM(amount), 0) FROM payments WHERE invoice_id = %s",
                (invoice_id,)
            )

        paid = Decimal(paid or 0)
        return Balance(
            invoice_id=invoice_id,
            total_amount=total,
            amount_paid=paid,
            remaining_balance=remaining_balance(total, paid),
        )

    def suggested_amount(self, invoice_id: UUID) -> Decimal:
        """Amount to prefill in a payment form. Advisory; recording re-checks."""
        return self.get_balance(invoice_id).remaining_balance

    def list_payments(self, invoice_id: UUID) -> list[Payment]:
        """
        Payments on an invoice, newest payment date first.

        Raises:
            InvoiceNotFound: No such invoice in the current organization
        """
        with translate_db_errors("Listing payments"):
            self._get_invoice_total(invoice_id)
            rows = self.postgres.execute(
                """
                SELECT * FROM payments
                WHERE invoice_id = %s
                ORDER BY payment_date DESC, created_at DESC
                """,
                (invoice_id,)
            )

        return [Payment.model_validate(row) for row in rows]
