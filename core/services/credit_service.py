"""
Credit linkage.

A CREDIT invoice reverses (part of) one DEBET invoice of the same client in
the same organization. The link is set once at creation and never edited.

Rejections use one message for "does not exist" and "belongs to another
organization", so a caller cannot probe for invoice ids outside their tenant.
"""

import logging
from uuid import UUID

from clients.postgres_client import PostgresClient
from core.audit import InvoiceAuditTrail
from core.errors import InvalidAmount, InvalidCreditTarget, translate_db_errors
from core.event_bus import EventBus
from core.events import CreditInvoiceCreated
from core.models import (
    AuditEventType,
    Invoice,
    InvoiceCreate,
    InvoiceTotals,
    InvoiceType,
)

logger = logging.getLogger(__name__)

_TARGET_NOT_FOUND = "Credited invoice not found"


def validate_credit_target(
    target: Invoice | None,
    client_id: UUID,
    organization_id: UUID,
) -> Invoice:
    """
    Check that `target` may be credited by a new credit invoice.

    Args:
        target: The referenced invoice, or None if the lookup found nothing
        client_id: Client of the credit invoice being created
        organization_id: Organization creating the credit invoice

    Returns:
        The target, unchanged

    Raises:
        InvalidCreditTarget: Missing, deleted, other organization, not a
            DEBET invoice, or billed to a different client
    """
    if target is None or target.deleted_at is not None:
        raise InvalidCreditTarget(_TARGET_NOT_FOUND)

    if target.organization_id != organization_id:
        raise InvalidCreditTarget(_TARGET_NOT_FOUND)

    if target.invoice_type != InvoiceType.DEBET:
        raise InvalidCreditTarget(
            f"Invoice {target.invoice_number} is a credit invoice and cannot be credited"
        )

    if target.client_id != client_id:
        raise InvalidCreditTarget(
            f"Invoice {target.invoice_number} belongs to a different client"
        )

    return target


def validate_credit_total(totals: InvoiceTotals) -> None:
    """A credit invoice must carry a negative (or zero) total."""
    if totals.total_amount > 0:
        raise InvalidAmount(
            f"Credit invoice total must not be positive, got {totals.total_amount}"
        )


class CreditService:
    """Resolves and records credit links between invoices."""

    def __init__(self, postgres: PostgresClient, audit: InvoiceAuditTrail, event_bus: EventBus):
        self.postgres = postgres
        self.audit = audit
        self.event_bus = event_bus

    def _load_invoice(self, invoice_id: UUID) -> Invoice | None:
        row = self.postgres.execute_single(
            "SELECT * FROM invoices WHERE id = %s",
            (invoice_id,)
        )
        return Invoice.model_validate(row) if row else None

    def resolve_target(
        self,
        data: InvoiceCreate,
        totals: InvoiceTotals,
        organization_id: UUID,
    ) -> Invoice | None:
        """
        Validate the credit side of a creation request.

        Returns:
            The credited invoice for CREDIT requests, None for DEBET

        Raises:
            InvalidCreditTarget: Missing or unacceptable credited_invoice_id
            InvalidAmount: Credit total is positive
        """
        if data.invoice_type != InvoiceType.CREDIT:
            if data.credited_invoice_id is not None:
                raise InvalidCreditTarget("Only credit invoices can reference another invoice")
            return None

        if data.credited_invoice_id is None:
            raise InvalidCreditTarget("A credit invoice must reference the invoice it credits")

        with translate_db_errors("Loading credited invoice"):
            target = self._load_invoice(data.credited_invoice_id)

        validate_credit_target(target, data.client_id, organization_id)
        validate_credit_total(totals)
        return target

    def record_link(self, credit_invoice: Invoice, target: Invoice) -> None:
        """
        Record a committed credit invoice on its own timeline and announce it.

        The mirror entry on the credited invoice is written by the
        CreditInvoiceCreated handler.
        """
        self.audit.record(credit_invoice.id, AuditEventType.CREDIT_CREATED, {
            "invoice_number": credit_invoice.invoice_number,
            "credited_invoice_id": str(target.id),
            "credited_invoice_number": target.invoice_number,
        })

        logger.info(
            "Credit invoice %s created against %s",
            credit_invoice.invoice_number, target.invoice_number,
        )
        self.event_bus.publish(CreditInvoiceCreated.create(credit_invoice, target))

    def list_credits(self, invoice_id: UUID) -> list[Invoice]:
        """Credit invoices issued against a DEBET invoice, oldest first."""
        with translate_db_errors("Listing credit invoices"):
            rows = self.postgres.execute(
                """
                SELECT * FROM invoices
                WHERE credited_invoice_id = %s AND deleted_at IS NULL
                ORDER BY created_at ASC
                """,
                (invoice_id,)
            )
        return [Invoice.model_validate(row) for row in rows]
