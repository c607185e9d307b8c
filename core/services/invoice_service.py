"""
Invoice service.

Creation runs the lifecycle gates in a fixed order: quota, manual number
validation, credit validation, then (automatic mode) number allocation as the
last step before the insert, so a rejected request never consumes a counter
value. Invoice and line items are written in one transaction; audit entries
and domain events follow the commit.

Only drafts are editable. Once sent, an invoice changes only through
payments, reminders, the overdue sweep, or voiding.
"""

import logging
from datetime import date, timedelta
from uuid import UUID, uuid4

from psycopg2 import errors as pg_errors

from clients.postgres_client import PostgresClient, TransactionCursor
from core.audit import InvoiceAuditTrail, compute_changes
from core.config import EngineConfig
from core.errors import (
    DuplicateInvoiceNumber,
    InvalidAmount,
    InvalidInvoiceState,
    InvoiceNotFound,
    InvoiceValidationError,
    translate_db_errors,
)
from core.event_bus import EventBus
from core.events import InvoiceCreated, InvoiceSent
from core.ledger import amount_paid, remaining_balance
from core.models import (
    AuditEventType,
    Invoice,
    InvoiceCreate,
    InvoiceDocument,
    InvoiceStatus,
    InvoiceTotals,
    InvoiceType,
    InvoiceUpdate,
    LineItemInput,
    NumberingMode,
    Payment,
    calculate_totals,
)
from core.services.credit_service import CreditService, validate_credit_total
from core.services.numbering_service import NumberingService, payment_reference_for
from core.services.quota_service import QuotaService
from utils.tenant_context import get_current_organization_id
from utils.timezone import now_utc, today_utc

logger = logging.getLogger(__name__)

NUMBER_UNIQUE_CONSTRAINT = "invoices_organization_number_key"

REMINDABLE_STATUSES = (
    InvoiceStatus.SENT,
    InvoiceStatus.OVERDUE,
    InvoiceStatus.PARTIALLY_PAID,
)


class InvoiceService:
    """Service for invoice lifecycle operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: InvoiceAuditTrail,
        event_bus: EventBus,
        numbering: NumberingService,
        quota: QuotaService,
        credit: CreditService,
        config: EngineConfig | None = None,
    ):
        self.postgres = postgres
        self.audit = audit
        self.event_bus = event_bus
        self.numbering = numbering
        self.quota = quota
        self.credit = credit
        self.config = config or EngineConfig()

    # =========================================================================
    # CREATE
    # =========================================================================

    def create(self, data: InvoiceCreate) -> Invoice:
        """
        Create a draft invoice.

        Args:
            data: Client, type, optional number (manual mode), credit link,
                currency, dates and line items

        Returns:
            Created invoice in DRAFT status, with line items

        Raises:
            QuotaExceeded: Free-tier limit reached
            MissingInvoiceNumber / DuplicateInvoiceNumber: Manual mode number rejected
            InvalidCreditTarget: Credit link rejected
            InvalidAmount: Total sign does not match the invoice type
            NumberAllocationFailed: Automatic counter kept changing
            PersistenceFailure: Store error
        """
        invoice, target = self._create(data)

        self.audit.record(invoice.id, AuditEventType.CREATED, {
            "invoice_number": invoice.invoice_number,
            "invoice_type": invoice.invoice_type.value,
            "total_amount": str(invoice.total_amount),
        })
        if target is not None:
            self.credit.record_link(invoice, target)

        self.event_bus.publish(InvoiceCreated.create(invoice=invoice))
        return invoice

    def _create(self, data: InvoiceCreate) -> tuple[Invoice, Invoice | None]:
        organization_id = get_current_organization_id()
        totals = calculate_totals(data.line_items)

        with translate_db_errors("Creating invoice"):
            self.quota.check_can_create(organization_id)
            organization = self.numbering.get_organization(organization_id)

            manual = organization.invoice_numbering_mode == NumberingMode.MANUAL
            invoice_number = None
            if manual:
                invoice_number = self.numbering.validate_manual(organization_id, data.invoice_number)

            target = self.credit.resolve_target(data, totals, organization_id)
            if data.invoice_type == InvoiceType.DEBET and totals.total_amount < 0:
                raise InvalidAmount(
                    f"Invoice total must not be negative, got {totals.total_amount}"
                )

            if not manual:
                if data.invoice_number:
                    logger.debug(
                        "Ignoring supplied invoice number %r in automatic mode",
                        data.invoice_number,
                    )
                invoice_number = self.numbering.allocate(organization_id)

            try:
                with self.postgres.transaction() as tx:
                    invoice = self._insert(tx, organization_id, invoice_number, data, totals)
            except pg_errors.UniqueViolation as e:
                if e.diag.constraint_name == NUMBER_UNIQUE_CONSTRAINT:
                    raise DuplicateInvoiceNumber(invoice_number) from e
                raise

        logger.info(
            "Created %s invoice %s for organization %s",
            invoice.invoice_type.value, invoice.invoice_number, organization_id,
        )
        return invoice, target

    def _insert(
        self,
        tx: TransactionCursor,
        organization_id: UUID,
        invoice_number: str,
        data: InvoiceCreate,
        totals: InvoiceTotals,
    ) -> Invoice:
        now = now_utc()
        issue_date = data.issue_date or today_utc()

        tx.execute(
            """
            INSERT INTO invoices (
                id, organization_id, client_id, invoice_number, invoice_type, status,
                credited_invoice_id, currency, exchange_rate,
                subtotal, tax_amount, total_amount,
                issue_date, due_date, payment_reference, notes,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s, %s,
                %s, %s, %s,
                %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), organization_id, data.client_id, invoice_number,
                data.invoice_type.value, InvoiceStatus.DRAFT.value,
                data.credited_invoice_id,
                (data.currency or self.config.default_currency).upper(),
                data.exchange_rate,
                totals.subtotal, totals.tax_amount, totals.total_amount,
                issue_date, data.due_date,
                data.payment_reference or payment_reference_for(invoice_number),
                data.notes,
                now, now
            )
        )
        row = tx.fetchone()
        row["line_items"] = self._insert_line_items(tx, row["id"], data.line_items)
        return Invoice.model_validate(row)

    def _insert_line_items(
        self,
        tx: TransactionCursor,
        invoice_id: UUID,
        line_items: list[LineItemInput],
    ) -> list[dict]:
        rows = []
        for sort_order, item in enumerate(line_items):
            tx.execute(
                """
                INSERT INTO invoice_rows (
                    id, invoice_id, description, quantity, unit_price,
                    tax_rate, amount, sort_order
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    uuid4(), invoice_id, item.description, item.quantity, item.unit_price,
                    item.tax_rate, item.amount, sort_order
                )
            )
            rows.append(tx.fetchone())
        return rows

    # =========================================================================
    # READ
    # =========================================================================

    def get_by_id(self, invoice_id: UUID) -> Invoice | None:
        """
        Get invoice by ID, with its line items.

        Returns:
            Invoice if found in the current organization and not deleted,
            None otherwise.
        """
        with translate_db_errors("Loading invoice"):
            row = self.postgres.execute_single(
                """
                SELECT * FROM invoices
                WHERE id = %s AND organization_id = %s AND deleted_at IS NULL
                """,
                (invoice_id, get_current_organization_id())
            )
            if row is None:
                return None

            row["line_items"] = self.postgres.execute(
                "SELECT * FROM invoice_rows WHERE invoice_id = %s ORDER BY sort_order",
                (invoice_id,)
            )

        return Invoice.model_validate(row)

    def _require(self, invoice_id: UUID) -> Invoice:
        invoice = self.get_by_id(invoice_id)
        if invoice is None:
            raise InvoiceNotFound(invoice_id)
        return invoice

    def get_document(self, invoice_id: UUID) -> InvoiceDocument:
        """Invoice with client, payments and credits, as printed or emailed."""
        invoice = self._require(invoice_id)

        with translate_db_errors("Loading invoice document"):
            client = self.postgres.execute_single(
                "SELECT name, email FROM clients WHERE id = %s",
                (invoice.client_id,)
            ) or {}
            payment_rows = self.postgres.execute(
                "SELECT * FROM payments WHERE invoice_id = %s ORDER BY payment_date ASC, created_at ASC",
                (invoice_id,)
            )

        payments = [Payment.model_validate(row) for row in payment_rows]
        paid = amount_paid(p.amount for p in payments)

        return InvoiceDocument(
            invoice=invoice,
            client_name=client.get("name", ""),
            client_email=client.get("email"),
            payments=payments,
            amount_paid=paid,
            remaining_balance=remaining_balance(invoice.total_amount, paid),
            credits=self.credit.list_credits(invoice_id) if not invoice.is_credit else [],
        )

    def list_invoices(
        self,
        status: InvoiceStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Invoice]:
        """
        Invoices of the current organization, newest first.

        Line items are not loaded; use get_by_id for a full invoice.
        """
        conditions = ["organization_id = %s", "deleted_at IS NULL"]
        params: list = [get_current_organization_id()]
        if status is not None:
            conditions.append("status = %s")
            params.append(status.value)

        with translate_db_errors("Listing invoices"):
            rows = self.postgres.execute(
                f"""
                SELECT * FROM invoices
                WHERE {" AND ".join(conditions)}
                ORDER BY issue_date DESC, created_at DESC
                LIMIT %s OFFSET %s
                """,
                (*params, limit, offset)
            )

        return [Invoice.model_validate(row) for row in rows]

    def list_for_client(self, client_id: UUID, limit: int = 50) -> list[Invoice]:
        """Invoices for one client, newest first."""
        with translate_db_errors("Listing client invoices"):
            rows = self.postgres.execute(
                """
                SELECT * FROM invoices
                WHERE client_id = %s AND organization_id = %s AND deleted_at IS NULL
                ORDER BY issue_date DESC, created_at DESC
                LIMIT %s
                """,
                (client_id, get_current_organization_id(), limit)
            )

        return [Invoice.model_validate(row) for row in rows]

    def list_overdue(self, today: date | None = None) -> list[Invoice]:
        """
        Unpaid invoices past their due date, oldest due date first.

        Includes sent invoices the sweep has not reached yet as well as
        partially paid ones.
        """
        today = today or today_utc()
        with translate_db_errors("Listing overdue invoices"):
            rows = self.postgres.execute(
                """
                SELECT * FROM invoices
                WHERE organization_id = %s
                  AND deleted_at IS NULL
                  AND status IN ('sent', 'overdue', 'partially_paid')
                  AND due_date < %s
                ORDER BY due_date ASC
                """,
                (get_current_organization_id(), today)
            )

        return [Invoice.model_validate(row) for row in rows]

    # =========================================================================
    # DRAFT EDITING
    # =========================================================================

    def update(self, invoice_id: UUID, data: InvoiceUpdate) -> Invoice:
        """
        Edit a draft invoice.

        Replacing line_items recomputes the totals. The invoice number, type,
        client and credit link are fixed at creation.

        Raises:
            InvoiceNotFound: No such invoice
            InvalidInvoiceState: Invoice is no longer a draft
            InvalidAmount: New totals do not match the invoice type
        """
        current = self._require(invoice_id)
        if current.is_locked:
            raise InvalidInvoiceState(
                f"Invoice {current.invoice_number} is {current.status.value} and can no longer be edited"
            )

        fields = data.model_dump(exclude_unset=True, exclude={"line_items"})
        for required in ("currency", "exchange_rate", "issue_date"):
            if required in fields and fields[required] is None:
                del fields[required]
        if "currency" in fields:
            fields["currency"] = fields["currency"].upper()

        issue_date = fields.get("issue_date", current.issue_date)
        due_date = fields.get("due_date", current.due_date)
        if issue_date and due_date and due_date < issue_date:
            raise InvoiceValidationError("due_date cannot be before issue_date")

        if data.line_items is not None:
            totals = calculate_totals(data.line_items)
            if current.is_credit:
                validate_credit_total(totals)
            elif totals.total_amount < 0:
                raise InvalidAmount(
                    f"Invoice total must not be negative, got {totals.total_amount}"
                )
            fields.update(totals.model_dump())

        if not fields and data.line_items is None:
            return current

        fields["updated_at"] = now_utc()
        assignments = ", ".join(f"{column} = %s" for column in fields)

        with translate_db_errors("Updating invoice"):
            with self.postgres.transaction() as tx:
                tx.execute(
                    f"""
                    UPDATE invoices
                    SET {assignments}
                    WHERE id = %s AND status = %s AND deleted_at IS NULL
                    RETURNING *
                    """,
                    (*fields.values(), invoice_id, InvoiceStatus.DRAFT.value)
                )
                row = tx.fetchone()
                if row is None:
                    raise InvalidInvoiceState(
                        f"Invoice {current.invoice_number} was sent or deleted concurrently"
                    )

                if data.line_items is not None:
                    tx.execute("DELETE FROM invoice_rows WHERE invoice_id = %s", (invoice_id,))
                    row["line_items"] = self._insert_line_items(tx, invoice_id, data.line_items)
                else:
                    row["line_items"] = [item.model_dump() for item in current.line_items]

        updated = Invoice.model_validate(row)

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json"),
            exclude_fields={"updated_at", "line_items"},
        )
        if data.line_items is not None:
            changes["line_items"] = {
                "old": len(current.line_items),
                "new": len(updated.line_items),
            }

        if changes:
            self.audit.record(invoice_id, AuditEventType.UPDATED, {
                "invoice_number": updated.invoice_number,
                "changes": changes,
            })

        return updated

    def delete(self, invoice_id: UUID) -> bool:
        """
        Soft delete a draft invoice. Its audit trail is kept.

        Returns:
            True if deleted

        Raises:
            InvoiceNotFound: No such invoice
            InvalidInvoiceState: Invoice is no longer a draft
        """
        current = self._require(invoice_id)
        if current.is_locked:
            raise InvalidInvoiceState(
                f"Invoice {current.invoice_number} is {current.status.value} and cannot be deleted"
            )

        now = now_utc()
        with translate_db_errors("Deleting invoice"):
            rows = self.postgres.execute_returning(
                """
                UPDATE invoices
                SET deleted_at = %s, updated_at = %s
                WHERE id = %s AND status = %s AND deleted_at IS NULL
                RETURNING id
                """,
                (now, now, invoice_id, InvoiceStatus.DRAFT.value)
            )

        if not rows:
            return False

        self.audit.record(invoice_id, AuditEventType.UPDATED, {
            "invoice_number": current.invoice_number,
            "changes": {"deleted_at": {"old": None, "new": now.isoformat()}},
        })
        return True

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def _set_status(
        self,
        current: Invoice,
        new_status: InvoiceStatus,
        extra_sql: str = "",
        extra_params: tuple = (),
    ) -> Invoice:
        """Conditional status write: only succeeds if nobody moved the status first."""
        now = now_utc()
        with translate_db_errors("Updating invoice status"):
            rows = self.postgres.execute_returning(
                f"""
                UPDATE invoices
                SET status = %s, updated_at = %s{extra_sql}
                WHERE id = %s AND status = %s AND deleted_at IS NULL
                RETURNING *
                """,
                (new_status.value, now, *extra_params, current.id, current.status.value)
            )

        if not rows:
            raise InvalidInvoiceState(
                f"Invoice {current.invoice_number} changed status concurrently"
            )

        row = rows[0]
        row["line_items"] = [item.model_dump() for item in current.line_items]
        return Invoice.model_validate(row)

    def _record_status_change(self, old: Invoice, new: Invoice) -> None:
        self.audit.record(new.id, AuditEventType.STATUS_CHANGED, {
            "old_status": old.status.value,
            "new_status": new.status.value,
        })

    def send(self, invoice_id: UUID) -> Invoice:
        """
        Mark a draft invoice as sent to the client.

        Raises:
            InvoiceNotFound: No such invoice
            InvalidInvoiceState: Invoice is not a draft
        """
        current = self._require(invoice_id)
        if current.status != InvoiceStatus.DRAFT:
            raise InvalidInvoiceState(
                f"Invoice {current.invoice_number} is {current.status.value}, only drafts can be sent"
            )

        sent_at = now_utc()
        updated = self._set_status(current, InvoiceStatus.SENT, ", sent_at = %s", (sent_at,))

        self.audit.record(invoice_id, AuditEventType.SENT, {
            "invoice_number": updated.invoice_number,
            "sent_at": sent_at.isoformat(),
        })
        self._record_status_change(current, updated)

        self.event_bus.publish(InvoiceSent.create(invoice=updated))
        return updated

    def mark_viewed(self, invoice_id: UUID) -> bool:
        """
        Record that the client opened the invoice. Status is unchanged.

        Returns:
            Whether the event was appended
        """
        invoice = self._require(invoice_id)
        return self.audit.record(invoice_id, AuditEventType.VIEWED, {
            "invoice_number": invoice.invoice_number,
        })

    def send_reminder(self, invoice_id: UUID) -> Invoice:
        """
        Count a payment reminder sent for an unpaid invoice.

        Raises:
            InvoiceNotFound: No such invoice
            InvalidInvoiceState: Invoice is draft, paid or void
        """
        current = self._require(invoice_id)
        if current.status not in REMINDABLE_STATUSES:
            raise InvalidInvoiceState(
                f"Cannot send a reminder for a {current.status.value} invoice"
            )

        now = now_utc()
        with translate_db_errors("Recording reminder"):
            rows = self.postgres.execute_returning(
                """
                UPDATE invoices
                SET reminder_count = reminder_count + 1, last_reminder_at = %s, updated_at = %s
                WHERE id = %s AND status IN %s AND deleted_at IS NULL
                RETURNING *
                """,
                (now, now, invoice_id, tuple(s.value for s in REMINDABLE_STATUSES))
            )

        if not rows:
            raise InvalidInvoiceState(
                f"Invoice {current.invoice_number} changed status concurrently"
            )

        row = rows[0]
        row["line_items"] = [item.model_dump() for item in current.line_items]
        updated = Invoice.model_validate(row)

        self.audit.record(invoice_id, AuditEventType.REMINDER_SENT, {
            "invoice_number": updated.invoice_number,
            "reminder_count": updated.reminder_count,
        })
        return updated

    def mark_overdue(self, today: date | None = None) -> list[Invoice]:
        """
        Move sent invoices past their due date to overdue.

        Partially paid invoices keep their status: it already says money is
        outstanding, and payments are what drives it.

        Returns:
            Invoices that changed status
        """
        today = today or today_utc()
        now = now_utc()

        with translate_db_errors("Marking overdue invoices"):
            rows = self.postgres.execute_returning(
                """
                UPDATE invoices
                SET status = %s, updated_at = %s
                WHERE organization_id = %s
                  AND status = %s
                  AND deleted_at IS NULL
                  AND due_date < %s
                RETURNING *
                """,
                (
                    InvoiceStatus.OVERDUE.value, now, get_current_organization_id(),
                    InvoiceStatus.SENT.value, today
                )
            )

        invoices = [Invoice.model_validate(row) for row in rows]
        for invoice in invoices:
            self.audit.record(invoice.id, AuditEventType.STATUS_CHANGED, {
                "old_status": InvoiceStatus.SENT.value,
                "new_status": InvoiceStatus.OVERDUE.value,
            })

        if invoices:
            logger.info("Marked %d invoice(s) overdue as of %s", len(invoices), today)
        return invoices

    def void(self, invoice_id: UUID) -> Invoice:
        """
        Void an invoice.

        Raises:
            InvoiceNotFound: No such invoice
            InvalidInvoiceState: Invoice is paid or already void
        """
        current = self._require(invoice_id)
        if current.status == InvoiceStatus.PAID:
            raise InvalidInvoiceState(
                f"Invoice {current.invoice_number} is paid and cannot be voided"
            )
        if current.status == InvoiceStatus.VOID:
            raise InvalidInvoiceState(f"Invoice {current.invoice_number} is already void")

        updated = self._set_status(current, InvoiceStatus.VOID, ", voided_at = %s", (now_utc(),))
        self._record_status_change(current, updated)
        logger.info("Voided invoice %s", updated.invoice_number)
        return updated

    def copy(self, invoice_id: UUID, invoice_number: str | None = None) -> Invoice:
        """
        Create a new draft from an existing invoice.

        Same client, type, currency and rows; issued today with the source's
        payment term. A credit copy re-validates its credit link.

        Args:
            invoice_id: Source invoice
            invoice_number: Number for the copy (manual numbering mode)

        Raises:
            InvoiceNotFound: No such source invoice
            Any error create() raises
        """
        source = self._require(invoice_id)

        issue_date = today_utc()
        due_date = None
        if source.due_date is not None:
            due_date = issue_date + timedelta(days=(source.due_date - source.issue_date).days)

        data = InvoiceCreate(
            client_id=source.client_id,
            invoice_type=source.invoice_type,
            invoice_number=invoice_number,
            credited_invoice_id=source.credited_invoice_id,
            currency=source.currency,
            exchange_rate=source.exchange_rate,
            issue_date=issue_date,
            due_date=due_date,
            notes=source.notes,
            line_items=[
                LineItemInput(
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    tax_rate=item.tax_rate,
                )
                for item in source.line_items
            ],
        )

        copy, target = self._create(data)

        self.audit.record(copy.id, AuditEventType.CREATED, {
            "invoice_number": copy.invoice_number,
            "invoice_type": copy.invoice_type.value,
            "total_amount": str(copy.total_amount),
            "copied_from_invoice_id": str(source.id),
        })
        self.audit.record(source.id, AuditEventType.COPIED, {
            "invoice_number": source.invoice_number,
            "new_invoice_id": str(copy.id),
            "new_invoice_number": copy.invoice_number,
        })
        if target is not None:
            self.credit.record_link(copy, target)

        self.event_bus.publish(InvoiceCreated.create(invoice=copy))
        return copy
