"""
Invoice audit trail.

Every lifecycle occurrence on an invoice is appended here. The trail is:
- Append-only (entries never modified or deleted, no UPDATE/DELETE path exists)
- User-attributed (who triggered it)
- Ordered (created_at, then insertion sequence for same-instant events)

It is best-effort history: record() is called after the business mutation
has committed, and a failed append is logged, never raised. The invoice and
payment rows are the source of truth.
"""

import json
import logging
from functools import partial
from typing import Any, Iterator
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.models.invoice_event import AuditEventType, InvoiceEvent
from utils.tenant_context import get_current_organization_id, _current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

# Decimals, dates and UUIDs in event payloads are stored as strings
_dumps = partial(json.dumps, default=str)


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    all_keys = set(old.keys()) | set(new.keys())
    for key in all_keys:
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class EventTimeline:
    """
    Lazy, finite, restartable view of one invoice's events, oldest first.

    Nothing is queried until iteration starts; each new iteration re-queries,
    so a timeline object can be rendered more than once and reflects events
    appended in between.
    """

    def __init__(self, postgres: PostgresClient, invoice_id: UUID, organization_id: UUID):
        self._postgres = postgres
        self.invoice_id = invoice_id
        self.organization_id = organization_id

    def __iter__(self) -> Iterator[InvoiceEvent]:
        rows = self._postgres.stream(
            """
            SELECT id, invoice_id, organization_id, user_id, event_type,
                   event_data, created_at, sequence
            FROM invoice_events
            WHERE invoice_id = %s AND organization_id = %s
            ORDER BY created_at ASC, sequence ASC
            """,
            (self.invoice_id, self.organization_id)
        )
        for row in rows:
            yield InvoiceEvent.model_validate(row)


class InvoiceAuditTrail:
    """
    Append-only lifecycle history for invoices.

    Usage:
        audit = InvoiceAuditTrail(postgres)

        audit.record(invoice.id, AuditEventType.CREATED, {"invoice_number": invoice.invoice_number})

        audit.record(invoice.id, AuditEventType.STATUS_CHANGED, {
            "old_status": "sent", "new_status": "paid",
        })

        for event in audit.list_events(invoice.id):
            ...
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def record(
        self,
        invoice_id: UUID,
        event_type: AuditEventType,
        event_data: dict[str, Any] | None = None,
        user_id: UUID | None = None
    ) -> bool:
        """
        Append one event to an invoice's timeline.

        Args:
            invoice_id: Invoice the event belongs to
            event_type: What happened
            event_data: Type-specific payload, e.g. {"old_status", "new_status"}
                or {"amount", "payment_method"}
            user_id: Acting user (defaults to current context, may be absent
                for system jobs)

        Returns:
            True if the event was appended, False if the append failed.
            Failures are logged and never raised.
        """
        if user_id is None:
            user_id = _current_user_id.get()

        try:
            organization_id = get_current_organization_id()
            self.postgres.execute(
                """
                INSERT INTO invoice_events
                    (id, invoice_id, organization_id, user_id, event_type, event_data, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    uuid4(),
                    invoice_id,
                    organization_id,
                    user_id,
                    event_type.value,
                    Json(event_data or {}, dumps=_dumps),
                    now_utc()
                )
            )
        except Exception:
            logger.exception(
                "Failed to append %s event for invoice %s", event_type.value, invoice_id
            )
            return False

        return True

    def list_events(self, invoice_id: UUID) -> EventTimeline:
        """
        Events for an invoice in chronological order (oldest first).

        Returns a lazy iterable; wrap in list() to materialize.
        """
        return EventTimeline(self.postgres, invoice_id, get_current_organization_id())
