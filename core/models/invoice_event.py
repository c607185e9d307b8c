"""Invoice audit event models."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class AuditEventType(str, Enum):
    """Lifecycle occurrences recorded on an invoice timeline."""

    CREATED = "created"
    SENT = "sent"
    VIEWED = "viewed"
    PAYMENT_RECORDED = "payment_recorded"
    STATUS_CHANGED = "status_changed"
    REMINDER_SENT = "reminder_sent"
    CREDIT_CREATED = "credit_created"
    COPIED = "copied"
    UPDATED = "updated"


class InvoiceEvent(BaseModel):
    """One immutable audit entry."""

    id: UUID
    invoice_id: UUID
    organization_id: UUID
    user_id: UUID | None
    event_type: AuditEventType
    event_data: dict[str, Any]
    created_at: datetime
    sequence: int

    model_config = {"from_attributes": True, "frozen": True}
