"""Organization-level settings consumed by the invoice engine.

Organization CRUD lives elsewhere; the engine only reads numbering and
subscription settings and owns the invoice counter.
"""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class NumberingMode(str, Enum):
    """Who decides the invoice number."""

    AUTOMATIC = "automatic"
    MANUAL = "manual"


class SubscriptionTier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"


class Organization(BaseModel):
    """Numbering and subscription view of an organization row."""

    id: UUID
    name: str
    invoice_numbering_mode: NumberingMode
    invoice_number_prefix: str
    next_invoice_number: int
    subscription_tier: SubscriptionTier

    model_config = {"from_attributes": True}

    @property
    def is_premium(self) -> bool:
        return self.subscription_tier == SubscriptionTier.PREMIUM


class NumberingSettingsUpdate(BaseModel):
    """Numbering settings an organization admin may change. The counter is not one of them."""

    invoice_numbering_mode: NumberingMode | None = None
    invoice_number_prefix: str | None = Field(None, min_length=1, max_length=20, pattern=r"^[A-Za-z0-9_]+$")


class QuotaUsage(BaseModel):
    """Subscription state and invoice count as supplied to the quota gate."""

    is_premium: bool
    invoice_count: int = Field(..., ge=0)
