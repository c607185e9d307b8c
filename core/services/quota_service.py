"""
Free-tier invoice quota.

The gate is a product nudge, not a billing guarantee: it is checked once when
the user sets out to create an invoice, and two concurrent creations at the
threshold may both pass.
"""

import logging
from uuid import UUID

from clients.postgres_client import PostgresClient
from core.config import EngineConfig
from core.errors import QuotaExceeded, translate_db_errors
from core.models import QuotaUsage, SubscriptionTier
from utils.tenant_context import get_current_organization_id

logger = logging.getLogger(__name__)


class QuotaGate:
    """Pure quota rule: premium is unlimited, free stops at the limit."""

    def __init__(self, free_tier_limit: int = 10):
        self.free_tier_limit = free_tier_limit

    def check(self, usage: QuotaUsage) -> None:
        """
        Raises:
            QuotaExceeded: Free organization already has `free_tier_limit` invoices
        """
        if usage.is_premium:
            return
        if usage.invoice_count >= self.free_tier_limit:
            raise QuotaExceeded(self.free_tier_limit, usage.invoice_count)

    def remaining(self, usage: QuotaUsage) -> int | None:
        """Invoices left on the free tier. None means unlimited."""
        if usage.is_premium:
            return None
        return max(self.free_tier_limit - usage.invoice_count, 0)


class QuotaService:
    """Reads subscription usage and applies the quota gate."""

    def __init__(self, postgres: PostgresClient, config: EngineConfig | None = None):
        self.postgres = postgres
        self.gate = QuotaGate((config or EngineConfig()).free_tier_invoice_limit)

    def get_usage(self, organization_id: UUID | None = None) -> QuotaUsage:
        """
        Subscription tier and live invoice count for an organization.

        Soft-deleted drafts do not count against the quota.
        """
        organization_id = organization_id or get_current_organization_id()

        with translate_db_errors("Reading quota usage"):
            row = self.postgres.execute_single(
                """
                SELECT o.subscription_tier,
                       (SELECT COUNT(*) FROM invoices i
                        WHERE i.organization_id = o.id AND i.deleted_at IS NULL) AS invoice_count
                FROM organizations o
                WHERE o.id = %s
                """,
                (organization_id,)
            )

        if row is None:
            raise ValueError(f"Organization {organization_id} not found")

        return QuotaUsage(
            is_premium=row["subscription_tier"] == SubscriptionTier.PREMIUM.value,
            invoice_count=row["invoice_count"],
        )

    def check_can_create(self, organization_id: UUID | None = None) -> QuotaUsage:
        """
        Gate an invoice creation.

        Returns:
            The usage the decision was based on

        Raises:
            QuotaExceeded: Free-tier limit reached
        """
        usage = self.get_usage(organization_id)
        try:
            self.gate.check(usage)
        except QuotaExceeded:
            logger.info(
                "Invoice quota reached for organization %s (%d invoices)",
                organization_id or get_current_organization_id(), usage.invoice_count,
            )
            raise
        return usage
