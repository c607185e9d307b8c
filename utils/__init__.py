"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, today_utc, parse_date
from utils.tenant_context import (
    get_current_user_id,
    get_current_organization_id,
    set_tenant,
    clear_tenant,
    tenant_context,
)
