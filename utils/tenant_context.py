"""Propagate user and organization identity through the call stack using contextvars."""

from contextvars import ContextVar
from uuid import UUID
from contextlib import contextmanager

_current_user_id: ContextVar[UUID | None] = ContextVar("current_user_id", default=None)
_current_organization_id: ContextVar[UUID | None] = ContextVar(
    "current_organization_id", default=None
)


def get_current_user_id() -> UUID:
    """
    Get current user ID from context.

    Raises RuntimeError if no user context is set.
    This is fail-fast behavior - if you're in a code path that
    requires user context and it's not set, that's a bug.
    """
    user_id = _current_user_id.get()
    if user_id is None:
        raise RuntimeError(
            "No user context set. This usually means you're calling "
            "tenant-scoped code outside of an authenticated request."
        )
    return user_id


def get_current_organization_id() -> UUID:
    """
    Get current organization ID from context.

    Raises RuntimeError if no organization context is set. Every invoice
    operation is scoped to exactly one organization.
    """
    organization_id = _current_organization_id.get()
    if organization_id is None:
        raise RuntimeError(
            "No organization context set. Invoice operations must run "
            "inside a tenant context."
        )
    return organization_id


def set_tenant(user_id: UUID, organization_id: UUID) -> None:
    """
    Set current user and organization in context.

    Called by the tenant middleware with identity supplied by the session layer.
    """
    _current_user_id.set(user_id)
    _current_organization_id.set(organization_id)


def clear_tenant() -> None:
    """
    Clear user and organization context.

    Must be called in finally block to prevent context leakage.
    """
    _current_user_id.set(None)
    _current_organization_id.set(None)


@contextmanager
def tenant_context(user_id: UUID, organization_id: UUID):
    """
    Context manager for temporarily acting as a user within an organization.

    Useful for:
    - Tests
    - Background jobs such as the overdue sweep, which iterate organizations

    Example:
        with tenant_context(user_id, org_id):
            invoice = invoice_service.create(data)
    """
    previous_user = _current_user_id.get()
    previous_org = _current_organization_id.get()
    set_tenant(user_id, organization_id)
    try:
        yield
    finally:
        _current_user_id.set(previous_user)
        _current_organization_id.set(previous_org)
