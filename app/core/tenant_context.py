"""Tenant context for the current request.

Middleware sets the tenant_id in this context variable; logging and tracing
read it so every record emitted while handling a request carries the tenant.
"""

from contextvars import ContextVar

current_tenant_id: ContextVar[str | None] = ContextVar("current_tenant_id", default=None)


def set_tenant_id(tenant_id: str | None) -> None:
    """Set the current tenant ID for this context (e.g. request)."""
    current_tenant_id.set(tenant_id)


def get_tenant_id() -> str | None:
    """Return the current tenant ID if set."""
    return current_tenant_id.get()
