"""Tenant context middleware.

Copies the tenant header into app.core.tenant_context for the duration of the
request so log records and spans carry the tenant. Header validation itself
happens in the get_tenant_id dependency. Raw ASGI.
"""

from __future__ import annotations

from typing import Callable

from app.core.tenant_context import current_tenant_id
from app.core.tenant_validation import is_valid_tenant_id_format
from app.middleware._headers import get_header


def TenantContextMiddleware(app: Callable, header_name: str = "X-Tenant-ID") -> Callable:
    async def asgi_app(scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await app(scope, receive, send)
            return
        tenant_id = get_header(scope, header_name)
        token = current_tenant_id.set(tenant_id if tenant_id and is_valid_tenant_id_format(tenant_id) else None)
        try:
            await app(scope, receive, send)
        finally:
            current_tenant_id.reset(token)

    return asgi_app
