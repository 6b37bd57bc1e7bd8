"""Tenant dependency: tenant ID from the configured header.

Tenants are owned by an external identity service; the header is trusted
once it has a valid format.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from app.core.config import get_settings
from app.core.tenant_validation import is_valid_tenant_id_format


async def get_tenant_id(request: Request) -> str:
    """Return the tenant ID from the tenant header; 400 when missing or malformed."""
    name = get_settings().tenant_header_name
    value = request.headers.get(name)
    if not value:
        raise HTTPException(status_code=400, detail=f"Missing required header: {name}")
    if not is_valid_tenant_id_format(value):
        raise HTTPException(
            status_code=400,
            detail="Invalid tenant ID format (use alphanumeric, hyphen, underscore; max 64 characters)",
        )
    return value


def get_user_id(request: Request) -> str | None:
    """Acting user forwarded by the gateway (X-User-ID), if any."""
    return request.headers.get("X-User-ID") or None
