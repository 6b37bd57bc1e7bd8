"""Tenant ID format validation.

Shared by the get_tenant_id dependency and the tenant context middleware so
malformed tenant headers never reach queries or logs.
"""

import re

TENANT_ID_MAX_LENGTH = 64
_TENANT_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{1," + str(TENANT_ID_MAX_LENGTH) + r"}$")


def is_valid_tenant_id_format(value: str | None) -> bool:
    """Alphanumeric, hyphen, underscore; at most TENANT_ID_MAX_LENGTH characters."""
    if not value:
        return False
    return bool(_TENANT_ID_RE.fullmatch(value))
