"""Rate limiter instance for SlowAPI.

Shared so main (app.state.limiter) and route modules use the same instance
without circular imports. Write endpoints are keyed by tenant header when
present, else by client address.
"""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import get_settings


def tenant_or_remote_address(request: Request) -> str:
    tenant_id = request.headers.get(get_settings().tenant_header_name)
    return f"tenant:{tenant_id}" if tenant_id else get_remote_address(request)


def _write_limit() -> str:
    return get_settings().rate_limit_writes


def _limits_enabled() -> bool:
    return get_settings().rate_limit_enabled


limiter = Limiter(key_func=tenant_or_remote_address, enabled=True)

# Webhooks come from external systems without a tenant session; keyed by address.
WEBHOOK_LIMIT = "60/minute"

limit_writes = limiter.limit(_write_limit, exempt_when=lambda: not _limits_enabled())
limit_webhooks = limiter.limit(
    WEBHOOK_LIMIT, key_func=get_remote_address, exempt_when=lambda: not _limits_enabled()
)
