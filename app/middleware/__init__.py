"""HTTP middleware: request ID, correlation ID, tenant context.

Applied in main app; order matters (last added = outermost).
"""

from app.middleware.correlation_id import CorrelationIDMiddleware
from app.middleware.request_id import RequestIDMiddleware
from app.middleware.tenant_context import TenantContextMiddleware

__all__ = [
    "CorrelationIDMiddleware",
    "RequestIDMiddleware",
    "TenantContextMiddleware",
]
