"""Logging configuration for the application."""

import logging
import sys

from app.core.config import get_settings
from app.core.tenant_context import get_tenant_id

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [tenant=%(tenant_id)s] %(message)s"


class TenantContextFilter(logging.Filter):
    """Stamp each record with the tenant of the current request ("-" outside requests)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "tenant_id"):
            record.tenant_id = get_tenant_id() or "-"
        return True


def setup_logging() -> None:
    """Configure application-wide logging to stdout.

    settings.log_level wins when set; otherwise DEBUG when settings.debug,
    else INFO.
    """
    settings = get_settings()
    if settings.log_level:
        log_level = logging.getLevelName(settings.log_level.upper())
    else:
        log_level = logging.DEBUG if settings.debug else logging.INFO
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(TenantContextFilter())
    logging.basicConfig(level=log_level, format=LOG_FORMAT, handlers=[handler], force=True)
    # SQL statements are logged by SQLAlchemy itself when database_echo is on.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name (usually __name__)."""
    return logging.getLogger(name)
