"""Shared utilities: telemetry and cross-cutting helpers.

Used by domain, application, and infrastructure. No business logic.
"""

from app.shared.utils import (
    elapsed_ms,
    ensure_utc,
    generate_cuid,
    parse_instant,
    utc_now,
)

__all__ = [
    "generate_cuid",
    "utc_now",
    "ensure_utc",
    "elapsed_ms",
    "parse_instant",
]
