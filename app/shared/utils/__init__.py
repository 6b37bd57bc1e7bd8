"""Shared utilities: datetime and id generators."""

from app.shared.utils.datetime import (
    add_ms,
    elapsed_ms,
    ensure_utc,
    from_timestamp_ms_utc,
    parse_instant,
    utc_now,
)
from app.shared.utils.generators import generate_cuid, generate_wait_token

__all__ = [
    "generate_cuid",
    "generate_wait_token",
    "utc_now",
    "ensure_utc",
    "elapsed_ms",
    "add_ms",
    "from_timestamp_ms_utc",
    "parse_instant",
]
