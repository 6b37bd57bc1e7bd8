"""Core: settings, lifespan, exception handlers, rate limiting, tenant context."""

from app.core.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
