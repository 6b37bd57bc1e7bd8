"""Logging and OpenTelemetry for the workflow service.

Modules import from the submodules directly; this package only re-exports
the names the engine and lifespan use.
"""

from app.shared.telemetry.logging import get_logger, setup_logging
from app.shared.telemetry.telemetry import TelemetryConfig, get_telemetry, set_telemetry
from app.shared.telemetry.tracing import add_span_attributes, add_span_event, traced

__all__ = [
    "TelemetryConfig",
    "add_span_attributes",
    "add_span_event",
    "get_logger",
    "get_telemetry",
    "set_telemetry",
    "setup_logging",
    "traced",
]
