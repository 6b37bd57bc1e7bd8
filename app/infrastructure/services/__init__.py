"""Infrastructure implementations of application service interfaces."""

from app.infrastructure.services.capability_registry import (
    CapabilityRegistry,
    LogOnlyNotificationChannel,
    build_default_registry,
)
from app.infrastructure.services.run_scheduler import RunScheduler
from app.infrastructure.services.workflow_engine import WorkflowEngine
from app.infrastructure.services.workflow_template_renderer import WorkflowTemplateRenderer

__all__ = [
    "CapabilityRegistry",
    "LogOnlyNotificationChannel",
    "RunScheduler",
    "WorkflowEngine",
    "WorkflowTemplateRenderer",
    "build_default_registry",
]
