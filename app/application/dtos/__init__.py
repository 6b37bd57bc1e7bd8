"""Application DTOs (no ORM dependency)."""

from app.application.dtos.execution import (
    CapabilityResult,
    DomainEvent,
    ExecutionFilters,
    ExecutionStats,
    MetricsSnapshot,
    TriggerEvent,
)
from app.application.dtos.workflow import (
    SeedResult,
    TemplateCreate,
    TemplateInstantiate,
    ValidationIssue,
    ValidationResult,
    WorkflowCreate,
    WorkflowFilters,
    WorkflowStats,
    WorkflowUpdate,
)

__all__ = [
    "CapabilityResult",
    "DomainEvent",
    "ExecutionFilters",
    "ExecutionStats",
    "MetricsSnapshot",
    "SeedResult",
    "TemplateCreate",
    "TemplateInstantiate",
    "TriggerEvent",
    "ValidationIssue",
    "ValidationResult",
    "WorkflowCreate",
    "WorkflowFilters",
    "WorkflowStats",
    "WorkflowUpdate",
]
