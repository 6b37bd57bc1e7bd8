"""Persistence models: ORM entities and mixins."""

from app.infrastructure.persistence.models.mixins import (
    CuidMixin,
    MultiTenantModel,
    TenantMixin,
    TimestampMixin,
    VersionedMixin,
)
from app.infrastructure.persistence.models.workflow import (
    Workflow,
    WorkflowExecution,
    WorkflowExecutionLog,
)
from app.infrastructure.persistence.models.workflow_template import WorkflowTemplate

__all__ = [
    "CuidMixin",
    "MultiTenantModel",
    "TenantMixin",
    "TimestampMixin",
    "VersionedMixin",
    "Workflow",
    "WorkflowExecution",
    "WorkflowExecutionLog",
    "WorkflowTemplate",
]
