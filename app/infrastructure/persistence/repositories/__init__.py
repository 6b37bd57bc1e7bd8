"""Persistence repositories. Re-exports for dependency injection."""

from app.infrastructure.persistence.repositories.base import BaseRepository
from app.infrastructure.persistence.repositories.execution_log_repo import ExecutionLogRepository
from app.infrastructure.persistence.repositories.workflow_execution_repo import (
    WorkflowExecutionRepository,
)
from app.infrastructure.persistence.repositories.workflow_repo import WorkflowRepository
from app.infrastructure.persistence.repositories.workflow_template_repo import (
    WorkflowTemplateRepository,
)

__all__ = [
    "BaseRepository",
    "ExecutionLogRepository",
    "WorkflowExecutionRepository",
    "WorkflowRepository",
    "WorkflowTemplateRepository",
]
