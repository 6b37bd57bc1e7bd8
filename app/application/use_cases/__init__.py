"""Application use cases: one service per aggregate."""

from app.application.use_cases.executions import ExecutionService
from app.application.use_cases.templates import WorkflowTemplateService
from app.application.use_cases.workflows import WorkflowService

__all__ = [
    "ExecutionService",
    "WorkflowService",
    "WorkflowTemplateService",
]
