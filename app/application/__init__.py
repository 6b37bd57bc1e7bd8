"""Application layer: interfaces, services, use cases.

Depends only on domain and protocol definitions (DIP).
Infrastructure implements the interfaces (repositories, engine, capabilities).
"""

from app.application.interfaces import (
    IWorkflowEngine,
    IWorkflowExecutionRepository,
    IWorkflowRepository,
)
from app.application.services import MetricsAggregator, WorkflowValidator, validate_workflow
from app.application.use_cases import ExecutionService, WorkflowService

__all__ = [
    "ExecutionService",
    "IWorkflowEngine",
    "IWorkflowExecutionRepository",
    "IWorkflowRepository",
    "MetricsAggregator",
    "WorkflowService",
    "WorkflowValidator",
    "validate_workflow",
]
