"""Domain entities and aggregates.

Pure domain models; no ORM or persistence concerns.
"""

from app.domain.entities.execution import (
    DefinitionSnapshot,
    ExecutionError,
    ExecutionLogEntry,
    NodeExecution,
    WaitState,
    WorkflowExecution,
)
from app.domain.entities.workflow import (
    FilterCondition,
    TriggerConfig,
    Workflow,
    WorkflowEdge,
    WorkflowGraph,
    WorkflowMetrics,
    WorkflowNode,
    WorkflowSettings,
)
from app.domain.entities.workflow_template import WorkflowTemplate

__all__ = [
    "DefinitionSnapshot",
    "ExecutionError",
    "ExecutionLogEntry",
    "FilterCondition",
    "NodeExecution",
    "TriggerConfig",
    "WaitState",
    "Workflow",
    "WorkflowEdge",
    "WorkflowExecution",
    "WorkflowGraph",
    "WorkflowMetrics",
    "WorkflowNode",
    "WorkflowSettings",
    "WorkflowTemplate",
]
