"""Domain layer: entities, enums, and exceptions.

No dependencies on infrastructure or presentation. Used by application
and infrastructure layers.
"""

from app.domain.entities import Workflow, WorkflowExecution
from app.domain.exceptions import (
    FlowlineException,
    ResourceNotFoundException,
    ValidationException,
)

__all__ = [
    "Workflow",
    "WorkflowExecution",
    "FlowlineException",
    "ResourceNotFoundException",
    "ValidationException",
]
