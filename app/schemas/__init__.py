"""Pydantic request/response schemas for the API."""

from app.schemas.execution import (
    DecisionRequest,
    DomainEventRequest,
    EventDispatchResponse,
    ExecuteWorkflowRequest,
    ExecutionListResponse,
    ExecutionLogEntrySchema,
    ExecutionLogResponse,
    ExecutionResponse,
    ExecutionStatsResponse,
    ExecutionSummaryResponse,
    PruneResponse,
)
from app.schemas.health import HealthResponse, ReadinessErrorResponse, ReadinessResponse
from app.schemas.workflow import (
    ValidationResultResponse,
    WorkflowCloneRequest,
    WorkflowCreateRequest,
    WorkflowListResponse,
    WorkflowResponse,
    WorkflowStatsResponse,
    WorkflowToggleRequest,
    WorkflowUpdateRequest,
)
from app.schemas.workflow_template import (
    SeedResponse,
    TemplateCreateRequest,
    TemplateInstantiateRequest,
    TemplateListResponse,
    TemplateResponse,
)

__all__ = [
    "DecisionRequest",
    "DomainEventRequest",
    "EventDispatchResponse",
    "ExecuteWorkflowRequest",
    "ExecutionListResponse",
    "ExecutionLogEntrySchema",
    "ExecutionLogResponse",
    "ExecutionResponse",
    "ExecutionStatsResponse",
    "ExecutionSummaryResponse",
    "HealthResponse",
    "PruneResponse",
    "ReadinessErrorResponse",
    "ReadinessResponse",
    "SeedResponse",
    "TemplateCreateRequest",
    "TemplateInstantiateRequest",
    "TemplateListResponse",
    "TemplateResponse",
    "ValidationResultResponse",
    "WorkflowCloneRequest",
    "WorkflowCreateRequest",
    "WorkflowListResponse",
    "WorkflowResponse",
    "WorkflowStatsResponse",
    "WorkflowToggleRequest",
    "WorkflowUpdateRequest",
]
