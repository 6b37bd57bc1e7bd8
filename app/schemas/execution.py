"""Workflow execution (run) API schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class NodeExecutionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    node_id: str
    node_type: str
    status: str
    input: dict[str, Any] | None = None
    output: Any = None
    error: str | None = None
    retry_count: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None


class WaitStateSchema(BaseModel):
    """Suspension token; the token itself is not exposed."""

    model_config = ConfigDict(from_attributes=True)

    kind: str
    node_id: str
    requested_at: datetime | None = None
    resume_at: datetime | None = None
    approvals: dict[str, str] = Field(default_factory=dict)


class ExecutionErrorSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    message: str
    node_id: str | None = None


class ExecutionSummaryResponse(BaseModel):
    """List item: run header without context or node records."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    workflow_id: str
    workflow_name: str
    workflow_version: int
    status: str
    triggered_by: str
    triggered_by_user: str | None = None
    error: ExecutionErrorSchema | None = None
    retry_of: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    created_at: datetime | None = None


class ExecutionResponse(ExecutionSummaryResponse):
    """Full run detail."""

    tenant_id: str
    trigger_data: dict[str, Any]
    context: dict[str, Any]
    node_executions: list[NodeExecutionSchema]
    activated_node_ids: list[str]
    waiting: WaitStateSchema | None = None
    output: Any = None
    cancel_requested: bool
    updated_at: datetime | None = None


class ExecutionListResponse(BaseModel):
    items: list[ExecutionSummaryResponse]
    total: int
    skip: int
    limit: int


class ExecuteWorkflowRequest(BaseModel):
    """Manual trigger; trigger_data is what conditions and templates see as `trigger`."""

    trigger_data: dict[str, Any] = Field(default_factory=dict)


class DomainEventRequest(BaseModel):
    """Business event (e.g. module=ticket, event=created) fanned out to listening workflows."""

    module: str = Field(..., min_length=1, max_length=128)
    event: str = Field(..., min_length=1, max_length=128)
    data: dict[str, Any] = Field(default_factory=dict)
    user_id: str | None = None


class DecisionRequest(BaseModel):
    node_id: str = Field(..., min_length=1)
    approver: str = Field(..., min_length=1)
    decision: Literal["approved", "rejected"]
    comment: str | None = Field(default=None, max_length=2000)


class EventDispatchResponse(BaseModel):
    executions: list[ExecutionSummaryResponse]


class ExecutionStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    by_status: dict[str, int]
    today: int
    success_rate_percent: float
    average_duration_ms: float


class PruneResponse(BaseModel):
    deleted: int
    older_than_days: int


class ExecutionLogEntrySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    level: Literal["info", "warning", "error"]
    message: str
    node_id: str | None = None
    data: dict[str, Any] | None = None
    timestamp: datetime | None = None


class ExecutionLogResponse(BaseModel):
    execution_id: str
    items: list[ExecutionLogEntrySchema]
