"""Workflow API schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.application.dtos.workflow import WorkflowCreate, WorkflowUpdate
from app.domain.entities.workflow import (
    TriggerConfig,
    WorkflowEdge,
    WorkflowNode,
    WorkflowSettings,
)

WorkflowCategoryLiteral = Literal[
    "incident",
    "service-request",
    "change",
    "problem",
    "ticket",
    "asset",
    "approval",
    "notification",
    "custom",
]
WorkflowStatusLiteral = Literal["draft", "active", "inactive", "archived"]
OnErrorLiteral = Literal["stop", "continue", "notify"]


class FilterConditionSchema(BaseModel):
    """field (dotted path) / operator / value."""

    model_config = ConfigDict(from_attributes=True)

    field: str = Field(..., min_length=1)
    operator: str = Field(..., min_length=1)
    value: Any = None


class WorkflowNodeSchema(BaseModel):
    """Graph node. config is validated per node type by the workflow validator, not here."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., min_length=1, max_length=128)
    type: str = Field(..., min_length=1)
    label: str | None = None
    description: str | None = None
    config: dict[str, Any] | None = None


class WorkflowEdgeSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., min_length=1, max_length=128)
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    branch: str | None = None
    label: str | None = None


class TriggerConfigSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: Literal["manual", "event", "schedule", "webhook"] = "manual"
    module: str | None = None
    event: str | None = None
    conditions: list[FilterConditionSchema] = Field(default_factory=list)
    schedule: dict[str, Any] | None = None
    webhook: dict[str, Any] | None = None


class WorkflowSettingsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    enabled: bool = False
    run_async: bool = True
    max_retries: int = Field(default=3, ge=0)
    timeout_ms: int = Field(default=300000, ge=0, description="0 disables the global timeout")
    on_error: OnErrorLiteral = "stop"
    notify_on_failure: bool = False
    notify_emails: list[str] = Field(default_factory=list)


class WorkflowSettingsPatch(BaseModel):
    """Partial settings; omitted keys keep their current value."""

    enabled: bool | None = None
    run_async: bool | None = None
    max_retries: int | None = Field(default=None, ge=0)
    timeout_ms: int | None = Field(default=None, ge=0)
    on_error: OnErrorLiteral | None = None
    notify_on_failure: bool | None = None
    notify_emails: list[str] | None = None


class WorkflowMetricsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    average_execution_time_ms: float
    success_rate_percent: float
    last_error: str | None = None


def nodes_from_schemas(items: list[WorkflowNodeSchema]) -> list[WorkflowNode]:
    return [WorkflowNode.from_dict(n.model_dump()) for n in items]


def edges_from_schemas(items: list[WorkflowEdgeSchema]) -> list[WorkflowEdge]:
    return [WorkflowEdge.from_dict(e.model_dump()) for e in items]


class WorkflowCreateRequest(BaseModel):
    """Request body for creating a workflow. New workflows are disabled drafts."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    category: WorkflowCategoryLiteral = "custom"
    nodes: list[WorkflowNodeSchema] = Field(default_factory=list)
    edges: list[WorkflowEdgeSchema] = Field(default_factory=list)
    trigger: TriggerConfigSchema = Field(default_factory=TriggerConfigSchema)
    settings: WorkflowSettingsSchema = Field(default_factory=WorkflowSettingsSchema)
    template_id: str | None = None

    def to_dto(self, created_by: str | None = None) -> WorkflowCreate:
        return WorkflowCreate(
            name=self.name,
            description=self.description,
            category=self.category,
            nodes=nodes_from_schemas(self.nodes),
            edges=edges_from_schemas(self.edges),
            trigger=TriggerConfig.from_dict(self.trigger.model_dump()),
            settings=WorkflowSettings.from_dict(self.settings.model_dump()),
            template_id=self.template_id,
            created_by=created_by,
        )


class WorkflowUpdateRequest(BaseModel):
    """Request body for PATCH; structural fields (nodes, edges, trigger) bump the version."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    category: WorkflowCategoryLiteral | None = None
    status: WorkflowStatusLiteral | None = None
    nodes: list[WorkflowNodeSchema] | None = None
    edges: list[WorkflowEdgeSchema] | None = None
    trigger: TriggerConfigSchema | None = None
    settings: WorkflowSettingsPatch | None = None

    def to_dto(self) -> WorkflowUpdate:
        return WorkflowUpdate(
            name=self.name,
            description=self.description,
            category=self.category,
            status=self.status,
            nodes=nodes_from_schemas(self.nodes) if self.nodes is not None else None,
            edges=edges_from_schemas(self.edges) if self.edges is not None else None,
            trigger=TriggerConfig.from_dict(self.trigger.model_dump()) if self.trigger else None,
            settings=self.settings.model_dump(exclude_none=True) if self.settings else None,
        )


class WorkflowCloneRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)


class WorkflowToggleRequest(BaseModel):
    enabled: bool


class WorkflowResponse(BaseModel):
    """Workflow response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    name: str
    description: str
    category: str
    status: str
    version: int
    nodes: list[WorkflowNodeSchema]
    edges: list[WorkflowEdgeSchema]
    trigger: TriggerConfigSchema
    settings: WorkflowSettingsSchema
    execution_count: int
    last_executed_at: datetime | None
    metrics: WorkflowMetricsSchema
    template_id: str | None
    created_by: str | None
    created_at: datetime | None
    updated_at: datetime | None


class WorkflowListResponse(BaseModel):
    items: list[WorkflowResponse]
    total: int
    skip: int
    limit: int


class ValidationIssueSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: Literal["error", "warning"]
    message: str
    node_id: str | None = None


class ValidationResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    valid: bool
    errors: list[ValidationIssueSchema]
    warnings: list[ValidationIssueSchema]


class WorkflowStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    by_status: dict[str, int]
    executions_today: int
