"""Workflow template API schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.application.dtos.workflow import TemplateCreate, TemplateInstantiate
from app.domain.entities.workflow import TriggerConfig, WorkflowSettings
from app.schemas.workflow import (
    TriggerConfigSchema,
    WorkflowCategoryLiteral,
    WorkflowEdgeSchema,
    WorkflowNodeSchema,
    WorkflowSettingsSchema,
    edges_from_schemas,
    nodes_from_schemas,
)


class TemplateCreateRequest(BaseModel):
    """Custom template: either a full graph or workflow_id to copy the graph from."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    category: WorkflowCategoryLiteral = "custom"
    icon: str | None = Field(default=None, max_length=64)
    tags: list[str] = Field(default_factory=list)
    nodes: list[WorkflowNodeSchema] = Field(default_factory=list)
    edges: list[WorkflowEdgeSchema] = Field(default_factory=list)
    trigger: TriggerConfigSchema = Field(default_factory=TriggerConfigSchema)
    workflow_id: str | None = None

    @model_validator(mode="after")
    def _graph_or_source(self) -> "TemplateCreateRequest":
        if self.workflow_id and self.nodes:
            raise ValueError("Give either nodes or workflow_id, not both")
        return self

    def to_dto(self, created_by: str | None = None) -> TemplateCreate:
        return TemplateCreate(
            name=self.name,
            description=self.description,
            category=self.category,
            icon=self.icon,
            tags=list(self.tags),
            nodes=nodes_from_schemas(self.nodes),
            edges=edges_from_schemas(self.edges),
            trigger=TriggerConfig.from_dict(self.trigger.model_dump()),
            source_workflow_id=self.workflow_id,
            created_by=created_by,
        )


class TemplateInstantiateRequest(BaseModel):
    """Customizations for a workflow created from a template.

    node_overrides: node id -> config keys replacing the template's values.
    """

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    category: WorkflowCategoryLiteral | None = None
    trigger: TriggerConfigSchema | None = None
    node_overrides: dict[str, dict[str, Any]] = Field(default_factory=dict)
    settings: WorkflowSettingsSchema | None = None

    def to_dto(self, created_by: str | None = None) -> TemplateInstantiate:
        return TemplateInstantiate(
            name=self.name,
            description=self.description,
            category=self.category,
            trigger=TriggerConfig.from_dict(self.trigger.model_dump()) if self.trigger else None,
            node_overrides=dict(self.node_overrides),
            settings=WorkflowSettings.from_dict(self.settings.model_dump()) if self.settings else None,
            created_by=created_by,
        )


class TemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str | None
    name: str
    description: str
    category: str
    icon: str | None
    tags: list[str]
    nodes: list[WorkflowNodeSchema]
    edges: list[WorkflowEdgeSchema]
    trigger: TriggerConfigSchema
    is_system: bool
    usage_count: int
    created_by: str | None
    created_at: datetime | None
    updated_at: datetime | None


class TemplateListResponse(BaseModel):
    items: list[TemplateResponse]
    total: int


class SeedResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    seeded: int
    skipped: int
    workflow_ids: list[str]
