"""DTOs for workflow definitions, validation results and listing filters."""

from dataclasses import dataclass, field
from typing import Any

from app.domain.entities.workflow import (
    TriggerConfig,
    WorkflowEdge,
    WorkflowNode,
    WorkflowSettings,
)
from app.domain.enums import WorkflowCategory

ISSUE_ERROR = "error"
ISSUE_WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    """One validator finding. type is "error" or "warning"."""

    type: str
    message: str
    node_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "message": self.message, "node_id": self.node_id}


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: list[ValidationIssue]
    warnings: list[ValidationIssue]

    def error_dicts(self) -> list[dict[str, Any]]:
        return [e.to_dict() for e in self.errors]


@dataclass
class WorkflowCreate:
    """Input for WorkflowService.create; missing values take entity defaults."""

    name: str
    description: str = ""
    category: str = WorkflowCategory.CUSTOM.value
    nodes: list[WorkflowNode] = field(default_factory=list)
    edges: list[WorkflowEdge] = field(default_factory=list)
    trigger: TriggerConfig = field(default_factory=TriggerConfig)
    settings: WorkflowSettings = field(default_factory=WorkflowSettings)
    template_id: str | None = None
    created_by: str | None = None


@dataclass
class WorkflowUpdate:
    """Partial update. None means "leave unchanged"; settings is a partial dict."""

    name: str | None = None
    description: str | None = None
    category: str | None = None
    status: str | None = None
    nodes: list[WorkflowNode] | None = None
    edges: list[WorkflowEdge] | None = None
    trigger: TriggerConfig | None = None
    settings: dict[str, Any] | None = None

    @property
    def is_structural(self) -> bool:
        return self.nodes is not None or self.edges is not None or self.trigger is not None


@dataclass(frozen=True)
class WorkflowFilters:
    status: tuple[str, ...] | None = None
    category: str | None = None
    search: str | None = None
    enabled_only: bool = False
    template_id: str | None = None
    skip: int = 0
    limit: int = 100


@dataclass(frozen=True)
class WorkflowStats:
    total: int
    by_status: dict[str, int]
    executions_today: int


@dataclass
class TemplateCreate:
    """Input for a custom template. With source_workflow_id the graph is copied from that workflow."""

    name: str
    description: str = ""
    category: str = WorkflowCategory.CUSTOM.value
    icon: str | None = None
    tags: list[str] = field(default_factory=list)
    nodes: list[WorkflowNode] = field(default_factory=list)
    edges: list[WorkflowEdge] = field(default_factory=list)
    trigger: TriggerConfig = field(default_factory=TriggerConfig)
    source_workflow_id: str | None = None
    created_by: str | None = None


@dataclass
class TemplateInstantiate:
    """Customizations applied when a workflow is created from a template.

    node_overrides maps node id to config keys that replace the template's.
    """

    name: str
    description: str | None = None
    category: str | None = None
    trigger: TriggerConfig | None = None
    node_overrides: dict[str, dict[str, Any]] = field(default_factory=dict)
    settings: WorkflowSettings | None = None
    created_by: str | None = None


@dataclass(frozen=True)
class SeedResult:
    seeded: int
    skipped: int
    workflow_ids: list[str]
