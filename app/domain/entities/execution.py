"""Workflow execution (run) domain entities.

A run carries a frozen snapshot of the definition it was started from, so
later edits to the workflow never affect in-flight or historical runs.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from app.domain.entities.workflow import (
    TriggerConfig,
    WorkflowEdge,
    WorkflowGraph,
    WorkflowNode,
    WorkflowSettings,
)
from app.domain.enums import ExecutionStatus, NodeExecutionStatus, TriggeredBy
from app.shared.utils.datetime import add_ms, ensure_utc


def _dt_to_json(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt_from_json(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(str(value)))


@dataclass
class ExecutionError:
    message: str
    node_id: str | None = None
    stack: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> ExecutionError | None:
        if not raw:
            return None
        return cls(message=str(raw.get("message") or ""), node_id=raw.get("node_id"), stack=raw.get("stack"))


@dataclass
class NodeExecution:
    """Execution record of one node within a run."""

    node_id: str
    node_type: str
    status: str = NodeExecutionStatus.PENDING.value
    input: dict[str, Any] | None = None
    output: Any = None
    error: str | None = None
    retry_count: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = _dt_to_json(self.started_at)
        data["completed_at"] = _dt_to_json(self.completed_at)
        return data

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> NodeExecution:
        return cls(
            node_id=str(raw["node_id"]),
            node_type=str(raw.get("node_type") or ""),
            status=str(raw.get("status") or NodeExecutionStatus.PENDING.value),
            input=raw.get("input"),
            output=raw.get("output"),
            error=raw.get("error"),
            retry_count=int(raw.get("retry_count") or 0),
            started_at=_dt_from_json(raw.get("started_at")),
            completed_at=_dt_from_json(raw.get("completed_at")),
            duration_ms=raw.get("duration_ms"),
        )


@dataclass
class WaitState:
    """Suspension token of a run parked on a delay or approval node.

    approvals maps approver id to decision ("approved" / "rejected").
    """

    kind: str
    node_id: str
    token: str
    requested_at: datetime
    resume_at: datetime | None = None
    approvals: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "node_id": self.node_id,
            "token": self.token,
            "requested_at": _dt_to_json(self.requested_at),
            "resume_at": _dt_to_json(self.resume_at),
            "approvals": dict(self.approvals),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> WaitState | None:
        if not raw:
            return None
        return cls(
            kind=str(raw["kind"]),
            node_id=str(raw["node_id"]),
            token=str(raw["token"]),
            requested_at=_dt_from_json(raw.get("requested_at")),
            resume_at=_dt_from_json(raw.get("resume_at")),
            approvals=dict(raw.get("approvals") or {}),
        )


@dataclass
class DefinitionSnapshot:
    """Frozen copy of the workflow definition a run executes."""

    version: int
    nodes: list[WorkflowNode]
    edges: list[WorkflowEdge]
    trigger: TriggerConfig
    settings: WorkflowSettings

    def graph(self) -> WorkflowGraph:
        return WorkflowGraph(self.nodes, self.edges)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> DefinitionSnapshot:
        return cls(
            version=int(raw.get("version") or 1),
            nodes=[WorkflowNode.from_dict(n) for n in raw.get("nodes") or []],
            edges=[WorkflowEdge.from_dict(e) for e in raw.get("edges") or []],
            trigger=TriggerConfig.from_dict(raw.get("trigger")),
            settings=WorkflowSettings.from_dict(raw.get("settings")),
        )


def new_context(trigger_data: dict[str, Any]) -> dict[str, Any]:
    """Initial run working memory."""
    return {"trigger": dict(trigger_data), "variables": {}, "nodes": {}}


@dataclass
class WorkflowExecution:
    """One run of a workflow against one trigger event."""

    id: str
    tenant_id: str
    workflow_id: str
    workflow_name: str
    workflow_version: int
    definition: dict[str, Any]
    status: str = ExecutionStatus.PENDING.value
    triggered_by: str = TriggeredBy.USER.value
    triggered_by_user: str | None = None
    trigger_data: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)
    node_executions: list[NodeExecution] = field(default_factory=list)
    activated_node_ids: list[str] = field(default_factory=list)
    waiting: WaitState | None = None
    output: Any = None
    error: ExecutionError | None = None
    cancel_requested: bool = False
    retry_of: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    # Bumped by every save; a stale revision means another writer got there first.
    revision: int = 0

    def snapshot(self) -> DefinitionSnapshot:
        return DefinitionSnapshot.from_dict(self.definition)

    @property
    def is_terminal(self) -> bool:
        return self.status in {s.value for s in ExecutionStatus.terminal()}

    @property
    def is_suspended(self) -> bool:
        return self.status == ExecutionStatus.RUNNING.value and self.waiting is not None

    @property
    def deadline_at(self) -> datetime | None:
        """started_at + settings.timeout_ms; None before start or when timeout_ms is 0."""
        timeout_ms = self.snapshot().settings.timeout_ms
        if not timeout_ms or self.started_at is None:
            return None
        return add_ms(self.started_at, timeout_ms)

    def node_execution(self, node_id: str) -> NodeExecution | None:
        """Latest record for node_id (a node runs at most once per run)."""
        for record in reversed(self.node_executions):
            if record.node_id == node_id:
                return record
        return None

    def executed_node_ids(self) -> set[str]:
        return {r.node_id for r in self.node_executions if r.status != NodeExecutionStatus.PENDING.value}

    def belongs_to_tenant(self, tenant_id: str) -> bool:
        return self.tenant_id == tenant_id


@dataclass
class ExecutionLogEntry:
    """One step-by-step event of a run, kept for debugging and audit.

    Entries are append-only and ordered by timestamp; they are deleted
    together with their run.
    """

    id: str
    tenant_id: str
    execution_id: str
    level: str
    message: str
    node_id: str | None = None
    data: dict[str, Any] | None = None
    timestamp: datetime | None = None
