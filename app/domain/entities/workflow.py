"""Workflow domain entity: a directed graph of typed steps.

Nodes and edges live in a flat arena keyed by id; adjacency is computed on
demand by WorkflowGraph so cyclic drafts can be represented safely. Node
config is stored as a plain dict (persisted form) and read through a typed
variant selected by the node type (see parse_node_config).
"""

from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from app.domain.enums import (
    ApprovalType,
    LogicOperator,
    NodeType,
    OnErrorPolicy,
    TriggerType,
    WorkflowCategory,
    WorkflowStatus,
)

DEFAULT_MAX_RETRIES = 3
DEFAULT_TIMEOUT_MS = 300_000


@dataclass
class FilterCondition:
    """Single predicate evaluated against run context or trigger data."""

    field: str
    operator: str
    value: Any = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> FilterCondition:
        return cls(
            field=str(raw.get("field") or ""),
            operator=str(raw.get("operator") or ""),
            value=raw.get("value"),
        )


# ---- Typed node config variants (keyed by NodeType) ----


@dataclass
class ActionConfig:
    module: str | None = None
    action: str | None = None
    params: dict[str, Any] = field(default_factory=dict)
    output_variable: str | None = None


@dataclass
class ConditionConfig:
    conditions: list[FilterCondition] = field(default_factory=list)
    logic_operator: str = LogicOperator.AND.value


@dataclass
class ApprovalConfig:
    approvers: list[str] = field(default_factory=list)
    approval_type: str = ApprovalType.ANY.value
    timeout_ms: int | None = None
    on_timeout: str = "reject"
    message: str | None = None
    # Raw timeout_ms when it is not a non-negative integer (e.g. an unrendered template).
    invalid_timeout: Any = None


@dataclass
class DelayConfig:
    delay_type: str | None = None
    duration: Any = None


@dataclass
class NotificationConfig:
    channel: str | None = None
    recipients: list[str] | None = None
    subject: str | None = None
    body: str | None = None
    critical: bool = False


@dataclass
class GenericConfig:
    """Trigger and end nodes carry free-form config."""

    values: dict[str, Any] = field(default_factory=dict)


NodeConfig = (
    ActionConfig
    | ConditionConfig
    | ApprovalConfig
    | DelayConfig
    | NotificationConfig
    | GenericConfig
)


def _parse_ms(value: Any) -> tuple[int | None, Any]:
    """Return (milliseconds, None), or (None, value) when value is not a usable duration."""
    if value is None or value == "" or value == 0:
        return None, None
    if isinstance(value, bool):
        return None, value
    try:
        ms = int(value)
    except (TypeError, ValueError, OverflowError):
        return None, value
    if ms < 0 or (isinstance(value, float) and ms != value):
        return None, value
    return ms, None


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def parse_node_config(node_type: str, raw: dict[str, Any] | None) -> NodeConfig | None:
    """Return the typed config variant for node_type, or None when raw is None."""
    if raw is None:
        return None
    match node_type:
        case NodeType.ACTION.value:
            params = raw.get("params")
            return ActionConfig(
                module=raw.get("module") or None,
                action=raw.get("action") or None,
                params=params if isinstance(params, dict) else {},
                output_variable=raw.get("output_variable") or None,
            )
        case NodeType.CONDITION.value:
            return ConditionConfig(
                conditions=[
                    FilterCondition.from_dict(c)
                    for c in _as_list(raw.get("conditions"))
                    if isinstance(c, dict)
                ],
                logic_operator=str(raw.get("logic_operator") or LogicOperator.AND.value).upper(),
            )
        case NodeType.APPROVAL.value:
            timeout_ms, invalid_timeout = _parse_ms(raw.get("timeout_ms"))
            return ApprovalConfig(
                approvers=[str(a) for a in _as_list(raw.get("approvers")) if a],
                approval_type=str(raw.get("approval_type") or ApprovalType.ANY.value),
                timeout_ms=timeout_ms,
                on_timeout=str(raw.get("on_timeout") or "reject"),
                message=raw.get("message"),
                invalid_timeout=invalid_timeout,
            )
        case NodeType.DELAY.value:
            return DelayConfig(
                delay_type=raw.get("delay_type") or None,
                duration=raw.get("duration"),
            )
        case NodeType.NOTIFICATION.value:
            recipients = raw.get("recipients")
            return NotificationConfig(
                channel=raw.get("channel") or None,
                recipients=[str(r) for r in _as_list(recipients)] if recipients else None,
                subject=raw.get("subject"),
                body=raw.get("body"),
                critical=bool(raw.get("critical", False)),
            )
        case _:
            return GenericConfig(values=dict(raw))


@dataclass
class WorkflowNode:
    """Graph node. id is unique within its workflow."""

    id: str
    type: str
    label: str = ""
    description: str | None = None
    config: dict[str, Any] | None = None

    @property
    def display_name(self) -> str:
        return self.label or self.id

    @property
    def typed_config(self) -> NodeConfig | None:
        return parse_node_config(self.type, self.config)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> WorkflowNode:
        config = raw.get("config")
        return cls(
            id=str(raw["id"]),
            type=str(raw.get("type") or ""),
            label=str(raw.get("label") or ""),
            description=raw.get("description"),
            config=dict(config) if isinstance(config, dict) else None,
        )


@dataclass
class WorkflowEdge:
    """Directed edge; branch None marks a default edge."""

    id: str
    source: str
    target: str
    branch: str | None = None
    label: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> WorkflowEdge:
        return cls(
            id=str(raw["id"]),
            source=str(raw["source"]),
            target=str(raw["target"]),
            branch=raw.get("branch") or None,
            label=raw.get("label"),
        )


@dataclass
class TriggerConfig:
    """How the workflow is started; config keys depend on type."""

    type: str = TriggerType.MANUAL.value
    module: str | None = None
    event: str | None = None
    conditions: list[FilterCondition] = field(default_factory=list)
    schedule: dict[str, Any] | None = None
    webhook: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> TriggerConfig:
        if not raw:
            return cls()
        return cls(
            type=str(raw.get("type") or TriggerType.MANUAL.value),
            module=raw.get("module"),
            event=raw.get("event"),
            conditions=[
                FilterCondition.from_dict(c)
                for c in raw.get("conditions") or []
                if isinstance(c, dict)
            ],
            schedule=raw.get("schedule"),
            webhook=raw.get("webhook"),
        )

    @property
    def webhook_secret(self) -> str | None:
        if not self.webhook:
            return None
        return self.webhook.get("secret") or None


@dataclass
class WorkflowSettings:
    """Run-time policy: retries, global timeout, error policy, failure notices."""

    enabled: bool = False
    run_async: bool = True
    max_retries: int = DEFAULT_MAX_RETRIES
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    on_error: str = OnErrorPolicy.STOP.value
    notify_on_failure: bool = False
    notify_emails: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> WorkflowSettings:
        raw = raw or {}
        defaults = cls()
        return cls(
            enabled=bool(raw.get("enabled", defaults.enabled)),
            run_async=bool(raw.get("run_async", defaults.run_async)),
            max_retries=int(raw.get("max_retries", defaults.max_retries)),
            timeout_ms=int(raw.get("timeout_ms", defaults.timeout_ms)),
            on_error=str(raw.get("on_error", defaults.on_error)),
            notify_on_failure=bool(raw.get("notify_on_failure", defaults.notify_on_failure)),
            notify_emails=list(raw.get("notify_emails") or []),
        )

    def merged(self, changes: dict[str, Any]) -> WorkflowSettings:
        """Return a copy with the given keys replaced (partial update)."""
        data = self.to_dict()
        data.update({k: v for k, v in changes.items() if v is not None})
        return WorkflowSettings.from_dict(data)


@dataclass
class WorkflowMetrics:
    average_execution_time_ms: float = 0.0
    success_rate_percent: float = 0.0
    last_error: str | None = None


class WorkflowGraph:
    """Read-only adjacency view over a node/edge arena.

    Edges whose endpoints are missing are kept in `edges` but ignored by
    traversal helpers.
    """

    def __init__(self, nodes: list[WorkflowNode], edges: list[WorkflowEdge]) -> None:
        self.nodes = nodes
        self.edges = edges
        self._by_id = {n.id: n for n in nodes}
        self._order = {n.id: i for i, n in enumerate(nodes)}

    def node_by_id(self, node_id: str) -> WorkflowNode | None:
        return self._by_id.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._by_id

    def valid_edges(self) -> list[WorkflowEdge]:
        return [e for e in self.edges if e.source in self._by_id and e.target in self._by_id]

    def outgoing(self, node_id: str) -> list[WorkflowEdge]:
        return [e for e in self.valid_edges() if e.source == node_id]

    def incoming(self, node_id: str) -> list[WorkflowEdge]:
        return [e for e in self.valid_edges() if e.target == node_id]

    def nodes_of_type(self, node_type: str) -> list[WorkflowNode]:
        return [n for n in self.nodes if n.type == node_type]

    def trigger_nodes(self) -> list[WorkflowNode]:
        return self.nodes_of_type(NodeType.TRIGGER.value)

    def end_nodes(self) -> list[WorkflowNode]:
        return self.nodes_of_type(NodeType.END.value)

    def reachable_from(self, start_ids: list[str]) -> set[str]:
        """Breadth-first reachability over valid edges."""
        seen = {s for s in start_ids if s in self._by_id}
        queue = deque(seen)
        adjacency: dict[str, list[str]] = {}
        for edge in self.valid_edges():
            adjacency.setdefault(edge.source, []).append(edge.target)
        while queue:
            current = queue.popleft()
            for target in adjacency.get(current, []):
                if target not in seen:
                    seen.add(target)
                    queue.append(target)
        return seen

    def topological_order(self) -> list[str]:
        """Kahn's algorithm; ties broken by node declaration order.

        Nodes caught in a cycle are appended at the end in declaration order.
        """
        in_degree = {n.id: 0 for n in self.nodes}
        adjacency: dict[str, list[str]] = {n.id: [] for n in self.nodes}
        for edge in self.valid_edges():
            adjacency[edge.source].append(edge.target)
            in_degree[edge.target] += 1
        ready = sorted((nid for nid, d in in_degree.items() if d == 0), key=self._order.__getitem__)
        ordered: list[str] = []
        while ready:
            current = ready.pop(0)
            ordered.append(current)
            for target in adjacency[current]:
                in_degree[target] -= 1
                if in_degree[target] == 0:
                    ready.append(target)
            ready.sort(key=self._order.__getitem__)
        if len(ordered) < len(self.nodes):
            placed = set(ordered)
            ordered.extend(n.id for n in self.nodes if n.id not in placed)
        return ordered


@dataclass
class Workflow:
    """Workflow definition aggregate. Owns its nodes and edges."""

    id: str
    tenant_id: str
    name: str
    description: str = ""
    category: str = WorkflowCategory.CUSTOM.value
    status: str = WorkflowStatus.DRAFT.value
    version: int = 1
    nodes: list[WorkflowNode] = field(default_factory=list)
    edges: list[WorkflowEdge] = field(default_factory=list)
    trigger: TriggerConfig = field(default_factory=TriggerConfig)
    settings: WorkflowSettings = field(default_factory=WorkflowSettings)
    execution_count: int = 0
    last_executed_at: datetime | None = None
    metrics: WorkflowMetrics = field(default_factory=WorkflowMetrics)
    template_id: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def graph(self) -> WorkflowGraph:
        return WorkflowGraph(self.nodes, self.edges)

    def belongs_to_tenant(self, tenant_id: str) -> bool:
        """Return whether this workflow belongs to the given tenant."""
        return self.tenant_id == tenant_id

    @property
    def is_runnable(self) -> bool:
        """Enabled and active; only runnable workflows accept new triggers."""
        return self.settings.enabled and self.status == WorkflowStatus.ACTIVE.value

    def can_trigger_on(self, module: str, event: str) -> bool:
        """Return whether this workflow is runnable and its event trigger matches."""
        return (
            self.is_runnable
            and self.trigger.type == TriggerType.EVENT.value
            and self.trigger.module == module
            and self.trigger.event == event
        )

    def structure(self) -> dict[str, Any]:
        """Structural part of the definition; a change here bumps version."""
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "trigger": self.trigger.to_dict(),
        }

    def snapshot(self) -> dict[str, Any]:
        """Frozen definition stored on each run."""
        return {
            **self.structure(),
            "version": self.version,
            "settings": self.settings.to_dict(),
        }
