"""In-memory repositories, capabilities and workflow builders for unit tests.

The fake repositories store deep copies, like a real database would, so
tests see exactly what the engine persisted.
"""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any

from app.application.dtos.execution import (
    CapabilityResult,
    ExecutionFilters,
    MetricsSnapshot,
)
from app.application.dtos.workflow import WorkflowFilters
from app.application.services.metrics_aggregator import compute_metrics
from app.domain.entities.execution import ExecutionLogEntry, WorkflowExecution
from app.domain.entities.workflow import (
    TriggerConfig,
    Workflow,
    WorkflowEdge,
    WorkflowNode,
    WorkflowSettings,
)
from app.domain.entities.workflow_template import WorkflowTemplate
from app.domain.enums import ExecutionStatus, WorkflowStatus
from app.domain.exceptions import ExecutionConflictException
from app.infrastructure.services.capability_registry import CapabilityRegistry
from app.shared.utils.datetime import utc_now

TENANT = "t1"


# ---- Builders ----


def node(node_id: str, node_type: str, config: dict[str, Any] | None = None, label: str = "") -> WorkflowNode:
    return WorkflowNode(id=node_id, type=node_type, label=label, config=config)


def edge(source: str, target: str, branch: str | None = None) -> WorkflowEdge:
    return WorkflowEdge(id=f"{source}->{target}", source=source, target=target, branch=branch)


def action(node_id: str, module: str = "test", name: str = "ok", **extra: Any) -> WorkflowNode:
    return node(node_id, "action", {"module": module, "action": name, **extra})


def make_workflow(
    nodes: list[WorkflowNode],
    edges: list[WorkflowEdge],
    *,
    workflow_id: str = "wf1",
    tenant_id: str = TENANT,
    status: str = WorkflowStatus.ACTIVE.value,
    enabled: bool = True,
    trigger: TriggerConfig | None = None,
    **settings: Any,
) -> Workflow:
    settings.setdefault("run_async", False)
    return Workflow(
        id=workflow_id,
        tenant_id=tenant_id,
        name=f"Workflow {workflow_id}",
        status=status,
        nodes=nodes,
        edges=edges,
        trigger=trigger or TriggerConfig(),
        settings=WorkflowSettings(enabled=enabled, **settings),
        created_at=utc_now(),
        updated_at=utc_now(),
    )


def linear_workflow(*middle: WorkflowNode, **kwargs: Any) -> Workflow:
    """trigger -> middle... -> end."""
    nodes = [node("start", "trigger", {}), *middle, node("end", "end", {})]
    edges = [edge(a.id, b.id) for a, b in zip(nodes, nodes[1:])]
    return make_workflow(nodes, edges, **kwargs)


# ---- Capabilities ----


class RecordingAction:
    """Action handler returning results from a script; records every call."""

    def __init__(self, *results: CapabilityResult | Exception, output: Any = None) -> None:
        self.results = list(results)
        self.output = output
        self.calls: list[dict[str, Any]] = []

    async def __call__(self, params: dict[str, Any], context: dict[str, Any]) -> CapabilityResult:
        self.calls.append(copy.deepcopy(params))
        if self.results:
            result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
            if isinstance(result, Exception):
                raise result
            return result
        return CapabilityResult(ok=True, output=self.output)


class RecordingChannel:
    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.sent: list[dict[str, Any]] = []

    async def send(
        self,
        recipients: list[str],
        subject: str | None,
        body: str | None,
        context: dict[str, Any],
    ) -> CapabilityResult:
        self.sent.append({"recipients": list(recipients), "subject": subject, "body": body})
        if not self.ok:
            return CapabilityResult(ok=False, message="delivery failed")
        return CapabilityResult(ok=True, output={"delivered": len(recipients)})


def registry_with(**actions: Any) -> tuple[CapabilityRegistry, RecordingChannel]:
    """Registry with test.<name> actions plus a recording `email` channel."""
    registry = CapabilityRegistry()
    for name, handler in actions.items():
        registry.register_action("test", name, handler)
    channel = RecordingChannel()
    registry.register_channel("email", channel)
    return registry, channel


class RecordingDispatcher:
    def __init__(self) -> None:
        self.notified: list[tuple[str, str]] = []

    def notify_pending(self, execution_id: str, tenant_id: str) -> None:
        self.notified.append((execution_id, tenant_id))


# ---- Repositories ----


class InMemoryWorkflowRepository:
    def __init__(self, *workflows: Workflow) -> None:
        self.rows: dict[str, Workflow] = {}
        for workflow in workflows:
            self.rows[workflow.id] = copy.deepcopy(workflow)

    def _matches(self, w: Workflow, tenant_id: str, filters: WorkflowFilters) -> bool:
        if w.tenant_id != tenant_id:
            return False
        if filters.status and w.status not in filters.status:
            return False
        if filters.category and w.category != filters.category:
            return False
        if filters.enabled_only and not w.settings.enabled:
            return False
        if filters.template_id and w.template_id != filters.template_id:
            return False
        if filters.search:
            needle = filters.search.lower()
            if needle not in w.name.lower() and needle not in w.description.lower():
                return False
        return True

    async def create(self, workflow: Workflow) -> Workflow:
        self.rows[workflow.id] = copy.deepcopy(workflow)
        return copy.deepcopy(workflow)

    async def get_by_id(self, workflow_id: str, tenant_id: str) -> Workflow | None:
        row = self.rows.get(workflow_id)
        if row is None or row.tenant_id != tenant_id:
            return None
        return copy.deepcopy(row)

    async def list(self, tenant_id: str, filters: WorkflowFilters) -> list[Workflow]:
        items = [copy.deepcopy(w) for w in self.rows.values() if self._matches(w, tenant_id, filters)]
        return items[filters.skip : filters.skip + filters.limit]

    async def count(self, tenant_id: str, filters: WorkflowFilters) -> int:
        return sum(1 for w in self.rows.values() if self._matches(w, tenant_id, filters))

    async def update(self, workflow: Workflow) -> Workflow:
        stored = self.rows[workflow.id]
        updated = copy.deepcopy(workflow)
        updated.execution_count = stored.execution_count
        updated.metrics = copy.deepcopy(stored.metrics)
        updated.last_executed_at = stored.last_executed_at
        self.rows[workflow.id] = updated
        return copy.deepcopy(updated)

    async def delete(self, workflow_id: str, tenant_id: str) -> bool:
        row = self.rows.get(workflow_id)
        if row is None or row.tenant_id != tenant_id:
            return False
        del self.rows[workflow_id]
        return True

    async def list_by_trigger_event(self, tenant_id: str, module: str, event: str) -> list[Workflow]:
        return [
            copy.deepcopy(w)
            for w in self.rows.values()
            if w.tenant_id == tenant_id and w.can_trigger_on(module, event)
        ]

    async def count_by_status(self, tenant_id: str) -> dict[str, int]:
        counts = {s: 0 for s in WorkflowStatus.values()}
        for w in self.rows.values():
            if w.tenant_id == tenant_id:
                counts[w.status] += 1
        return counts

    async def get_metrics(self, workflow_id: str, tenant_id: str) -> MetricsSnapshot | None:
        row = await self.get_by_id(workflow_id, tenant_id)
        if row is None:
            return None
        return MetricsSnapshot(
            execution_count=row.execution_count,
            average_execution_time_ms=row.metrics.average_execution_time_ms,
            success_rate_percent=row.metrics.success_rate_percent,
        )

    async def compare_and_set_metrics(
        self,
        workflow_id: str,
        tenant_id: str,
        expected_count: int,
        new: MetricsSnapshot,
        executed_at: datetime,
        last_error: str | None = None,
    ) -> bool:
        row = self.rows.get(workflow_id)
        if row is None or row.execution_count != expected_count:
            return False
        row.execution_count = new.execution_count
        row.metrics.average_execution_time_ms = new.average_execution_time_ms
        row.metrics.success_rate_percent = new.success_rate_percent
        row.last_executed_at = executed_at
        if last_error is not None:
            row.metrics.last_error = last_error
        return True

    async def increment_metrics(
        self,
        workflow_id: str,
        tenant_id: str,
        execution_time_ms: int,
        success: bool,
        executed_at: datetime,
        last_error: str | None = None,
    ) -> None:
        current = await self.get_metrics(workflow_id, tenant_id)
        if current is None:
            return
        await self.compare_and_set_metrics(
            workflow_id,
            tenant_id,
            current.execution_count,
            compute_metrics(current, execution_time_ms, success),
            executed_at,
            last_error,
        )


class InMemoryExecutionRepository:
    def __init__(self) -> None:
        self.rows: dict[str, WorkflowExecution] = {}

    def _matches(self, e: WorkflowExecution, tenant_id: str, filters: ExecutionFilters) -> bool:
        if e.tenant_id != tenant_id:
            return False
        if filters.workflow_id and e.workflow_id != filters.workflow_id:
            return False
        if filters.status and e.status not in filters.status:
            return False
        if filters.triggered_by and e.triggered_by != filters.triggered_by:
            return False
        if filters.search and filters.search.lower() not in e.workflow_name.lower():
            return False
        return True

    async def create(self, execution: WorkflowExecution) -> WorkflowExecution:
        execution.revision = 1
        self.rows[execution.id] = copy.deepcopy(execution)
        return copy.deepcopy(execution)

    async def get_by_id(self, execution_id: str, tenant_id: str) -> WorkflowExecution | None:
        row = self.rows.get(execution_id)
        if row is None or row.tenant_id != tenant_id:
            return None
        return copy.deepcopy(row)

    async def save(self, execution: WorkflowExecution) -> WorkflowExecution:
        stored = self.rows[execution.id]
        if execution.revision and stored.revision != execution.revision:
            raise ExecutionConflictException(execution.id)
        execution.revision = stored.revision + 1
        saved = copy.deepcopy(execution)
        saved.cancel_requested = stored.cancel_requested
        self.rows[execution.id] = saved
        return execution

    async def list(self, tenant_id: str, filters: ExecutionFilters) -> list[WorkflowExecution]:
        items = [copy.deepcopy(e) for e in self.rows.values() if self._matches(e, tenant_id, filters)]
        items.sort(key=lambda e: e.created_at, reverse=True)
        return items[filters.skip : filters.skip + filters.limit]

    async def count(self, tenant_id: str, filters: ExecutionFilters) -> int:
        return sum(1 for e in self.rows.values() if self._matches(e, tenant_id, filters))

    async def request_cancel(self, execution_id: str, tenant_id: str) -> bool:
        row = self.rows.get(execution_id)
        if row is None or row.tenant_id != tenant_id or row.is_terminal or row.cancel_requested:
            return False
        row.cancel_requested = True
        return True

    async def is_cancel_requested(self, execution_id: str, tenant_id: str) -> bool:
        row = self.rows.get(execution_id)
        return bool(row and row.cancel_requested)

    async def list_pending(self, limit: int) -> list[WorkflowExecution]:
        return [copy.deepcopy(e) for e in self.rows.values() if e.status == ExecutionStatus.PENDING.value][:limit]

    async def list_suspended(self, due_at: datetime, limit: int) -> list[WorkflowExecution]:
        def due(e: WorkflowExecution) -> bool:
            resume_at = e.waiting.resume_at
            deadline = e.deadline_at
            return (resume_at is not None and resume_at <= due_at) or (deadline is not None and deadline <= due_at)

        return [copy.deepcopy(e) for e in self.rows.values() if e.is_suspended and due(e)][:limit]

    async def list_stale_running(self, updated_before: datetime, limit: int) -> list[WorkflowExecution]:
        return [
            copy.deepcopy(e)
            for e in self.rows.values()
            if e.status == ExecutionStatus.RUNNING.value and e.waiting is None and e.updated_at < updated_before
        ][:limit]

    async def count_by_status(self, tenant_id: str, workflow_id: str | None = None) -> dict[str, int]:
        counts = {s: 0 for s in ExecutionStatus.values()}
        for e in self.rows.values():
            if e.tenant_id == tenant_id and (workflow_id is None or e.workflow_id == workflow_id):
                counts[e.status] += 1
        return counts

    async def count_started_since(self, tenant_id: str, since: datetime, workflow_id: str | None = None) -> int:
        return sum(
            1
            for e in self.rows.values()
            if e.tenant_id == tenant_id
            and e.created_at >= since
            and (workflow_id is None or e.workflow_id == workflow_id)
        )

    async def average_duration_ms(self, tenant_id: str, workflow_id: str | None = None) -> float:
        durations = [
            e.duration_ms
            for e in self.rows.values()
            if e.tenant_id == tenant_id
            and e.status == ExecutionStatus.COMPLETED.value
            and e.duration_ms is not None
            and (workflow_id is None or e.workflow_id == workflow_id)
        ]
        return sum(durations) / len(durations) if durations else 0.0

    async def delete_older_than(self, tenant_id: str, before: datetime) -> int:
        doomed = [
            e.id
            for e in self.rows.values()
            if e.tenant_id == tenant_id and e.is_terminal and e.completed_at and e.completed_at < before
        ]
        for execution_id in doomed:
            del self.rows[execution_id]
        return len(doomed)


class InMemoryExecutionLogRepository:
    def __init__(self) -> None:
        self.entries: list[ExecutionLogEntry] = []

    async def append(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        self.entries.append(copy.deepcopy(entry))
        return entry

    async def list_for_execution(self, execution_id: str, tenant_id: str) -> list[ExecutionLogEntry]:
        return [
            copy.deepcopy(e)
            for e in self.entries
            if e.execution_id == execution_id and e.tenant_id == tenant_id
        ]

    def messages(self, execution_id: str) -> list[str]:
        return [e.message for e in self.entries if e.execution_id == execution_id]


class InMemoryTemplateRepository:
    def __init__(self, *templates: WorkflowTemplate) -> None:
        self.rows: dict[str, WorkflowTemplate] = {t.id: copy.deepcopy(t) for t in templates}

    async def create(self, template: WorkflowTemplate) -> WorkflowTemplate:
        self.rows[template.id] = copy.deepcopy(template)
        return copy.deepcopy(template)

    async def get_by_id(self, template_id: str, tenant_id: str) -> WorkflowTemplate | None:
        row = self.rows.get(template_id)
        if row is None or row.tenant_id != tenant_id:
            return None
        return copy.deepcopy(row)

    async def list(self, tenant_id: str, category: str | None = None) -> list[WorkflowTemplate]:
        items = [
            copy.deepcopy(t)
            for t in self.rows.values()
            if t.tenant_id == tenant_id and (category is None or t.category == category)
        ]
        return sorted(items, key=lambda t: t.usage_count, reverse=True)

    async def delete(self, template_id: str, tenant_id: str) -> bool:
        row = self.rows.get(template_id)
        if row is None or row.tenant_id != tenant_id:
            return False
        del self.rows[template_id]
        return True

    async def increment_usage(self, template_id: str, tenant_id: str) -> None:
        row = self.rows.get(template_id)
        if row is not None and row.tenant_id == tenant_id:
            row.usage_count += 1
