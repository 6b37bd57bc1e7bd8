"""Repository interfaces (ports) for the application layer.

Protocols define contracts that infrastructure implementations must fulfill (DIP).
All types reference domain entities or application DTOs only; no infrastructure imports.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from app.application.dtos.execution import ExecutionFilters, MetricsSnapshot
    from app.application.dtos.workflow import WorkflowFilters
    from app.domain.entities.execution import ExecutionLogEntry, WorkflowExecution
    from app.domain.entities.workflow import Workflow
    from app.domain.entities.workflow_template import WorkflowTemplate


# Workflow repository interface
class IWorkflowRepository(Protocol):
    """Protocol for workflow definition persistence (DIP)."""

    async def create(self, workflow: Workflow) -> Workflow:
        """Persist a new workflow; id and timestamps are assigned when missing."""

    async def get_by_id(self, workflow_id: str, tenant_id: str) -> Workflow | None:
        """Return workflow by id in tenant, or None."""

    async def list(self, tenant_id: str, filters: WorkflowFilters) -> list[Workflow]:
        """Return workflows in tenant matching filters, newest first."""

    async def count(self, tenant_id: str, filters: WorkflowFilters) -> int:
        """Count workflows in tenant matching filters (pagination ignored)."""

    async def update(self, workflow: Workflow) -> Workflow:
        """Persist definition fields (name, status, graph, trigger, settings, version)."""

    async def delete(self, workflow_id: str, tenant_id: str) -> bool:
        """Delete workflow; return False when it does not exist."""

    async def list_by_trigger_event(self, tenant_id: str, module: str, event: str) -> list[Workflow]:
        """Return enabled, active workflows whose event trigger matches module/event."""

    async def count_by_status(self, tenant_id: str) -> dict[str, int]:
        """Return workflow counts per status in tenant."""

    async def get_metrics(self, workflow_id: str, tenant_id: str) -> MetricsSnapshot | None:
        """Return current execution_count and rolling metrics, or None."""

    async def compare_and_set_metrics(
        self,
        workflow_id: str,
        tenant_id: str,
        expected_count: int,
        new: MetricsSnapshot,
        executed_at: datetime,
        last_error: str | None = None,
    ) -> bool:
        """Write metrics only if execution_count still equals expected_count."""

    async def increment_metrics(
        self,
        workflow_id: str,
        tenant_id: str,
        execution_time_ms: int,
        success: bool,
        executed_at: datetime,
        last_error: str | None = None,
    ) -> None:
        """Increment count and recompute metrics in one store-level statement."""


# Workflow execution repository interface
class IWorkflowExecutionRepository(Protocol):
    """Protocol for run persistence (DIP).

    save() persists engine-owned state and never clears cancel_requested;
    only request_cancel() sets that flag.
    """

    async def create(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Persist a new run."""

    async def get_by_id(self, execution_id: str, tenant_id: str) -> WorkflowExecution | None:
        """Return run by id in tenant, or None."""

    async def save(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Persist status, context, node executions, waiting state and timings.

        Raises ExecutionConflictException when the stored revision moved on since
        the run was loaded; on success execution.revision is the new revision.
        """

    async def list(self, tenant_id: str, filters: ExecutionFilters) -> list[WorkflowExecution]:
        """Return runs in tenant matching filters, newest first."""

    async def count(self, tenant_id: str, filters: ExecutionFilters) -> int:
        """Count runs in tenant matching filters (pagination ignored)."""

    async def request_cancel(self, execution_id: str, tenant_id: str) -> bool:
        """Set cancel_requested on a non-terminal run; False when nothing changed."""

    async def is_cancel_requested(self, execution_id: str, tenant_id: str) -> bool:
        """Return the stored cancel_requested flag."""

    async def list_pending(self, limit: int) -> list[WorkflowExecution]:
        """Return pending runs across tenants, oldest first."""

    async def list_suspended(self, due_at: datetime, limit: int) -> list[WorkflowExecution]:
        """Return suspended runs whose wait or global deadline ended by due_at, oldest first."""

    async def list_stale_running(self, updated_before: datetime, limit: int) -> list[WorkflowExecution]:
        """Return running, non-suspended runs not touched since updated_before."""

    async def count_by_status(self, tenant_id: str, workflow_id: str | None = None) -> dict[str, int]:
        """Return run counts per status."""

    async def count_started_since(self, tenant_id: str, since: datetime, workflow_id: str | None = None) -> int:
        """Count runs created at or after since."""

    async def average_duration_ms(self, tenant_id: str, workflow_id: str | None = None) -> float:
        """Average duration of completed runs; 0.0 when there are none."""

    async def delete_older_than(self, tenant_id: str, before: datetime) -> int:
        """Delete terminal runs completed before the cutoff, with their log entries; return runs deleted."""


# Workflow template repository interface
class IWorkflowTemplateRepository(Protocol):
    """Protocol for custom (tenant-owned) template persistence. System templates are not stored."""

    async def create(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Persist a new template."""

    async def get_by_id(self, template_id: str, tenant_id: str) -> WorkflowTemplate | None:
        """Return the tenant's template by id, or None."""

    async def list(self, tenant_id: str, category: str | None = None) -> list[WorkflowTemplate]:
        """Return the tenant's templates, most used first."""

    async def delete(self, template_id: str, tenant_id: str) -> bool:
        """Delete template; return False when it does not exist."""

    async def increment_usage(self, template_id: str, tenant_id: str) -> None:
        """Add one to usage_count in a single store-level statement."""


# Execution log repository interface
class IExecutionLogRepository(Protocol):
    """Protocol for the append-only per-run event log."""

    async def append(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        """Persist one entry."""

    async def list_for_execution(self, execution_id: str, tenant_id: str) -> list[ExecutionLogEntry]:
        """Return the run's entries in timestamp order."""
