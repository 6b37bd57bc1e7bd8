"""Service interfaces (ports) for the application layer.

Protocols define contracts for application services (DIP).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from app.application.dtos.execution import CapabilityResult, TriggerEvent
    from app.domain.entities.execution import WorkflowExecution
    from app.domain.entities.workflow import Workflow


# Capability interfaces
class IActionHandler(Protocol):
    """Async callable executing one (module, action) pair."""

    async def __call__(self, params: dict[str, Any], context: dict[str, Any]) -> CapabilityResult:
        """Run the action with rendered params against the run context."""


class INotificationChannel(Protocol):
    """Delivery channel for notification nodes and failure notices."""

    async def send(
        self,
        recipients: list[str],
        subject: str | None,
        body: str | None,
        context: dict[str, Any],
    ) -> CapabilityResult:
        """Deliver one message; return ok=False instead of raising on delivery failure."""


class ICapabilityRegistry(Protocol):
    """Resolves action handlers and notification channels by name."""

    def get_action(self, module: str, action: str) -> IActionHandler | None:
        """Return handler for (module, action) or None."""

    def get_channel(self, channel: str) -> INotificationChannel | None:
        """Return channel by name or None."""


# Template renderer interface
class ITemplateRenderer(Protocol):
    """Renders {{ ... }} placeholders in node config against the run context."""

    def render_value(self, value: Any, context: dict[str, Any]) -> Any:
        """Render strings recursively inside lists and dicts; other values pass through."""


# Metrics interface
class IMetricsRecorder(Protocol):
    """Records one finished run into the workflow's rolling metrics."""

    async def record_execution(
        self,
        tenant_id: str,
        workflow_id: str,
        execution_time_ms: int,
        success: bool,
        last_error: str | None = None,
    ) -> None:
        """Update execution_count, average time, success rate and last_executed_at."""


# Run dispatch interface
class IRunDispatcher(Protocol):
    """Receives runs persisted as pending for background execution."""

    def notify_pending(self, execution_id: str, tenant_id: str) -> None:
        """Signal that a pending run is ready to start."""


# Workflow engine interface
class IWorkflowEngine(Protocol):
    """Protocol for the execution engine."""

    async def execute(self, workflow: Workflow, trigger_event: TriggerEvent) -> WorkflowExecution:
        """Start a run; synchronous unless settings.run_async."""

    async def resume(self, execution_id: str, tenant_id: str) -> WorkflowExecution:
        """Continue a pending or suspended run."""

    async def submit_decision(
        self,
        execution_id: str,
        tenant_id: str,
        node_id: str,
        approver: str,
        decision: str,
        comment: str | None = None,
    ) -> WorkflowExecution:
        """Record an approval decision and resume when the node resolves."""

    async def cancel(self, execution_id: str, tenant_id: str) -> WorkflowExecution:
        """Request cancellation; finalizes immediately when no traversal is active."""

    async def enforce_timeout(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Fail the run when its global timeout has elapsed."""
