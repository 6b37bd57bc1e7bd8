"""Execution operations: triggering runs, querying, event logs, cancel, approval decisions, retry, stats, prune."""

from __future__ import annotations

import hashlib
import hmac
from datetime import timedelta
from typing import Any

from app.application.dtos.execution import (
    DomainEvent,
    ExecutionFilters,
    ExecutionStats,
    TriggerEvent,
)
from app.application.interfaces.repositories import (
    IExecutionLogRepository,
    IWorkflowExecutionRepository,
    IWorkflowRepository,
)
from app.application.interfaces.services import IWorkflowEngine
from app.application.services.condition_evaluator import evaluate_conditions
from app.domain.entities.execution import ExecutionLogEntry, WorkflowExecution
from app.domain.entities.workflow import Workflow
from app.domain.enums import ExecutionStatus, LogicOperator, TriggeredBy, TriggerType
from app.domain.exceptions import (
    ExecutionStateException,
    FlowlineException,
    ResourceNotFoundException,
    ValidationException,
    WebhookSignatureException,
    WorkflowNotEnabledException,
)
from app.shared.telemetry.logging import get_logger
from app.shared.utils.datetime import utc_now

logger = get_logger(__name__)

SIGNATURE_PREFIX = "sha256="


def sign_webhook_body(secret: str, body: bytes) -> str:
    """Signature header value for body: "sha256=" + hex HMAC-SHA256."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_webhook_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Constant-time check; the "sha256=" prefix is optional on the incoming value."""
    if not signature:
        return False
    provided = signature.strip()
    if not provided.startswith(SIGNATURE_PREFIX):
        provided = SIGNATURE_PREFIX + provided
    return hmac.compare_digest(sign_webhook_body(secret, body), provided)


class ExecutionService:
    """Tenant-scoped run operations on top of the workflow engine.

    Only enabled, active workflows accept new triggers; disabling a workflow
    never touches runs already in progress.
    """

    def __init__(
        self,
        workflow_repo: IWorkflowRepository,
        execution_repo: IWorkflowExecutionRepository,
        engine: IWorkflowEngine,
        retention_days: int = 30,
        log_repo: IExecutionLogRepository | None = None,
    ) -> None:
        self.workflow_repo = workflow_repo
        self.execution_repo = execution_repo
        self.engine = engine
        self.retention_days = retention_days
        self.log_repo = log_repo

    async def _runnable_workflow(self, tenant_id: str, workflow_id: str) -> Workflow:
        workflow = await self.workflow_repo.get_by_id(workflow_id, tenant_id)
        if workflow is None:
            raise ResourceNotFoundException("workflow", workflow_id)
        if not workflow.is_runnable:
            raise WorkflowNotEnabledException(workflow.id, workflow.status)
        return workflow

    # ---- Triggers ----

    async def trigger_manual(
        self,
        tenant_id: str,
        workflow_id: str,
        trigger_data: dict[str, Any] | None = None,
        user_id: str | None = None,
    ) -> WorkflowExecution:
        workflow = await self._runnable_workflow(tenant_id, workflow_id)
        return await self.engine.execute(
            workflow,
            TriggerEvent(
                trigger_data=dict(trigger_data or {}),
                triggered_by=TriggeredBy.USER.value,
                triggered_by_user=user_id,
            ),
        )

    async def dispatch_event(self, tenant_id: str, event: DomainEvent) -> list[WorkflowExecution]:
        """Start a run for every runnable workflow listening on module/event whose trigger conditions pass.

        A workflow that cannot start is logged and skipped; the others still run.
        """
        candidates = await self.workflow_repo.list_by_trigger_event(tenant_id, event.module, event.event)
        started: list[WorkflowExecution] = []
        for workflow in candidates:
            if not workflow.can_trigger_on(event.module, event.event):
                continue
            if not evaluate_conditions(
                workflow.trigger.conditions, LogicOperator.AND.value, None, event.data
            ):
                logger.debug(
                    "Workflow %s skipped for %s.%s: trigger conditions not met",
                    workflow.id,
                    event.module,
                    event.event,
                )
                continue
            try:
                execution = await self.engine.execute(
                    workflow,
                    TriggerEvent(
                        trigger_data=dict(event.data),
                        triggered_by=TriggeredBy.EVENT.value,
                        triggered_by_user=event.user_id,
                    ),
                )
            except FlowlineException as exc:
                logger.warning(
                    "Workflow %s could not start for %s.%s: %s",
                    workflow.id,
                    event.module,
                    event.event,
                    exc.message,
                )
                continue
            started.append(execution)
        logger.info(
            "Event %s.%s in tenant %s started %d of %d workflows",
            event.module,
            event.event,
            tenant_id,
            len(started),
            len(candidates),
        )
        return started

    async def trigger_webhook(
        self,
        tenant_id: str,
        workflow_id: str,
        payload: dict[str, Any],
        raw_body: bytes,
        signature: str | None = None,
    ) -> WorkflowExecution:
        """Start a run from an inbound webhook; verifies the signature when the trigger has a secret."""
        workflow = await self._runnable_workflow(tenant_id, workflow_id)
        if workflow.trigger.type != TriggerType.WEBHOOK.value:
            raise ValidationException("Workflow is not triggered by webhook", field="trigger")
        secret = workflow.trigger.webhook_secret
        if secret and not verify_webhook_signature(secret, raw_body, signature):
            logger.warning("Rejected webhook for workflow %s: bad signature", workflow.id)
            raise WebhookSignatureException()
        return await self.engine.execute(
            workflow,
            TriggerEvent(trigger_data=dict(payload), triggered_by=TriggeredBy.WEBHOOK.value),
        )

    # ---- Queries ----

    async def get(self, tenant_id: str, execution_id: str) -> WorkflowExecution:
        execution = await self.execution_repo.get_by_id(execution_id, tenant_id)
        if execution is None:
            raise ResourceNotFoundException("workflow_execution", execution_id)
        return execution

    async def list(self, tenant_id: str, filters: ExecutionFilters) -> tuple[list[WorkflowExecution], int]:
        items = await self.execution_repo.list(tenant_id, filters)
        total = await self.execution_repo.count(tenant_id, filters)
        return items, total

    async def logs(self, tenant_id: str, execution_id: str) -> list[ExecutionLogEntry]:
        """Step-by-step event log of a run, oldest first."""
        execution = await self.get(tenant_id, execution_id)
        if self.log_repo is None:
            return []
        return await self.log_repo.list_for_execution(execution.id, tenant_id)

    async def stats(self, tenant_id: str, workflow_id: str | None = None) -> ExecutionStats:
        by_status = await self.execution_repo.count_by_status(tenant_id, workflow_id)
        day_start = utc_now().replace(hour=0, minute=0, second=0, microsecond=0)
        today = await self.execution_repo.count_started_since(tenant_id, day_start, workflow_id)
        average = await self.execution_repo.average_duration_ms(tenant_id, workflow_id)
        completed = by_status.get(ExecutionStatus.COMPLETED.value, 0)
        finished = completed + by_status.get(ExecutionStatus.FAILED.value, 0)
        success_rate = round(completed * 100.0 / finished, 2) if finished else 0.0
        return ExecutionStats(
            total=sum(by_status.values()),
            by_status=by_status,
            today=today,
            success_rate_percent=success_rate,
            average_duration_ms=round(average, 2),
        )

    # ---- Control ----

    async def cancel(self, tenant_id: str, execution_id: str) -> WorkflowExecution:
        return await self.engine.cancel(execution_id, tenant_id)

    async def decide(
        self,
        tenant_id: str,
        execution_id: str,
        node_id: str,
        approver: str,
        decision: str,
        comment: str | None = None,
    ) -> WorkflowExecution:
        return await self.engine.submit_decision(
            execution_id, tenant_id, node_id, approver, decision, comment
        )

    async def retry(self, tenant_id: str, execution_id: str, user_id: str | None = None) -> WorkflowExecution:
        """Start a new run of the same workflow with the failed run's trigger data."""
        previous = await self.get(tenant_id, execution_id)
        if previous.status != ExecutionStatus.FAILED.value:
            raise ExecutionStateException(previous.id, previous.status, "retry")
        workflow = await self._runnable_workflow(tenant_id, previous.workflow_id)
        logger.info("Retrying execution %s of workflow %s", previous.id, workflow.id)
        return await self.engine.execute(
            workflow,
            TriggerEvent(
                trigger_data=dict(previous.trigger_data),
                triggered_by=previous.triggered_by,
                triggered_by_user=user_id or previous.triggered_by_user,
                retry_of=previous.id,
            ),
        )

    async def prune(self, tenant_id: str, older_than_days: int | None = None) -> int:
        """Delete terminal runs that completed more than N days ago."""
        days = self.retention_days if older_than_days is None else older_than_days
        if days < 1:
            raise ValidationException("older_than_days must be at least 1", field="older_than_days")
        deleted = await self.execution_repo.delete_older_than(tenant_id, utc_now() - timedelta(days=days))
        logger.info("Pruned %d executions older than %d days in tenant %s", deleted, days, tenant_id)
        return deleted
