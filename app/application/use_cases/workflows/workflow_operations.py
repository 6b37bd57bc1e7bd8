"""Workflow operations: create, query, edit, clone, enable/disable, archive, stats."""

from __future__ import annotations

import copy
from dataclasses import replace
from datetime import datetime

from app.application.dtos.workflow import (
    ValidationResult,
    WorkflowCreate,
    WorkflowFilters,
    WorkflowStats,
    WorkflowUpdate,
)
from app.application.interfaces.repositories import (
    IWorkflowExecutionRepository,
    IWorkflowRepository,
)
from app.application.services.workflow_validator import WorkflowValidator
from app.domain.entities.workflow import Workflow, WorkflowMetrics
from app.domain.enums import WorkflowCategory, WorkflowStatus
from app.domain.exceptions import (
    ResourceNotFoundException,
    ValidationException,
    WorkflowActivationException,
    WorkflowValidationException,
)
from app.shared.telemetry.logging import get_logger
from app.shared.utils.datetime import utc_now
from app.shared.utils.generators import generate_cuid

logger = get_logger(__name__)


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class WorkflowService:
    """Tenant-scoped workflow definition management.

    A workflow is `active` only while enabled and valid: enabling re-runs the
    validator and refuses with the full error list, and a structural edit of an
    active workflow must keep it valid.
    """

    def __init__(
        self,
        workflow_repo: IWorkflowRepository,
        execution_repo: IWorkflowExecutionRepository | None = None,
        validator: WorkflowValidator | None = None,
    ) -> None:
        self.workflow_repo = workflow_repo
        self.execution_repo = execution_repo
        self.validator = validator or WorkflowValidator()

    async def create(self, tenant_id: str, data: WorkflowCreate) -> Workflow:
        """Create a draft workflow at version 1. New workflows start disabled."""
        name = (data.name or "").strip()
        if not name:
            raise ValidationException("Workflow name is required", field="name")
        if data.category not in WorkflowCategory.values():
            raise ValidationException(f"Invalid category '{data.category}'", field="category")
        now = utc_now()
        workflow = Workflow(
            id=generate_cuid(),
            tenant_id=tenant_id,
            name=name,
            description=data.description or "",
            category=data.category,
            status=WorkflowStatus.DRAFT.value,
            version=1,
            nodes=list(data.nodes),
            edges=list(data.edges),
            trigger=data.trigger,
            settings=replace(data.settings, enabled=False),
            template_id=data.template_id,
            created_by=data.created_by,
            created_at=now,
            updated_at=now,
        )
        created = await self.workflow_repo.create(workflow)
        logger.info("Created workflow %s (%s) in tenant %s", created.id, created.name, tenant_id)
        return created

    async def get(self, tenant_id: str, workflow_id: str) -> Workflow:
        workflow = await self.workflow_repo.get_by_id(workflow_id, tenant_id)
        if workflow is None:
            raise ResourceNotFoundException("workflow", workflow_id)
        return workflow

    async def list(self, tenant_id: str, filters: WorkflowFilters) -> tuple[list[Workflow], int]:
        """Return one page of workflows and the total matching count."""
        items = await self.workflow_repo.list(tenant_id, filters)
        total = await self.workflow_repo.count(tenant_id, filters)
        return items, total

    async def update(self, tenant_id: str, workflow_id: str, changes: WorkflowUpdate) -> Workflow:
        """Apply a partial update.

        Structural changes (nodes, edges, trigger) bump the version. Settings
        are merged key by key. `status` and `settings.enabled` go through the
        same activation rules as toggle() and archive().
        """
        workflow = await self.get(tenant_id, workflow_id)

        if changes.name is not None:
            if not changes.name.strip():
                raise ValidationException("Workflow name is required", field="name")
            workflow.name = changes.name.strip()
        if changes.description is not None:
            workflow.description = changes.description
        if changes.category is not None:
            if changes.category not in WorkflowCategory.values():
                raise ValidationException(f"Invalid category '{changes.category}'", field="category")
            workflow.category = changes.category

        before = workflow.structure()
        if changes.nodes is not None:
            workflow.nodes = list(changes.nodes)
        if changes.edges is not None:
            workflow.edges = list(changes.edges)
        if changes.trigger is not None:
            workflow.trigger = changes.trigger
        structural = workflow.structure() != before
        if structural:
            workflow.version += 1

        settings_changes = dict(changes.settings or {})
        enabled = settings_changes.pop("enabled", None)
        if settings_changes:
            workflow.settings = workflow.settings.merged(settings_changes)

        target_status = changes.status
        if target_status is not None and target_status not in WorkflowStatus.values():
            raise ValidationException(f"Invalid status '{target_status}'", field="status")
        if target_status is None and enabled is not None:
            if enabled:
                target_status = WorkflowStatus.ACTIVE.value
            elif workflow.status == WorkflowStatus.ACTIVE.value:
                target_status = WorkflowStatus.INACTIVE.value
            else:
                target_status = workflow.status

        if target_status == WorkflowStatus.ACTIVE.value:
            self._activate(workflow)
        elif target_status is not None:
            workflow.status = target_status
            workflow.settings.enabled = False
        elif structural and workflow.status == WorkflowStatus.ACTIVE.value:
            result = self.validator.validate(workflow)
            if not result.valid:
                raise WorkflowValidationException(workflow.id, result.error_dicts())

        workflow.updated_at = utc_now()
        updated = await self.workflow_repo.update(workflow)
        logger.info(
            "Updated workflow %s (version=%d, status=%s, structural=%s)",
            updated.id,
            updated.version,
            updated.status,
            structural,
        )
        return updated

    async def delete(self, tenant_id: str, workflow_id: str) -> None:
        deleted = await self.workflow_repo.delete(workflow_id, tenant_id)
        if not deleted:
            raise ResourceNotFoundException("workflow", workflow_id)
        logger.info("Deleted workflow %s in tenant %s", workflow_id, tenant_id)

    async def clone(
        self,
        tenant_id: str,
        workflow_id: str,
        name: str | None = None,
        created_by: str | None = None,
    ) -> Workflow:
        """Copy the definition into a new disabled draft at version 1 with fresh metrics."""
        source = await self.get(tenant_id, workflow_id)
        now = utc_now()
        clone = Workflow(
            id=generate_cuid(),
            tenant_id=tenant_id,
            name=(name or "").strip() or f"{source.name} (Copy)",
            description=source.description,
            category=source.category,
            status=WorkflowStatus.DRAFT.value,
            version=1,
            nodes=copy.deepcopy(source.nodes),
            edges=copy.deepcopy(source.edges),
            trigger=copy.deepcopy(source.trigger),
            settings=replace(copy.deepcopy(source.settings), enabled=False),
            execution_count=0,
            last_executed_at=None,
            metrics=WorkflowMetrics(),
            template_id=source.template_id,
            created_by=created_by or source.created_by,
            created_at=now,
            updated_at=now,
        )
        created = await self.workflow_repo.create(clone)
        logger.info("Cloned workflow %s into %s", source.id, created.id)
        return created

    async def toggle(self, tenant_id: str, workflow_id: str, enabled: bool) -> Workflow:
        """Enable (validate, then activate) or disable (inactive) a workflow.

        Disabling only blocks new triggers; runs already in progress continue.
        """
        workflow = await self.get(tenant_id, workflow_id)
        if enabled:
            self._activate(workflow)
        else:
            workflow.settings.enabled = False
            if workflow.status == WorkflowStatus.ACTIVE.value:
                workflow.status = WorkflowStatus.INACTIVE.value
        workflow.updated_at = utc_now()
        updated = await self.workflow_repo.update(workflow)
        logger.info("Workflow %s %s", updated.id, "enabled" if enabled else "disabled")
        return updated

    async def archive(self, tenant_id: str, workflow_id: str) -> Workflow:
        workflow = await self.get(tenant_id, workflow_id)
        workflow.status = WorkflowStatus.ARCHIVED.value
        workflow.settings.enabled = False
        workflow.updated_at = utc_now()
        updated = await self.workflow_repo.update(workflow)
        logger.info("Archived workflow %s", updated.id)
        return updated

    async def validate(self, tenant_id: str, workflow_id: str) -> ValidationResult:
        workflow = await self.get(tenant_id, workflow_id)
        return self.validator.validate(workflow)

    async def stats(self, tenant_id: str) -> WorkflowStats:
        by_status = await self.workflow_repo.count_by_status(tenant_id)
        executions_today = 0
        if self.execution_repo is not None:
            executions_today = await self.execution_repo.count_started_since(
                tenant_id, _start_of_day(utc_now())
            )
        return WorkflowStats(
            total=sum(by_status.values()),
            by_status=by_status,
            executions_today=executions_today,
        )

    def _activate(self, workflow: Workflow) -> None:
        """Validate and mark active + enabled; raise with every error, leaving status unchanged."""
        result = self.validator.validate(workflow)
        if not result.valid:
            logger.info(
                "Activation of workflow %s refused: %d validation errors",
                workflow.id,
                len(result.errors),
            )
            raise WorkflowActivationException(workflow.id, result.error_dicts())
        workflow.settings.enabled = True
        workflow.status = WorkflowStatus.ACTIVE.value
