"""Workflow repository (implements IWorkflowRepository)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.dtos.execution import MetricsSnapshot
from app.application.dtos.workflow import WorkflowFilters
from app.domain.entities.workflow import (
    TriggerConfig,
    Workflow,
    WorkflowEdge,
    WorkflowMetrics,
    WorkflowNode,
    WorkflowSettings,
)
from app.domain.enums import TriggerType, WorkflowStatus
from app.domain.exceptions import ResourceNotFoundException
from app.infrastructure.persistence.models.workflow import Workflow as WorkflowModel
from app.infrastructure.persistence.repositories.base import BaseRepository
from app.shared.utils.datetime import ensure_utc, utc_now


def to_entity(model: WorkflowModel) -> Workflow:
    settings = WorkflowSettings.from_dict(model.settings)
    settings.enabled = model.enabled
    return Workflow(
        id=model.id,
        tenant_id=model.tenant_id,
        name=model.name,
        description=model.description or "",
        category=model.category,
        status=model.status,
        version=model.version,
        nodes=[WorkflowNode.from_dict(n) for n in model.nodes or []],
        edges=[WorkflowEdge.from_dict(e) for e in model.edges or []],
        trigger=TriggerConfig.from_dict(model.trigger),
        settings=settings,
        execution_count=model.execution_count,
        last_executed_at=ensure_utc(model.last_executed_at),
        metrics=WorkflowMetrics(
            average_execution_time_ms=model.average_execution_time_ms,
            success_rate_percent=model.success_rate_percent,
            last_error=model.last_error,
        ),
        template_id=model.template_id,
        created_by=model.created_by,
        created_at=ensure_utc(model.created_at),
        updated_at=ensure_utc(model.updated_at),
    )


def _apply_definition(model: WorkflowModel, workflow: Workflow) -> None:
    """Copy definition fields onto the row. Metrics columns are owned by the metrics methods."""
    model.name = workflow.name
    model.description = workflow.description or ""
    model.category = workflow.category
    model.status = workflow.status
    model.version = workflow.version
    model.enabled = workflow.settings.enabled
    model.nodes = [n.to_dict() for n in workflow.nodes]
    model.edges = [e.to_dict() for e in workflow.edges]
    model.trigger = workflow.trigger.to_dict()
    model.trigger_type = workflow.trigger.type
    model.trigger_module = workflow.trigger.module
    model.trigger_event = workflow.trigger.event
    model.settings = workflow.settings.to_dict()
    model.template_id = workflow.template_id
    model.updated_at = workflow.updated_at or utc_now()


class WorkflowRepository(BaseRepository[WorkflowModel]):
    """SQLAlchemy workflow repository."""

    def __init__(self, db: AsyncSession) -> None:
        super().__init__(db, WorkflowModel)

    def _filtered(self, tenant_id: str, filters: WorkflowFilters) -> Any:
        stmt = select(WorkflowModel).where(WorkflowModel.tenant_id == tenant_id)
        if filters.status:
            stmt = stmt.where(WorkflowModel.status.in_(filters.status))
        if filters.category:
            stmt = stmt.where(WorkflowModel.category == filters.category)
        if filters.enabled_only:
            stmt = stmt.where(WorkflowModel.enabled.is_(True))
        if filters.template_id:
            stmt = stmt.where(WorkflowModel.template_id == filters.template_id)
        if filters.search:
            pattern = f"%{filters.search}%"
            stmt = stmt.where(
                or_(WorkflowModel.name.ilike(pattern), WorkflowModel.description.ilike(pattern))
            )
        return stmt

    async def create(self, workflow: Workflow) -> Workflow:
        async with self._translate_errors("create"):
            now = utc_now()
            model = WorkflowModel(
                id=workflow.id,
                tenant_id=workflow.tenant_id,
                created_by=workflow.created_by,
                created_at=workflow.created_at or now,
                execution_count=workflow.execution_count,
                last_executed_at=workflow.last_executed_at,
                average_execution_time_ms=workflow.metrics.average_execution_time_ms,
                success_rate_percent=workflow.metrics.success_rate_percent,
                last_error=workflow.metrics.last_error,
            )
            _apply_definition(model, workflow)
            await self._add(model)
            return to_entity(model)

    async def get_by_id(self, workflow_id: str, tenant_id: str) -> Workflow | None:
        async with self._translate_errors("get_by_id"):
            model = await self._get_model(workflow_id, tenant_id, refresh=True)
            return to_entity(model) if model else None

    async def list(self, tenant_id: str, filters: WorkflowFilters) -> list[Workflow]:
        async with self._translate_errors("list"):
            stmt = (
                self._filtered(tenant_id, filters)
                .order_by(WorkflowModel.updated_at.desc(), WorkflowModel.id)
                .offset(filters.skip)
                .limit(filters.limit)
            )
            result = await self.db.execute(stmt)
            return [to_entity(m) for m in result.scalars().all()]

    async def count(self, tenant_id: str, filters: WorkflowFilters) -> int:
        async with self._translate_errors("count"):
            subquery = self._filtered(tenant_id, filters).subquery()
            result = await self.db.execute(select(func.count()).select_from(subquery))
            return result.scalar_one()

    async def update(self, workflow: Workflow) -> Workflow:
        async with self._translate_errors("update"):
            model = await self._get_model(workflow.id, workflow.tenant_id)
            if model is None:
                raise ResourceNotFoundException("workflow", workflow.id)
            _apply_definition(model, workflow)
            await self.db.flush()
            return to_entity(model)

    async def delete(self, workflow_id: str, tenant_id: str) -> bool:
        async with self._translate_errors("delete"):
            model = await self._get_model(workflow_id, tenant_id)
            if model is None:
                return False
            await self._delete(model)
            return True

    async def list_by_trigger_event(self, tenant_id: str, module: str, event: str) -> list[Workflow]:
        async with self._translate_errors("list_by_trigger_event"):
            result = await self.db.execute(
                select(WorkflowModel)
                .where(
                    WorkflowModel.tenant_id == tenant_id,
                    WorkflowModel.trigger_type == TriggerType.EVENT.value,
                    WorkflowModel.trigger_module == module,
                    WorkflowModel.trigger_event == event,
                    WorkflowModel.enabled.is_(True),
                    WorkflowModel.status == WorkflowStatus.ACTIVE.value,
                )
                .order_by(WorkflowModel.created_at.asc(), WorkflowModel.id)
            )
            return [to_entity(m) for m in result.scalars().all()]

    async def count_by_status(self, tenant_id: str) -> dict[str, int]:
        async with self._translate_errors("count_by_status"):
            result = await self.db.execute(
                select(WorkflowModel.status, func.count())
                .where(WorkflowModel.tenant_id == tenant_id)
                .group_by(WorkflowModel.status)
            )
            counts = {status: 0 for status in WorkflowStatus.values()}
            counts.update({status: count for status, count in result.all()})
            return counts

    async def get_metrics(self, workflow_id: str, tenant_id: str) -> MetricsSnapshot | None:
        async with self._translate_errors("get_metrics"):
            result = await self.db.execute(
                select(
                    WorkflowModel.execution_count,
                    WorkflowModel.average_execution_time_ms,
                    WorkflowModel.success_rate_percent,
                ).where(WorkflowModel.id == workflow_id, WorkflowModel.tenant_id == tenant_id)
            )
            row = result.one_or_none()
            if row is None:
                return None
            return MetricsSnapshot(
                execution_count=row[0],
                average_execution_time_ms=row[1],
                success_rate_percent=row[2],
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
        values: dict[str, Any] = {
            "execution_count": new.execution_count,
            "average_execution_time_ms": new.average_execution_time_ms,
            "success_rate_percent": new.success_rate_percent,
            "last_executed_at": executed_at,
        }
        if last_error is not None:
            values["last_error"] = last_error
        async with self._translate_errors("compare_and_set_metrics"):
            result = await self.db.execute(
                update(WorkflowModel)
                .where(
                    WorkflowModel.id == workflow_id,
                    WorkflowModel.tenant_id == tenant_id,
                    WorkflowModel.execution_count == expected_count,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def increment_metrics(
        self,
        workflow_id: str,
        tenant_id: str,
        execution_time_ms: int,
        success: bool,
        executed_at: datetime,
        last_error: str | None = None,
    ) -> None:
        n = WorkflowModel.execution_count
        values: dict[str, Any] = {
            "execution_count": n + 1,
            "average_execution_time_ms": (WorkflowModel.average_execution_time_ms * n + execution_time_ms)
            / (n + 1.0),
            "success_rate_percent": (
                func.round(WorkflowModel.success_rate_percent * n / 100.0) + (1 if success else 0)
            )
            * 100.0
            / (n + 1.0),
            "last_executed_at": executed_at,
        }
        if last_error is not None:
            values["last_error"] = last_error
        async with self._translate_errors("increment_metrics"):
            await self.db.execute(
                update(WorkflowModel)
                .where(WorkflowModel.id == workflow_id, WorkflowModel.tenant_id == tenant_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
