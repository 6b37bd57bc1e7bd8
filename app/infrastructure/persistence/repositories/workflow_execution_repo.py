"""Workflow execution repository (implements IWorkflowExecutionRepository)."""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.application.dtos.execution import ExecutionFilters
from app.domain.entities.execution import (
    ExecutionError,
    NodeExecution,
    WaitState,
    WorkflowExecution,
)
from app.domain.enums import ExecutionStatus
from app.domain.exceptions import ExecutionConflictException, ResourceNotFoundException
from app.infrastructure.persistence.models.workflow import WorkflowExecution as ExecutionModel
from app.infrastructure.persistence.models.workflow import WorkflowExecutionLog as LogModel
from app.infrastructure.persistence.repositories.base import BaseRepository
from app.shared.utils.datetime import ensure_utc, utc_now

_TERMINAL = [s.value for s in ExecutionStatus.terminal()]


def to_entity(model: ExecutionModel) -> WorkflowExecution:
    return WorkflowExecution(
        id=model.id,
        tenant_id=model.tenant_id,
        workflow_id=model.workflow_id,
        workflow_name=model.workflow_name,
        workflow_version=model.workflow_version,
        definition=copy.deepcopy(model.definition or {}),
        status=model.status,
        triggered_by=model.triggered_by,
        triggered_by_user=model.triggered_by_user,
        trigger_data=copy.deepcopy(model.trigger_data or {}),
        context=copy.deepcopy(model.context or {}),
        node_executions=[NodeExecution.from_dict(r) for r in copy.deepcopy(model.node_executions or [])],
        activated_node_ids=list(model.activated_node_ids or []),
        waiting=WaitState.from_dict(model.waiting),
        output=copy.deepcopy(model.output),
        error=ExecutionError.from_dict(model.error),
        cancel_requested=bool(model.cancel_requested),
        retry_of=model.retry_of,
        started_at=ensure_utc(model.started_at),
        completed_at=ensure_utc(model.completed_at),
        duration_ms=model.duration_ms,
        created_at=ensure_utc(model.created_at),
        updated_at=ensure_utc(model.updated_at),
        revision=model.revision or 0,
    )


def _apply_state(model: ExecutionModel, execution: WorkflowExecution) -> None:
    """Copy engine-owned state onto the row. cancel_requested is never written here.

    JSON values are deep-copied both ways: the engine mutates context in place and
    the ORM only detects a change when the new value compares unequal to the old.
    """
    model.status = execution.status
    model.context = copy.deepcopy(execution.context)
    model.node_executions = [r.to_dict() for r in execution.node_executions]
    model.activated_node_ids = list(execution.activated_node_ids)
    model.waiting = execution.waiting.to_dict() if execution.waiting else None
    model.waiting_kind = execution.waiting.kind if execution.waiting else None
    model.resume_at = execution.waiting.resume_at if execution.waiting else None
    model.deadline_at = execution.deadline_at
    model.output = copy.deepcopy(execution.output)
    model.error = execution.error.to_dict() if execution.error else None
    model.started_at = execution.started_at
    model.completed_at = execution.completed_at
    model.duration_ms = execution.duration_ms
    model.updated_at = execution.updated_at or utc_now()


class WorkflowExecutionRepository(BaseRepository[ExecutionModel]):
    """SQLAlchemy run repository."""

    def __init__(self, db: AsyncSession) -> None:
        super().__init__(db, ExecutionModel)

    def _filtered(self, tenant_id: str, filters: ExecutionFilters) -> Any:
        stmt = select(ExecutionModel).where(ExecutionModel.tenant_id == tenant_id)
        if filters.workflow_id:
            stmt = stmt.where(ExecutionModel.workflow_id == filters.workflow_id)
        if filters.status:
            stmt = stmt.where(ExecutionModel.status.in_(filters.status))
        if filters.triggered_by:
            stmt = stmt.where(ExecutionModel.triggered_by == filters.triggered_by)
        if filters.started_from:
            stmt = stmt.where(ExecutionModel.started_at >= filters.started_from)
        if filters.started_to:
            stmt = stmt.where(ExecutionModel.started_at <= filters.started_to)
        if filters.search:
            stmt = stmt.where(ExecutionModel.workflow_name.ilike(f"%{filters.search}%"))
        return stmt

    async def create(self, execution: WorkflowExecution) -> WorkflowExecution:
        async with self._translate_errors("create"):
            model = ExecutionModel(
                id=execution.id,
                tenant_id=execution.tenant_id,
                workflow_id=execution.workflow_id,
                workflow_name=execution.workflow_name,
                workflow_version=execution.workflow_version,
                definition=execution.definition,
                triggered_by=execution.triggered_by,
                triggered_by_user=execution.triggered_by_user,
                trigger_data=execution.trigger_data,
                cancel_requested=execution.cancel_requested,
                retry_of=execution.retry_of,
                created_at=execution.created_at or utc_now(),
            )
            _apply_state(model, execution)
            await self._add(model)
            return to_entity(model)

    async def get_by_id(self, execution_id: str, tenant_id: str) -> WorkflowExecution | None:
        async with self._translate_errors("get_by_id"):
            model = await self._get_model(execution_id, tenant_id, refresh=True)
            return to_entity(model) if model else None

    async def save(self, execution: WorkflowExecution) -> WorkflowExecution:
        async with self._translate_errors("save"):
            model = await self._get_model(execution.id, execution.tenant_id)
            if model is None:
                raise ResourceNotFoundException("workflow_execution", execution.id)
            if execution.revision and model.revision != execution.revision:
                raise ExecutionConflictException(execution.id)
            _apply_state(model, execution)
            try:
                await self.db.flush()
            except StaleDataError as exc:
                raise ExecutionConflictException(execution.id) from exc
            execution.revision = model.revision
            return execution

    async def list(self, tenant_id: str, filters: ExecutionFilters) -> list[WorkflowExecution]:
        async with self._translate_errors("list"):
            stmt = (
                self._filtered(tenant_id, filters)
                .order_by(ExecutionModel.created_at.desc(), ExecutionModel.id)
                .offset(filters.skip)
                .limit(filters.limit)
            )
            result = await self.db.execute(stmt)
            return [to_entity(m) for m in result.scalars().all()]

    async def count(self, tenant_id: str, filters: ExecutionFilters) -> int:
        async with self._translate_errors("count"):
            subquery = self._filtered(tenant_id, filters).subquery()
            result = await self.db.execute(select(func.count()).select_from(subquery))
            return result.scalar_one()

    async def request_cancel(self, execution_id: str, tenant_id: str) -> bool:
        async with self._translate_errors("request_cancel"):
            result = await self.db.execute(
                update(ExecutionModel)
                .where(
                    ExecutionModel.id == execution_id,
                    ExecutionModel.tenant_id == tenant_id,
                    ExecutionModel.status.not_in(_TERMINAL),
                    ExecutionModel.cancel_requested.is_(False),
                )
                .values(cancel_requested=True)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def is_cancel_requested(self, execution_id: str, tenant_id: str) -> bool:
        async with self._translate_errors("is_cancel_requested"):
            result = await self.db.execute(
                select(ExecutionModel.cancel_requested).where(
                    ExecutionModel.id == execution_id,
                    ExecutionModel.tenant_id == tenant_id,
                )
            )
            return bool(result.scalar_one_or_none())

    async def _list_where(self, limit: int, *criteria: Any, order_by: Any) -> list[WorkflowExecution]:
        result = await self.db.execute(
            select(ExecutionModel)
            .where(*criteria)
            .order_by(order_by, ExecutionModel.id)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [to_entity(m) for m in result.scalars().all()]

    async def list_pending(self, limit: int) -> list[WorkflowExecution]:
        async with self._translate_errors("list_pending"):
            return await self._list_where(
                limit,
                ExecutionModel.status == ExecutionStatus.PENDING.value,
                order_by=ExecutionModel.created_at.asc(),
            )

    async def list_suspended(self, due_at: datetime, limit: int) -> list[WorkflowExecution]:
        async with self._translate_errors("list_suspended"):
            return await self._list_where(
                limit,
                ExecutionModel.status == ExecutionStatus.RUNNING.value,
                ExecutionModel.waiting_kind.is_not(None),
                or_(ExecutionModel.resume_at <= due_at, ExecutionModel.deadline_at <= due_at),
                order_by=ExecutionModel.updated_at.asc(),
            )

    async def list_stale_running(self, updated_before: datetime, limit: int) -> list[WorkflowExecution]:
        async with self._translate_errors("list_stale_running"):
            return await self._list_where(
                limit,
                ExecutionModel.status == ExecutionStatus.RUNNING.value,
                ExecutionModel.waiting_kind.is_(None),
                ExecutionModel.updated_at < updated_before,
                order_by=ExecutionModel.updated_at.asc(),
            )

    async def count_by_status(self, tenant_id: str, workflow_id: str | None = None) -> dict[str, int]:
        async with self._translate_errors("count_by_status"):
            stmt = select(ExecutionModel.status, func.count()).where(ExecutionModel.tenant_id == tenant_id)
            if workflow_id:
                stmt = stmt.where(ExecutionModel.workflow_id == workflow_id)
            result = await self.db.execute(stmt.group_by(ExecutionModel.status))
            counts = {status: 0 for status in ExecutionStatus.values()}
            counts.update({status: count for status, count in result.all()})
            return counts

    async def count_started_since(self, tenant_id: str, since: datetime, workflow_id: str | None = None) -> int:
        async with self._translate_errors("count_started_since"):
            stmt = select(func.count(ExecutionModel.id)).where(
                ExecutionModel.tenant_id == tenant_id,
                ExecutionModel.created_at >= since,
            )
            if workflow_id:
                stmt = stmt.where(ExecutionModel.workflow_id == workflow_id)
            result = await self.db.execute(stmt)
            return result.scalar_one() or 0

    async def average_duration_ms(self, tenant_id: str, workflow_id: str | None = None) -> float:
        async with self._translate_errors("average_duration_ms"):
            stmt = select(func.avg(ExecutionModel.duration_ms)).where(
                ExecutionModel.tenant_id == tenant_id,
                ExecutionModel.status == ExecutionStatus.COMPLETED.value,
            )
            if workflow_id:
                stmt = stmt.where(ExecutionModel.workflow_id == workflow_id)
            result = await self.db.execute(stmt)
            value = result.scalar_one_or_none()
            return float(value) if value is not None else 0.0

    async def delete_older_than(self, tenant_id: str, before: datetime) -> int:
        criteria = (
            ExecutionModel.tenant_id == tenant_id,
            ExecutionModel.status.in_(_TERMINAL),
            ExecutionModel.completed_at < before,
        )
        async with self._translate_errors("delete_older_than"):
            # Log rows go first; SQLite does not enforce the ON DELETE CASCADE by default.
            await self.db.execute(
                delete(LogModel)
                .where(LogModel.execution_id.in_(select(ExecutionModel.id).where(*criteria)))
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(
                delete(ExecutionModel).where(*criteria).execution_options(synchronize_session=False)
            )
            return result.rowcount or 0
