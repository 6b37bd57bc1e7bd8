"""Execution log repository (implements IExecutionLogRepository)."""

from __future__ import annotations

import copy

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.entities.execution import ExecutionLogEntry
from app.infrastructure.persistence.models.workflow import WorkflowExecutionLog as LogModel
from app.infrastructure.persistence.repositories.base import BaseRepository
from app.shared.utils.datetime import ensure_utc, utc_now


def to_entity(model: LogModel) -> ExecutionLogEntry:
    return ExecutionLogEntry(
        id=model.id,
        tenant_id=model.tenant_id,
        execution_id=model.execution_id,
        level=model.level,
        message=model.message,
        node_id=model.node_id,
        data=copy.deepcopy(model.data),
        timestamp=ensure_utc(model.timestamp),
    )


class ExecutionLogRepository(BaseRepository[LogModel]):
    """SQLAlchemy execution log repository. Entries are never updated."""

    def __init__(self, db: AsyncSession) -> None:
        super().__init__(db, LogModel)

    async def append(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        async with self._translate_errors("append"):
            model = LogModel(
                id=entry.id,
                tenant_id=entry.tenant_id,
                execution_id=entry.execution_id,
                level=entry.level,
                message=entry.message,
                node_id=entry.node_id,
                data=copy.deepcopy(entry.data),
                timestamp=entry.timestamp or utc_now(),
            )
            await self._add(model)
            return to_entity(model)

    async def list_for_execution(self, execution_id: str, tenant_id: str) -> list[ExecutionLogEntry]:
        async with self._translate_errors("list_for_execution"):
            result = await self.db.execute(
                select(LogModel)
                .where(LogModel.execution_id == execution_id, LogModel.tenant_id == tenant_id)
                .order_by(LogModel.timestamp.asc(), LogModel.id)
            )
            return [to_entity(m) for m in result.scalars().all()]
