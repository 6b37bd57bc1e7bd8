"""Workflow template repository (implements IWorkflowTemplateRepository)."""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.entities.workflow import TriggerConfig, WorkflowEdge, WorkflowNode
from app.domain.entities.workflow_template import WorkflowTemplate
from app.infrastructure.persistence.models.workflow_template import WorkflowTemplate as TemplateModel
from app.infrastructure.persistence.repositories.base import BaseRepository
from app.shared.utils.datetime import ensure_utc, utc_now


def to_entity(model: TemplateModel) -> WorkflowTemplate:
    return WorkflowTemplate(
        id=model.id,
        tenant_id=model.tenant_id,
        name=model.name,
        description=model.description or "",
        category=model.category,
        icon=model.icon,
        tags=list(model.tags or []),
        nodes=[WorkflowNode.from_dict(n) for n in model.nodes or []],
        edges=[WorkflowEdge.from_dict(e) for e in model.edges or []],
        trigger=TriggerConfig.from_dict(model.trigger),
        is_system=False,
        usage_count=model.usage_count,
        created_by=model.created_by,
        created_at=ensure_utc(model.created_at),
        updated_at=ensure_utc(model.updated_at),
    )


class WorkflowTemplateRepository(BaseRepository[TemplateModel]):
    """SQLAlchemy template repository."""

    def __init__(self, db: AsyncSession) -> None:
        super().__init__(db, TemplateModel)

    async def create(self, template: WorkflowTemplate) -> WorkflowTemplate:
        async with self._translate_errors("create"):
            now = utc_now()
            model = TemplateModel(
                id=template.id,
                tenant_id=template.tenant_id,
                name=template.name,
                description=template.description or "",
                category=template.category,
                icon=template.icon,
                tags=list(template.tags),
                nodes=[n.to_dict() for n in template.nodes],
                edges=[e.to_dict() for e in template.edges],
                trigger=template.trigger.to_dict(),
                usage_count=template.usage_count,
                created_by=template.created_by,
                created_at=template.created_at or now,
                updated_at=template.updated_at or now,
            )
            await self._add(model)
            return to_entity(model)

    async def get_by_id(self, template_id: str, tenant_id: str) -> WorkflowTemplate | None:
        async with self._translate_errors("get_by_id"):
            model = await self._get_model(template_id, tenant_id, refresh=True)
            return to_entity(model) if model else None

    async def list(self, tenant_id: str, category: str | None = None) -> list[WorkflowTemplate]:
        async with self._translate_errors("list"):
            stmt = select(TemplateModel).where(TemplateModel.tenant_id == tenant_id)
            if category:
                stmt = stmt.where(TemplateModel.category == category)
            stmt = stmt.order_by(
                TemplateModel.usage_count.desc(), TemplateModel.created_at.desc(), TemplateModel.id
            ).execution_options(populate_existing=True)
            result = await self.db.execute(stmt)
            return [to_entity(m) for m in result.scalars().all()]

    async def delete(self, template_id: str, tenant_id: str) -> bool:
        async with self._translate_errors("delete"):
            model = await self._get_model(template_id, tenant_id)
            if model is None:
                return False
            await self._delete(model)
            return True

    async def increment_usage(self, template_id: str, tenant_id: str) -> None:
        async with self._translate_errors("increment_usage"):
            await self.db.execute(
                update(TemplateModel)
                .where(TemplateModel.id == template_id, TemplateModel.tenant_id == tenant_id)
                .values(usage_count=TemplateModel.usage_count + 1)
                .execution_options(synchronize_session=False)
            )
