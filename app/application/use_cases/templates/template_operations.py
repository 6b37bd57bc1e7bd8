"""Template operations: browse, save custom templates, create workflows from them, seed a tenant."""

from __future__ import annotations

import copy

from app.application.dtos.workflow import (
    SeedResult,
    TemplateCreate,
    TemplateInstantiate,
    WorkflowCreate,
    WorkflowFilters,
)
from app.application.interfaces.repositories import IWorkflowTemplateRepository
from app.application.services.template_catalog import get_system_template, system_templates
from app.application.use_cases.workflows import WorkflowService
from app.domain.entities.workflow import Workflow, WorkflowSettings
from app.domain.entities.workflow_template import WorkflowTemplate
from app.domain.enums import WorkflowCategory
from app.domain.exceptions import ResourceNotFoundException, ValidationException
from app.shared.telemetry.logging import get_logger
from app.shared.utils.datetime import utc_now
from app.shared.utils.generators import generate_cuid

logger = get_logger(__name__)


class WorkflowTemplateService:
    """System templates plus the tenant's own; workflows are created through WorkflowService.

    A workflow created from a template records the template id, starts as a
    disabled draft and is independent of later template changes.
    """

    def __init__(self, template_repo: IWorkflowTemplateRepository, workflow_service: WorkflowService) -> None:
        self.template_repo = template_repo
        self.workflow_service = workflow_service

    async def list(self, tenant_id: str, category: str | None = None) -> list[WorkflowTemplate]:
        """System and tenant templates, most used first."""
        builtin = [t for t in system_templates() if category is None or t.category == category]
        custom = await self.template_repo.list(tenant_id, category)
        return sorted(builtin + custom, key=lambda t: t.usage_count, reverse=True)

    async def get(self, tenant_id: str, template_id: str) -> WorkflowTemplate:
        template = get_system_template(template_id) or await self.template_repo.get_by_id(template_id, tenant_id)
        if template is None or not template.visible_to(tenant_id):
            raise ResourceNotFoundException("workflow_template", template_id)
        return template

    async def create(self, tenant_id: str, data: TemplateCreate) -> WorkflowTemplate:
        """Save a custom template, optionally copying the graph of an existing workflow."""
        name = (data.name or "").strip()
        if not name:
            raise ValidationException("Template name is required", field="name")
        if data.category not in WorkflowCategory.values():
            raise ValidationException(f"Invalid category '{data.category}'", field="category")
        nodes, edges, trigger = data.nodes, data.edges, data.trigger
        if data.source_workflow_id:
            source = await self.workflow_service.get(tenant_id, data.source_workflow_id)
            nodes, edges, trigger = source.nodes, source.edges, source.trigger
        if not nodes:
            raise ValidationException("Template must have at least one node", field="nodes")
        now = utc_now()
        template = WorkflowTemplate(
            id=generate_cuid(),
            tenant_id=tenant_id,
            name=name,
            description=data.description or "",
            category=data.category,
            icon=data.icon,
            tags=list(data.tags),
            nodes=copy.deepcopy(nodes),
            edges=copy.deepcopy(edges),
            trigger=copy.deepcopy(trigger),
            created_by=data.created_by,
            created_at=now,
            updated_at=now,
        )
        created = await self.template_repo.create(template)
        logger.info("Created template %s (%s) in tenant %s", created.id, created.name, tenant_id)
        return created

    async def delete(self, tenant_id: str, template_id: str) -> None:
        if get_system_template(template_id) is not None:
            raise ValidationException("System templates cannot be deleted", field="template_id")
        if not await self.template_repo.delete(template_id, tenant_id):
            raise ResourceNotFoundException("workflow_template", template_id)
        logger.info("Deleted template %s in tenant %s", template_id, tenant_id)

    async def create_workflow(self, tenant_id: str, template_id: str, data: TemplateInstantiate) -> Workflow:
        """New draft workflow from a template with the caller's customizations applied."""
        template = await self.get(tenant_id, template_id)
        workflow = await self.workflow_service.create(
            tenant_id,
            WorkflowCreate(
                name=data.name,
                description=data.description if data.description is not None else template.description,
                category=data.category or template.category,
                nodes=template.instantiate_nodes(data.node_overrides),
                edges=copy.deepcopy(template.edges),
                trigger=copy.deepcopy(data.trigger or template.trigger),
                settings=data.settings or WorkflowSettings(),
                template_id=template.id,
                created_by=data.created_by,
            ),
        )
        if not template.is_system:
            await self.template_repo.increment_usage(template.id, tenant_id)
        logger.info("Created workflow %s from template %s", workflow.id, template.id)
        return workflow

    async def seed_workflows(self, tenant_id: str, created_by: str | None = None) -> SeedResult:
        """Create one draft workflow per system template the tenant has none from yet.

        Safe to repeat: templates that already produced a workflow in the tenant are skipped.
        """
        seeded: list[str] = []
        skipped = 0
        for template in system_templates():
            _, existing = await self.workflow_service.list(
                tenant_id, WorkflowFilters(template_id=template.id, limit=1)
            )
            if existing:
                skipped += 1
                continue
            workflow = await self.create_workflow(
                tenant_id,
                template.id,
                TemplateInstantiate(name=template.name, created_by=created_by),
            )
            seeded.append(workflow.id)
        logger.info("Seeded %d workflows (%d skipped) in tenant %s", len(seeded), skipped, tenant_id)
        return SeedResult(seeded=len(seeded), skipped=skipped, workflow_ids=seeded)
