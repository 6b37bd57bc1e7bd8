"""WorkflowTemplateService unit tests: catalog, custom templates, create-from-template, seeding."""

import pytest

from app.application.dtos.workflow import TemplateCreate, TemplateInstantiate
from app.application.services.template_catalog import system_templates
from app.application.services.workflow_validator import validate_workflow
from app.application.use_cases.templates import WorkflowTemplateService
from app.application.use_cases.workflows import WorkflowService
from app.domain.entities.workflow import TriggerConfig, Workflow
from app.domain.exceptions import ResourceNotFoundException, ValidationException
from tests.fakes import (
    TENANT,
    InMemoryTemplateRepository,
    InMemoryWorkflowRepository,
    action,
    linear_workflow,
)

APPROVAL_TEMPLATE = "system-service-request-approval"


@pytest.fixture
def workflows() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def templates() -> InMemoryTemplateRepository:
    return InMemoryTemplateRepository()


@pytest.fixture
def service(workflows, templates) -> WorkflowTemplateService:
    return WorkflowTemplateService(templates, WorkflowService(workflows))


@pytest.mark.parametrize("template", system_templates(), ids=lambda t: t.id)
def test_system_templates_are_valid_graphs(template) -> None:
    workflow = Workflow(
        id="w",
        tenant_id=TENANT,
        name=template.name,
        nodes=template.nodes,
        edges=template.edges,
        trigger=template.trigger,
    )
    result = validate_workflow(workflow)
    assert result.valid, result.errors
    assert template.is_system and template.tenant_id is None


async def test_list_merges_system_and_tenant_templates(service: WorkflowTemplateService) -> None:
    definition = linear_workflow(action("a1"))
    await service.create(TENANT, TemplateCreate(name="Mine", nodes=definition.nodes, edges=definition.edges))
    await service.create("t2", TemplateCreate(name="Theirs", nodes=definition.nodes, edges=definition.edges))

    names = [t.name for t in await service.list(TENANT)]

    assert "Mine" in names
    assert "Theirs" not in names
    assert len(names) == len(system_templates()) + 1
    assert [t.name for t in await service.list(TENANT, category="incident")] == ["Incident Follow-Up"]


async def test_create_copies_graph_from_workflow(service: WorkflowTemplateService, workflows) -> None:
    source = linear_workflow(action("a1"), action("a2"))
    await workflows.create(source)

    template = await service.create(
        TENANT, TemplateCreate(name="From wf", source_workflow_id=source.id, tags=["ops"])
    )

    assert [n.id for n in template.nodes] == ["start", "a1", "a2", "end"]
    assert template.tenant_id == TENANT
    assert template.is_system is False
    assert template.tags == ["ops"]


async def test_create_rejects_empty_graph_and_blank_name(service: WorkflowTemplateService) -> None:
    with pytest.raises(ValidationException):
        await service.create(TENANT, TemplateCreate(name="empty"))
    with pytest.raises(ValidationException):
        await service.create(TENANT, TemplateCreate(name=" ", nodes=linear_workflow().nodes))


async def test_create_workflow_applies_customizations(service: WorkflowTemplateService) -> None:
    trigger = TriggerConfig(type="manual")

    workflow = await service.create_workflow(
        TENANT,
        APPROVAL_TEMPLATE,
        TemplateInstantiate(
            name="Laptop requests",
            trigger=trigger,
            node_overrides={"manager-approval": {"approvers": ["alice"]}, "nope": {"x": 1}},
            created_by="u9",
        ),
    )

    assert workflow.template_id == APPROVAL_TEMPLATE
    assert workflow.status == "draft"
    assert workflow.settings.enabled is False
    assert workflow.trigger.type == "manual"
    assert workflow.category == "service-request"
    approval = next(n for n in workflow.nodes if n.id == "manager-approval")
    assert approval.config["approvers"] == ["alice"]
    assert approval.config["approval_type"] == "any"
    assert workflow.created_by == "u9"

    untouched = next(t for t in system_templates() if t.id == APPROVAL_TEMPLATE)
    assert next(n for n in untouched.nodes if n.id == "manager-approval").config["approvers"] == [
        "{{ trigger.manager }}"
    ]


async def test_create_workflow_counts_custom_template_usage(service: WorkflowTemplateService, templates) -> None:
    definition = linear_workflow(action("a1"))
    template = await service.create(TENANT, TemplateCreate(name="Mine", nodes=definition.nodes))

    await service.create_workflow(TENANT, template.id, TemplateInstantiate(name="one"))
    await service.create_workflow(TENANT, template.id, TemplateInstantiate(name="two"))

    assert templates.rows[template.id].usage_count == 2


async def test_other_tenants_template_is_not_found(service: WorkflowTemplateService) -> None:
    template = await service.create("t2", TemplateCreate(name="Theirs", nodes=linear_workflow().nodes))

    with pytest.raises(ResourceNotFoundException):
        await service.get(TENANT, template.id)
    with pytest.raises(ResourceNotFoundException):
        await service.create_workflow(TENANT, template.id, TemplateInstantiate(name="x"))


async def test_delete_refuses_system_templates(service: WorkflowTemplateService) -> None:
    with pytest.raises(ValidationException):
        await service.delete(TENANT, APPROVAL_TEMPLATE)
    with pytest.raises(ResourceNotFoundException):
        await service.delete(TENANT, "missing")


async def test_seed_is_idempotent(service: WorkflowTemplateService, workflows) -> None:
    first = await service.seed_workflows(TENANT)
    second = await service.seed_workflows(TENANT)

    assert first.seeded == len(system_templates())
    assert first.skipped == 0
    assert second.seeded == 0
    assert second.skipped == len(system_templates())
    seeded = [w for w in workflows.rows.values() if w.tenant_id == TENANT]
    assert sorted(w.template_id for w in seeded) == sorted(t.id for t in system_templates())
    assert all(w.status == "draft" and not w.settings.enabled for w in seeded)
