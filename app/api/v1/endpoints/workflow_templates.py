"""Workflow template API: browse templates, save custom ones, create workflows from them."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from app.api.v1.dependencies import (
    get_template_service,
    get_template_service_for_write,
    get_tenant_id,
    get_user_id,
)
from app.application.use_cases.templates import WorkflowTemplateService
from app.core.limiter import limit_writes
from app.schemas.workflow import WorkflowResponse
from app.schemas.workflow_template import (
    SeedResponse,
    TemplateCreateRequest,
    TemplateInstantiateRequest,
    TemplateListResponse,
    TemplateResponse,
)

router = APIRouter()


@router.get("", response_model=TemplateListResponse)
async def list_templates(
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowTemplateService, Depends(get_template_service)],
    category: str | None = None,
):
    """System templates plus the tenant's own, most used first."""
    items = await service.list(tenant_id, category)
    return TemplateListResponse(
        items=[TemplateResponse.model_validate(t) for t in items],
        total=len(items),
    )


@router.post("", response_model=TemplateResponse, status_code=201)
@limit_writes
async def create_template(
    request: Request,
    body: TemplateCreateRequest,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowTemplateService, Depends(get_template_service_for_write)],
    user_id: Annotated[str | None, Depends(get_user_id)] = None,
):
    """Save a custom template from a graph or from an existing workflow."""
    template = await service.create(tenant_id, body.to_dto(created_by=user_id))
    return TemplateResponse.model_validate(template)


@router.post("/seed", response_model=SeedResponse, status_code=201)
@limit_writes
async def seed_templates(
    request: Request,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowTemplateService, Depends(get_template_service_for_write)],
    user_id: Annotated[str | None, Depends(get_user_id)] = None,
):
    """Create a draft workflow for every system template the tenant has not used yet."""
    return SeedResponse.model_validate(await service.seed_workflows(tenant_id, created_by=user_id))


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: str,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowTemplateService, Depends(get_template_service)],
):
    return TemplateResponse.model_validate(await service.get(tenant_id, template_id))


@router.delete("/{template_id}", status_code=204)
@limit_writes
async def delete_template(
    request: Request,
    template_id: str,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowTemplateService, Depends(get_template_service_for_write)],
):
    """Delete a custom template. Workflows created from it are kept."""
    await service.delete(tenant_id, template_id)


@router.post("/{template_id}/workflows", response_model=WorkflowResponse, status_code=201)
@limit_writes
async def create_workflow_from_template(
    request: Request,
    template_id: str,
    body: TemplateInstantiateRequest,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowTemplateService, Depends(get_template_service_for_write)],
    user_id: Annotated[str | None, Depends(get_user_id)] = None,
):
    """Create a disabled draft workflow from the template with customizations applied."""
    workflow = await service.create_workflow(tenant_id, template_id, body.to_dto(created_by=user_id))
    return WorkflowResponse.model_validate(workflow)
