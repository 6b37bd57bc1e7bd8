"""Workflow API: thin routes delegating to WorkflowService and ExecutionService."""

import json
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from app.api.v1.dependencies import (
    get_execution_service,
    get_execution_service_for_write,
    get_tenant_id,
    get_user_id,
    get_workflow_service,
    get_workflow_service_for_write,
)
from app.application.dtos.execution import DomainEvent, ExecutionFilters
from app.application.dtos.workflow import WorkflowFilters
from app.application.use_cases.executions import ExecutionService
from app.application.use_cases.workflows import WorkflowService
from app.core.config import get_settings
from app.core.limiter import limit_webhooks, limit_writes
from app.domain.exceptions import ValidationException
from app.schemas.execution import (
    DomainEventRequest,
    EventDispatchResponse,
    ExecuteWorkflowRequest,
    ExecutionListResponse,
    ExecutionResponse,
    ExecutionSummaryResponse,
)
from app.schemas.workflow import (
    ValidationResultResponse,
    WorkflowCloneRequest,
    WorkflowCreateRequest,
    WorkflowListResponse,
    WorkflowResponse,
    WorkflowStatsResponse,
    WorkflowToggleRequest,
    WorkflowUpdateRequest,
)

router = APIRouter()


@router.post("", response_model=WorkflowResponse, status_code=201)
@limit_writes
async def create_workflow(
    request: Request,
    body: WorkflowCreateRequest,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowService, Depends(get_workflow_service_for_write)],
    user_id: Annotated[str | None, Depends(get_user_id)] = None,
):
    """Create a workflow as a disabled draft (tenant-scoped)."""
    workflow = await service.create(tenant_id, body.to_dto(created_by=user_id))
    return WorkflowResponse.model_validate(workflow)


@router.get("", response_model=WorkflowListResponse)
async def list_workflows(
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowService, Depends(get_workflow_service)],
    status: Annotated[list[str] | None, Query()] = None,
    category: str | None = None,
    search: str | None = Query(None, max_length=255),
    enabled_only: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
):
    """List workflows for tenant (filtered, paginated)."""
    filters = WorkflowFilters(
        status=tuple(status) if status else None,
        category=category,
        search=search,
        enabled_only=enabled_only,
        skip=skip,
        limit=limit,
    )
    items, total = await service.list(tenant_id, filters)
    return WorkflowListResponse(
        items=[WorkflowResponse.model_validate(w) for w in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/stats", response_model=WorkflowStatsResponse)
async def workflow_stats(
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowService, Depends(get_workflow_service)],
):
    """Workflow counts by status and runs started today."""
    return WorkflowStatsResponse.model_validate(await service.stats(tenant_id))


@router.post("/events", response_model=EventDispatchResponse, status_code=202)
@limit_writes
async def dispatch_event(
    request: Request,
    body: DomainEventRequest,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[ExecutionService, Depends(get_execution_service_for_write)],
):
    """Fan a business event out to every active workflow listening on module/event."""
    executions = await service.dispatch_event(
        tenant_id,
        DomainEvent(module=body.module, event=body.event, data=body.data, user_id=body.user_id),
    )
    return EventDispatchResponse(
        executions=[ExecutionSummaryResponse.model_validate(e) for e in executions]
    )


@router.get("/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(
    workflow_id: str,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowService, Depends(get_workflow_service)],
):
    """Get workflow by id (tenant-scoped)."""
    return WorkflowResponse.model_validate(await service.get(tenant_id, workflow_id))


@router.patch("/{workflow_id}", response_model=WorkflowResponse)
@limit_writes
async def update_workflow(
    request: Request,
    workflow_id: str,
    body: WorkflowUpdateRequest,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowService, Depends(get_workflow_service_for_write)],
):
    """Partial update; nodes/edges/trigger changes bump the version."""
    workflow = await service.update(tenant_id, workflow_id, body.to_dto())
    return WorkflowResponse.model_validate(workflow)


@router.delete("/{workflow_id}", status_code=204)
@limit_writes
async def delete_workflow(
    request: Request,
    workflow_id: str,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowService, Depends(get_workflow_service_for_write)],
):
    """Delete workflow and its run history."""
    await service.delete(tenant_id, workflow_id)


@router.post("/{workflow_id}/clone", response_model=WorkflowResponse, status_code=201)
@limit_writes
async def clone_workflow(
    request: Request,
    workflow_id: str,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowService, Depends(get_workflow_service_for_write)],
    body: WorkflowCloneRequest | None = None,
    user_id: Annotated[str | None, Depends(get_user_id)] = None,
):
    """Copy a workflow into a new disabled draft."""
    name = body.name if body else None
    workflow = await service.clone(tenant_id, workflow_id, name=name, created_by=user_id)
    return WorkflowResponse.model_validate(workflow)


@router.post("/{workflow_id}/toggle", response_model=WorkflowResponse)
@limit_writes
async def toggle_workflow(
    request: Request,
    workflow_id: str,
    body: WorkflowToggleRequest,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowService, Depends(get_workflow_service_for_write)],
):
    """Enable (after validation) or disable a workflow."""
    workflow = await service.toggle(tenant_id, workflow_id, body.enabled)
    return WorkflowResponse.model_validate(workflow)


@router.post("/{workflow_id}/archive", response_model=WorkflowResponse)
@limit_writes
async def archive_workflow(
    request: Request,
    workflow_id: str,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowService, Depends(get_workflow_service_for_write)],
):
    return WorkflowResponse.model_validate(await service.archive(tenant_id, workflow_id))


@router.post("/{workflow_id}/validate", response_model=ValidationResultResponse)
async def validate_workflow(
    workflow_id: str,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[WorkflowService, Depends(get_workflow_service)],
):
    """Run the validator on the stored definition; never changes the workflow."""
    return ValidationResultResponse.model_validate(await service.validate(tenant_id, workflow_id))


@router.post("/{workflow_id}/execute", response_model=ExecutionResponse, status_code=202)
@limit_writes
async def execute_workflow(
    request: Request,
    workflow_id: str,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[ExecutionService, Depends(get_execution_service_for_write)],
    body: ExecuteWorkflowRequest | None = None,
    user_id: Annotated[str | None, Depends(get_user_id)] = None,
):
    """Manually trigger a run. Async workflows return the pending run."""
    execution = await service.trigger_manual(
        tenant_id,
        workflow_id,
        trigger_data=body.trigger_data if body else None,
        user_id=user_id,
    )
    return ExecutionResponse.model_validate(execution)


@router.post("/{workflow_id}/webhook", response_model=ExecutionResponse, status_code=202)
@limit_webhooks
async def workflow_webhook(
    request: Request,
    workflow_id: str,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[ExecutionService, Depends(get_execution_service_for_write)],
):
    """Inbound webhook; the raw body is HMAC-verified when the trigger has a secret."""
    raw_body = await request.body()
    try:
        payload = json.loads(raw_body) if raw_body else {}
    except json.JSONDecodeError as e:
        raise ValidationException("Webhook body must be JSON", field="body") from e
    if not isinstance(payload, dict):
        payload = {"payload": payload}
    signature = request.headers.get(get_settings().webhook_signature_header)
    execution = await service.trigger_webhook(tenant_id, workflow_id, payload, raw_body, signature)
    return ExecutionResponse.model_validate(execution)


@router.get("/{workflow_id}/executions", response_model=ExecutionListResponse)
async def list_workflow_executions(
    workflow_id: str,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    workflow_service: Annotated[WorkflowService, Depends(get_workflow_service)],
    service: Annotated[ExecutionService, Depends(get_execution_service)],
    status: Annotated[list[str] | None, Query()] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
):
    """Run history of one workflow, newest first."""
    await workflow_service.get(tenant_id, workflow_id)
    filters = ExecutionFilters(
        workflow_id=workflow_id,
        status=tuple(status) if status else None,
        skip=skip,
        limit=limit,
    )
    items, total = await service.list(tenant_id, filters)
    return ExecutionListResponse(
        items=[ExecutionSummaryResponse.model_validate(e) for e in items],
        total=total,
        skip=skip,
        limit=limit,
    )
