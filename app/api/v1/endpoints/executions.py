"""Execution API: run history, event logs, stats, cancel, approval decisions, retry, prune."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from app.api.v1.dependencies import (
    get_execution_service,
    get_execution_service_for_write,
    get_tenant_id,
    get_user_id,
)
from app.application.dtos.execution import ExecutionFilters
from app.application.use_cases.executions import ExecutionService
from app.core.config import get_settings
from app.core.limiter import limit_writes
from app.schemas.execution import (
    DecisionRequest,
    ExecutionListResponse,
    ExecutionLogEntrySchema,
    ExecutionLogResponse,
    ExecutionResponse,
    ExecutionStatsResponse,
    ExecutionSummaryResponse,
    PruneResponse,
)

router = APIRouter()


@router.get("", response_model=ExecutionListResponse)
async def list_executions(
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[ExecutionService, Depends(get_execution_service)],
    workflow_id: str | None = None,
    status: Annotated[list[str] | None, Query()] = None,
    triggered_by: str | None = None,
    started_from: datetime | None = None,
    started_to: datetime | None = None,
    search: str | None = Query(None, max_length=255),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
):
    """List runs for tenant (filtered, paginated, newest first)."""
    filters = ExecutionFilters(
        workflow_id=workflow_id,
        status=tuple(status) if status else None,
        triggered_by=triggered_by,
        started_from=started_from,
        started_to=started_to,
        search=search,
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


@router.get("/stats", response_model=ExecutionStatsResponse)
async def execution_stats(
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[ExecutionService, Depends(get_execution_service)],
    workflow_id: str | None = None,
):
    """Counts by status, runs today, success rate and average duration."""
    return ExecutionStatsResponse.model_validate(await service.stats(tenant_id, workflow_id))


@router.delete("", response_model=PruneResponse)
@limit_writes
async def prune_executions(
    request: Request,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[ExecutionService, Depends(get_execution_service_for_write)],
    older_than_days: int | None = Query(None, ge=1),
):
    """Delete finished runs older than N days (default: configured retention)."""
    days = older_than_days or get_settings().execution_retention_days
    deleted = await service.prune(tenant_id, days)
    return PruneResponse(deleted=deleted, older_than_days=days)


@router.get("/{execution_id}", response_model=ExecutionResponse)
async def get_execution(
    execution_id: str,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[ExecutionService, Depends(get_execution_service)],
):
    """Get run by id with context and node records. Tenant-scoped."""
    return ExecutionResponse.model_validate(await service.get(tenant_id, execution_id))


@router.get("/{execution_id}/logs", response_model=ExecutionLogResponse)
async def get_execution_logs(
    execution_id: str,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[ExecutionService, Depends(get_execution_service)],
):
    """Step-by-step event log of a run, oldest first."""
    entries = await service.logs(tenant_id, execution_id)
    return ExecutionLogResponse(
        execution_id=execution_id,
        items=[ExecutionLogEntrySchema.model_validate(e) for e in entries],
    )


@router.post("/{execution_id}/cancel", response_model=ExecutionResponse)
@limit_writes
async def cancel_execution(
    request: Request,
    execution_id: str,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[ExecutionService, Depends(get_execution_service_for_write)],
):
    """Request cancellation; 409 when the run already finished."""
    return ExecutionResponse.model_validate(await service.cancel(tenant_id, execution_id))


@router.post("/{execution_id}/decisions", response_model=ExecutionResponse)
@limit_writes
async def submit_decision(
    request: Request,
    execution_id: str,
    body: DecisionRequest,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[ExecutionService, Depends(get_execution_service_for_write)],
):
    """Record an approver's decision on the approval node the run is waiting on."""
    execution = await service.decide(
        tenant_id,
        execution_id,
        node_id=body.node_id,
        approver=body.approver,
        decision=body.decision,
        comment=body.comment,
    )
    return ExecutionResponse.model_validate(execution)


@router.post("/{execution_id}/retry", response_model=ExecutionResponse, status_code=202)
@limit_writes
async def retry_execution(
    request: Request,
    execution_id: str,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    service: Annotated[ExecutionService, Depends(get_execution_service_for_write)],
    user_id: Annotated[str | None, Depends(get_user_id)] = None,
):
    """Start a new run from a failed run's trigger data."""
    return ExecutionResponse.model_validate(await service.retry(tenant_id, execution_id, user_id))
