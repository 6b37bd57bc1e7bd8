"""Workflow, template and execution dependencies (composition root).

Builds repositories, the workflow engine and the use-case services from
the request's DB session. The run scheduler reuses build_workflow_engine so
request-driven and background runs are wired identically.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.interfaces.services import ICapabilityRegistry, IRunDispatcher
from app.application.services.metrics_aggregator import MetricsAggregator
from app.application.use_cases.executions import ExecutionService
from app.application.use_cases.templates import WorkflowTemplateService
from app.application.use_cases.workflows import WorkflowService
from app.core.config import get_settings
from app.infrastructure.persistence.database import get_db, get_db_transactional
from app.infrastructure.persistence.repositories import (
    ExecutionLogRepository,
    WorkflowExecutionRepository,
    WorkflowRepository,
    WorkflowTemplateRepository,
)
from app.infrastructure.services.capability_registry import build_default_registry
from app.infrastructure.services.workflow_engine import WorkflowEngine

_fallback_registry: ICapabilityRegistry | None = None


def build_workflow_engine(
    db: AsyncSession,
    capabilities: ICapabilityRegistry,
    dispatcher: IRunDispatcher | None = None,
) -> WorkflowEngine:
    """Engine bound to one session: execution and log repos, metrics aggregator, engine knobs from settings."""
    settings = get_settings()
    return WorkflowEngine(
        WorkflowExecutionRepository(db),
        capabilities,
        metrics=MetricsAggregator(
            WorkflowRepository(db),
            strategy=settings.metrics_strategy,
            max_attempts=settings.metrics_max_attempts,
        ),
        dispatcher=dispatcher,
        event_log=ExecutionLogRepository(db),
        handler_timeout_seconds=settings.engine_handler_timeout_seconds,
        max_retries_cap=settings.engine_max_retries_cap,
    )


def get_capabilities(request: Request) -> ICapabilityRegistry:
    """Registry set on app.state by lifespan; built-in defaults when absent."""
    global _fallback_registry
    registry = getattr(request.app.state, "capabilities", None)
    if registry is not None:
        return registry
    if _fallback_registry is None:
        _fallback_registry = build_default_registry()
    return _fallback_registry


def get_run_dispatcher(request: Request) -> IRunDispatcher | None:
    return getattr(request.app.state, "run_scheduler", None)


async def get_workflow_service(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> WorkflowService:
    """Workflow service for read operations (get, list, validate, stats)."""
    return WorkflowService(WorkflowRepository(db), WorkflowExecutionRepository(db))


async def get_workflow_service_for_write(
    db: Annotated[AsyncSession, Depends(get_db_transactional)],
) -> WorkflowService:
    """Workflow service for create/update/delete/toggle (transactional)."""
    return WorkflowService(WorkflowRepository(db), WorkflowExecutionRepository(db))


def _execution_service(
    db: AsyncSession,
    capabilities: ICapabilityRegistry,
    dispatcher: IRunDispatcher | None,
) -> ExecutionService:
    return ExecutionService(
        WorkflowRepository(db),
        WorkflowExecutionRepository(db),
        build_workflow_engine(db, capabilities, dispatcher),
        retention_days=get_settings().execution_retention_days,
        log_repo=ExecutionLogRepository(db),
    )


async def get_execution_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    capabilities: Annotated[ICapabilityRegistry, Depends(get_capabilities)],
) -> ExecutionService:
    """Execution service for read operations (get, list, stats)."""
    return _execution_service(db, capabilities, None)


async def get_execution_service_for_write(
    db: Annotated[AsyncSession, Depends(get_db_transactional)],
    capabilities: Annotated[ICapabilityRegistry, Depends(get_capabilities)],
    dispatcher: Annotated[IRunDispatcher | None, Depends(get_run_dispatcher)],
) -> ExecutionService:
    """Execution service for triggers, cancel, decisions, retry, prune (transactional)."""
    return _execution_service(db, capabilities, dispatcher)


def _template_service(db: AsyncSession) -> WorkflowTemplateService:
    return WorkflowTemplateService(
        WorkflowTemplateRepository(db),
        WorkflowService(WorkflowRepository(db), WorkflowExecutionRepository(db)),
    )


async def get_template_service(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> WorkflowTemplateService:
    """Template service for read operations (list, get)."""
    return _template_service(db)


async def get_template_service_for_write(
    db: Annotated[AsyncSession, Depends(get_db_transactional)],
) -> WorkflowTemplateService:
    """Template service for create/delete, create-workflow and seeding (transactional)."""
    return _template_service(db)
