"""API v1 router aggregation.

Includes all endpoint modules with consistent prefix and tags. Routes get
their services from app.api.v1.dependencies.
"""

from fastapi import APIRouter

from app.api.v1.endpoints import executions, health, workflow_templates, workflows

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(workflows.router, prefix="/workflows", tags=["workflows"])
api_router.include_router(
    workflow_templates.router, prefix="/workflow-templates", tags=["workflow-templates"]
)
api_router.include_router(executions.router, prefix="/executions", tags=["executions"])
