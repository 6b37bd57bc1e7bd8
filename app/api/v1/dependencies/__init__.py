"""API v1 dependencies (composition root).

Routes import from here; infrastructure is wired only in this package.
"""

from app.api.v1.dependencies.tenant import get_tenant_id, get_user_id
from app.api.v1.dependencies.workflow import (
    build_workflow_engine,
    get_capabilities,
    get_execution_service,
    get_execution_service_for_write,
    get_run_dispatcher,
    get_template_service,
    get_template_service_for_write,
    get_workflow_service,
    get_workflow_service_for_write,
)

__all__ = [
    "build_workflow_engine",
    "get_capabilities",
    "get_execution_service",
    "get_execution_service_for_write",
    "get_run_dispatcher",
    "get_template_service",
    "get_template_service_for_write",
    "get_tenant_id",
    "get_user_id",
    "get_workflow_service",
    "get_workflow_service_for_write",
]
