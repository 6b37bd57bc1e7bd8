"""Health endpoints: liveness (no dependencies) and readiness (database round trip)."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_settings
from app.domain.exceptions import SqlNotConfiguredException
from app.infrastructure.persistence.database import get_session_factory
from app.schemas.health import HealthResponse, ReadinessErrorResponse, ReadinessResponse
from app.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Return ok status for liveness."""
    settings = get_settings()
    return HealthResponse(service=settings.app_name, version=settings.app_version)


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"description": "Database unreachable", "model": ReadinessErrorResponse}},
)
async def readiness_check(request: Request) -> ReadinessResponse | JSONResponse:
    """Return 200 when a SELECT 1 succeeds; 503 otherwise."""
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, SqlNotConfiguredException) as exc:
        logger.warning("Readiness check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content=ReadinessErrorResponse(message="Database unavailable").model_dump(),
        )
    scheduler = getattr(request.app.state, "run_scheduler", None)
    if scheduler is None:
        scheduler_state = "disabled"
    else:
        scheduler_state = "running" if scheduler.is_running else "stopped"
    return ReadinessResponse(scheduler=scheduler_state)
