"""Application lifespan: startup and shutdown.

Single place for startup/shutdown wiring (logging, telemetry, schema
creation for sqlite, capability registry, run scheduler, DB engine dispose).
No business logic here.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.core.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def create_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run startup then yield; on exit run shutdown.

    Startup order: logging, telemetry (if enabled), tables (if
    database_auto_create), capability registry, run scheduler (if enabled).
    Shutdown order: scheduler stop, telemetry shutdown, SQL engine dispose.
    """
    settings = get_settings()

    # ---- Startup ----
    from app.shared.telemetry.logging import setup_logging

    setup_logging()

    if settings.telemetry_enabled:
        from app.shared.telemetry.telemetry import TelemetryConfig, set_telemetry

        telemetry = TelemetryConfig(
            service_name=settings.app_name,
            service_version=settings.app_version,
            enabled=True,
            environment=settings.telemetry_environment,
        )
        telemetry.setup_telemetry(
            exporter_type=settings.telemetry_exporter,
            otlp_endpoint=settings.telemetry_otlp_endpoint,
            sample_rate=settings.telemetry_sample_rate,
        )
        set_telemetry(telemetry)
        telemetry.instrument_fastapi(app)
        telemetry.instrument_logging()
        logger.info("Telemetry initialized")

    from app.infrastructure.persistence import database

    if settings.database_auto_create:
        await database.create_all()
        logger.info("Database tables created (auto-create)")

    from app.shared.telemetry.telemetry import get_telemetry

    telemetry_instance = get_telemetry()
    if telemetry_instance is not None:
        telemetry_instance.instrument_sqlalchemy(database.get_engine())

    if getattr(app.state, "capabilities", None) is None:
        from app.infrastructure.services.capability_registry import build_default_registry

        app.state.capabilities = build_default_registry()

    app.state.run_scheduler = None
    if settings.scheduler_enabled:
        from app.api.v1.dependencies.workflow import build_workflow_engine
        from app.infrastructure.services.run_scheduler import RunScheduler

        capabilities = app.state.capabilities
        scheduler = RunScheduler(
            database.get_session_factory(),
            lambda session, dispatcher: build_workflow_engine(session, capabilities, dispatcher),
            interval_seconds=settings.scheduler_interval_seconds,
            batch_size=settings.scheduler_batch_size,
            orphaned_run_timeout_seconds=settings.orphaned_run_timeout_seconds,
        )
        scheduler.start()
        app.state.run_scheduler = scheduler

    yield

    # ---- Shutdown ----
    scheduler = getattr(app.state, "run_scheduler", None)
    if scheduler is not None:
        await scheduler.stop()
        app.state.run_scheduler = None

    telemetry_instance = get_telemetry()
    if telemetry_instance is not None:
        telemetry_instance.shutdown()
        logger.info("Telemetry shutdown complete")

    await database.dispose_engine()
    logger.info("Database engine disposed")
