"""Background run scheduler (implements IRunDispatcher).

Started by lifespan. Each tick, in order:

1. starts pending runs (async runs handed over by the engine),
2. resumes suspended runs whose delay elapsed or approval timed out, and
   fails suspended runs past their global timeout,
3. fails running runs nobody has touched for orphaned_run_timeout_seconds.

Every run is driven in its own session and transaction. Runs are processed
one at a time, so a tick never races itself on the same run.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.entities.execution import WorkflowExecution
from app.domain.exceptions import FlowlineException
from app.infrastructure.persistence.repositories.workflow_execution_repo import (
    WorkflowExecutionRepository,
)
from app.infrastructure.services.workflow_engine import WorkflowEngine
from app.shared.telemetry.logging import get_logger
from app.shared.utils.datetime import utc_now

logger = get_logger(__name__)

EngineFactory = Callable[[AsyncSession, "RunScheduler"], WorkflowEngine]


@dataclass
class TickResult:
    """Counts of what one scheduler tick did."""

    started: int = 0
    resumed: int = 0
    failed_stale: int = 0


class RunScheduler:
    """Polls for runs needing work; notify_pending wakes it early."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine_factory: EngineFactory,
        *,
        interval_seconds: float = 5.0,
        batch_size: int = 50,
        orphaned_run_timeout_seconds: int = 900,
    ) -> None:
        self._session_factory = session_factory
        self._engine_factory = engine_factory
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self.orphaned_run_timeout_seconds = orphaned_run_timeout_seconds
        self._wake = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    # ---- IRunDispatcher ----

    def notify_pending(self, execution_id: str, tenant_id: str) -> None:
        logger.debug("Run %s (tenant %s) queued; waking scheduler", execution_id, tenant_id)
        self._wake.set()

    # ---- Lifecycle ----

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run_forever())
            logger.info("Run scheduler started (interval=%ss)", self.interval_seconds)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Run scheduler stopped")

    async def run_forever(self) -> None:
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Run scheduler tick failed")
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval_seconds)
            except TimeoutError:
                pass
            self._wake.clear()

    # ---- Work ----

    async def tick(self) -> TickResult:
        """One pass over pending, suspended and orphaned runs."""
        result = TickResult()
        for execution in await self._query(lambda repo: repo.list_pending(self.batch_size)):
            if await self._drive(execution, lambda engine, ex: engine.resume(ex.id, ex.tenant_id)):
                result.started += 1

        now = utc_now()
        for execution in await self._query(lambda repo: repo.list_suspended(now, self.batch_size)):
            if not self._due(execution, now):
                continue
            if await self._drive(execution, lambda engine, ex: engine.resume(ex.id, ex.tenant_id)):
                result.resumed += 1

        cutoff = utc_now() - timedelta(seconds=self.orphaned_run_timeout_seconds)
        for execution in await self._query(lambda repo: repo.list_stale_running(cutoff, self.batch_size)):
            message = f"Execution abandoned: no progress for {self.orphaned_run_timeout_seconds}s"
            if await self._drive(execution, lambda engine, ex: engine.fail_stale(ex, message)):
                result.failed_stale += 1

        if result.started or result.resumed or result.failed_stale:
            logger.info(
                "Scheduler tick: started=%d resumed=%d failed_stale=%d",
                result.started,
                result.resumed,
                result.failed_stale,
            )
        return result

    @staticmethod
    def _due(execution: WorkflowExecution, now: datetime) -> bool:
        """Suspended run whose wait ended or whose global deadline passed."""
        wait = execution.waiting
        if wait is not None and wait.resume_at is not None and wait.resume_at <= now:
            return True
        deadline = execution.deadline_at
        return deadline is not None and deadline <= now

    async def _query(
        self,
        fetch: Callable[[WorkflowExecutionRepository], Awaitable[list[WorkflowExecution]]],
    ) -> list[WorkflowExecution]:
        async with self._session_factory() as session:
            return await fetch(WorkflowExecutionRepository(session))

    async def _drive(
        self,
        execution: WorkflowExecution,
        step: Callable[[WorkflowEngine, WorkflowExecution], Awaitable[WorkflowExecution]],
    ) -> bool:
        """Run one engine step for a run in its own transaction. False if it raised."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await step(self._engine_factory(session, self), execution)
        except FlowlineException as exc:
            logger.warning("Scheduler could not advance execution %s: %s", execution.id, exc.message)
            return False
        return True
