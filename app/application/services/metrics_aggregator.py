"""Rolling execution metrics per workflow.

average' = (A*N + t) / (N+1)
successes = round(R*N/100) (+1 on success); rate' = successes / (N+1) * 100
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from app.application.dtos.execution import MetricsSnapshot
from app.domain.enums import MetricsStrategy
from app.shared.telemetry.logging import get_logger
from app.shared.utils.datetime import utc_now

if TYPE_CHECKING:
    from app.application.interfaces.repositories import IWorkflowRepository

logger = get_logger(__name__)


def compute_metrics(current: MetricsSnapshot, execution_time_ms: int, success: bool) -> MetricsSnapshot:
    """Fold one finished run into the current metrics."""
    n = current.execution_count
    new_count = n + 1
    average = (current.average_execution_time_ms * n + execution_time_ms) / new_count
    successes = round(current.success_rate_percent * n / 100)
    if success:
        successes += 1
    rate = successes / new_count * 100
    return MetricsSnapshot(
        execution_count=new_count,
        average_execution_time_ms=average,
        success_rate_percent=rate,
    )


class MetricsAggregator:
    """Records finished runs into workflow metrics (implements IMetricsRecorder).

    optimistic: read, compute, compare-and-set on execution_count; retried up to
    max_attempts, then dropped with a warning.
    atomic: a single store-level increment-and-recompute statement.
    """

    def __init__(
        self,
        workflow_repo: IWorkflowRepository,
        strategy: str = MetricsStrategy.OPTIMISTIC.value,
        max_attempts: int = 5,
    ) -> None:
        self.workflow_repo = workflow_repo
        self.strategy = strategy
        self.max_attempts = max(1, max_attempts)

    async def record_execution(
        self,
        tenant_id: str,
        workflow_id: str,
        execution_time_ms: int,
        success: bool,
        last_error: str | None = None,
    ) -> None:
        executed_at = utc_now()
        if self.strategy == MetricsStrategy.ATOMIC.value:
            await self.workflow_repo.increment_metrics(
                workflow_id, tenant_id, execution_time_ms, success, executed_at, last_error
            )
            return

        for attempt in range(1, self.max_attempts + 1):
            current = await self.workflow_repo.get_metrics(workflow_id, tenant_id)
            if current is None:
                logger.warning("Metrics not recorded: workflow %s not found", workflow_id)
                return
            updated = compute_metrics(current, execution_time_ms, success)
            if await self.workflow_repo.compare_and_set_metrics(
                workflow_id,
                tenant_id,
                current.execution_count,
                updated,
                executed_at,
                last_error,
            ):
                return
            logger.debug(
                "Metrics update conflict for workflow %s (attempt %d/%d)",
                workflow_id,
                attempt,
                self.max_attempts,
            )
        logger.warning(
            "Dropped metrics update for workflow %s after %d conflicting attempts",
            workflow_id,
            self.max_attempts,
        )
