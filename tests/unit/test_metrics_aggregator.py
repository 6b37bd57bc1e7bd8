"""Metrics aggregator unit tests: rolling formula, optimistic retries, atomic strategy."""

from unittest.mock import AsyncMock

import pytest

from app.application.dtos.execution import MetricsSnapshot
from app.application.services.metrics_aggregator import MetricsAggregator, compute_metrics
from tests.fakes import InMemoryWorkflowRepository, linear_workflow


def test_first_run_sets_average_and_rate() -> None:
    result = compute_metrics(MetricsSnapshot(0, 0.0, 0.0), 200, success=True)
    assert result == MetricsSnapshot(1, 200.0, 100.0)


def test_rolling_average_and_rate() -> None:
    current = MetricsSnapshot(execution_count=4, average_execution_time_ms=100.0, success_rate_percent=75.0)
    result = compute_metrics(current, 600, success=False)
    assert result.execution_count == 5
    assert result.average_execution_time_ms == pytest.approx(200.0)
    assert result.success_rate_percent == pytest.approx(60.0)


def test_order_independent_for_same_runs() -> None:
    runs = [(100, True), (300, False), (50, True)]
    forward = MetricsSnapshot(0, 0.0, 0.0)
    for ms, ok in runs:
        forward = compute_metrics(forward, ms, ok)
    backward = MetricsSnapshot(0, 0.0, 0.0)
    for ms, ok in reversed(runs):
        backward = compute_metrics(backward, ms, ok)
    assert forward.average_execution_time_ms == pytest.approx(backward.average_execution_time_ms)
    assert forward.success_rate_percent == pytest.approx(backward.success_rate_percent)


async def test_optimistic_retries_after_conflict() -> None:
    repo = AsyncMock()
    repo.get_metrics = AsyncMock(
        side_effect=[MetricsSnapshot(1, 100.0, 100.0), MetricsSnapshot(2, 100.0, 100.0)]
    )
    repo.compare_and_set_metrics = AsyncMock(side_effect=[False, True])
    aggregator = MetricsAggregator(repo, strategy="optimistic", max_attempts=3)

    await aggregator.record_execution("t1", "wf1", 400, success=True)

    assert repo.compare_and_set_metrics.await_count == 2
    args = repo.compare_and_set_metrics.await_args.args
    assert args[2] == 2
    assert args[3] == MetricsSnapshot(3, 200.0, 100.0)


async def test_optimistic_gives_up_after_max_attempts() -> None:
    repo = AsyncMock()
    repo.get_metrics = AsyncMock(return_value=MetricsSnapshot(1, 100.0, 100.0))
    repo.compare_and_set_metrics = AsyncMock(return_value=False)
    aggregator = MetricsAggregator(repo, max_attempts=2)

    await aggregator.record_execution("t1", "wf1", 400, success=True)

    assert repo.compare_and_set_metrics.await_count == 2


async def test_missing_workflow_is_ignored() -> None:
    repo = AsyncMock()
    repo.get_metrics = AsyncMock(return_value=None)
    await MetricsAggregator(repo).record_execution("t1", "gone", 10, success=False)
    repo.compare_and_set_metrics.assert_not_awaited()


async def test_atomic_strategy_uses_store_increment() -> None:
    repo = AsyncMock()
    await MetricsAggregator(repo, strategy="atomic").record_execution("t1", "wf1", 10, False, "boom")
    repo.increment_metrics.assert_awaited_once()
    assert repo.increment_metrics.await_args.args[:4] == ("wf1", "t1", 10, False)
    repo.get_metrics.assert_not_awaited()


async def test_records_into_workflow() -> None:
    repo = InMemoryWorkflowRepository(linear_workflow())
    aggregator = MetricsAggregator(repo)
    await aggregator.record_execution("t1", "wf1", 100, success=True)
    await aggregator.record_execution("t1", "wf1", 300, success=False, last_error="boom")

    stored = repo.rows["wf1"]
    assert stored.execution_count == 2
    assert stored.metrics.average_execution_time_ms == pytest.approx(200.0)
    assert stored.metrics.success_rate_percent == pytest.approx(50.0)
    assert stored.metrics.last_error == "boom"
    assert stored.last_executed_at is not None
