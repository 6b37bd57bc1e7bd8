"""WorkflowEngine unit tests against in-memory repositories.

Covers traversal, retries and on_error policies, condition branching,
approval and delay suspension, cancellation, timeouts and persistence failures.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from app.application.dtos.execution import CapabilityResult, TriggerEvent
from app.domain.entities.workflow import ApprovalConfig
from app.domain.exceptions import (
    ExecutionConflictException,
    ExecutionStateException,
    RepositoryException,
    ValidationException,
)
from app.infrastructure.services.capability_registry import build_default_registry
from app.infrastructure.services.workflow_engine import WorkflowEngine, approval_outcome
from app.shared.utils.datetime import utc_now
from tests.fakes import (
    TENANT,
    InMemoryExecutionLogRepository,
    InMemoryExecutionRepository,
    RecordingAction,
    RecordingChannel,
    RecordingDispatcher,
    action,
    edge,
    linear_workflow,
    make_workflow,
    node,
    registry_with,
)

FAIL = CapabilityResult(ok=False, message="handler said no")


def _engine(registry, repo: InMemoryExecutionRepository | None = None, **kwargs):
    repo = repo or InMemoryExecutionRepository()
    return WorkflowEngine(repo, registry, **kwargs), repo


def _statuses(execution) -> dict[str, str]:
    return {r.node_id: r.status for r in execution.node_executions}


def _approval_workflow(approval_config: dict, with_rejected_edge: bool = False, **settings):
    nodes = [
        node("start", "trigger", {}),
        node("ap", "approval", approval_config),
        action("granted"),
        node("end", "end", {}),
    ]
    edges = [edge("start", "ap"), edge("ap", "granted", "approved"), edge("granted", "end")]
    if with_rejected_edge:
        nodes.append(action("denied"))
        edges.append(edge("ap", "denied", "rejected"))
    return make_workflow(nodes, edges, **settings)


# ---- Traversal ----


async def test_linear_run_completes_with_one_record_per_node() -> None:
    handler = RecordingAction(output={"id": 7})
    registry, _ = registry_with(ok=handler)
    engine, repo = _engine(registry)

    execution = await engine.execute(linear_workflow(action("a1")), TriggerEvent(trigger_data={"x": 1}))

    assert execution.status == "completed"
    assert [r.node_id for r in execution.node_executions] == ["start", "a1", "end"]
    assert all(r.status == "completed" for r in execution.node_executions)
    assert all(r.retry_count == 0 for r in execution.node_executions)
    assert execution.context["nodes"]["a1"] == {"id": 7}
    assert execution.duration_ms is not None
    assert repo.rows[execution.id].status == "completed"


async def test_failing_action_retries_then_stops() -> None:
    handler = RecordingAction(FAIL)
    registry, _ = registry_with(ok=handler)
    engine, _ = _engine(registry)
    workflow = linear_workflow(action("a1"), max_retries=2, on_error="stop")

    execution = await engine.execute(workflow, TriggerEvent())

    assert execution.status == "failed"
    record = execution.node_execution("a1")
    assert record.status == "failed"
    assert record.retry_count == 2
    assert len(handler.calls) == 3
    assert execution.node_execution("end") is None
    assert execution.error.node_id == "a1"
    assert execution.error.message == "handler said no"


async def test_transient_failure_recovers_on_retry() -> None:
    handler = RecordingAction(FAIL, CapabilityResult(ok=True, output="done"))
    registry, _ = registry_with(ok=handler)
    engine, _ = _engine(registry)

    execution = await engine.execute(linear_workflow(action("a1")), TriggerEvent())

    assert execution.status == "completed"
    assert execution.node_execution("a1").retry_count == 1


async def test_handler_exception_becomes_node_failure() -> None:
    registry, _ = registry_with(ok=RecordingAction(RuntimeError("kaboom")))
    engine, _ = _engine(registry)

    execution = await engine.execute(linear_workflow(action("a1"), max_retries=0), TriggerEvent())

    assert execution.status == "failed"
    assert "kaboom" in execution.error.message


async def test_unregistered_action_fails_without_retry() -> None:
    registry, _ = registry_with()
    engine, _ = _engine(registry)

    execution = await engine.execute(linear_workflow(action("a1", name="missing")), TriggerEvent())

    assert execution.status == "failed"
    assert execution.node_execution("a1").retry_count == 0
    assert "No handler registered" in execution.error.message


async def test_condition_follows_matching_branch_and_skips_other() -> None:
    a, b = RecordingAction(), RecordingAction()
    registry, _ = registry_with(a=a, b=b)
    engine, _ = _engine(registry)
    condition = {"conditions": [{"field": "trigger.priority", "operator": "equals", "value": "high"}]}
    workflow = make_workflow(
        [
            node("start", "trigger", {}),
            node("cond", "condition", condition),
            action("actionA", name="a"),
            action("actionB", name="b"),
            node("end", "end", {}),
        ],
        [
            edge("start", "cond"),
            edge("cond", "actionA", "true"),
            edge("cond", "actionB", "false"),
            edge("actionA", "end"),
            edge("actionB", "end"),
        ],
    )

    execution = await engine.execute(workflow, TriggerEvent(trigger_data={"priority": "high"}))

    assert execution.status == "completed"
    statuses = _statuses(execution)
    assert statuses["actionA"] == "completed"
    assert statuses["actionB"] == "skipped"
    assert statuses["end"] == "completed"
    assert execution.node_execution("cond").output == {"result": True}
    assert len(a.calls) == 1
    assert b.calls == []


async def test_condition_without_matching_or_default_edge_ends_branch() -> None:
    registry, _ = registry_with(ok=RecordingAction())
    engine, _ = _engine(registry)
    condition = {"conditions": [{"field": "trigger.priority", "operator": "equals", "value": "high"}]}
    workflow = make_workflow(
        [node("start", "trigger", {}), node("cond", "condition", condition), action("a1"), node("end", "end", {})],
        [edge("start", "cond"), edge("cond", "a1", "true"), edge("a1", "end")],
    )

    execution = await engine.execute(workflow, TriggerEvent(trigger_data={"priority": "low"}))

    assert execution.status == "completed"
    assert _statuses(execution) == {"start": "completed", "cond": "completed", "a1": "skipped", "end": "skipped"}


async def test_traversal_order_is_deterministic() -> None:
    registry, _ = registry_with(ok=RecordingAction())
    engine, _ = _engine(registry)
    workflow = make_workflow(
        [node("start", "trigger", {}), action("left"), action("right"), node("end", "end", {})],
        [edge("start", "right"), edge("start", "left"), edge("left", "end"), edge("right", "end")],
    )

    first = await engine.execute(workflow, TriggerEvent(trigger_data={"n": 1}))
    second = await engine.execute(workflow, TriggerEvent(trigger_data={"n": 1}))

    order = [r.node_id for r in first.node_executions]
    assert order == ["start", "left", "right", "end"]
    assert [r.node_id for r in second.node_executions] == order


async def test_rendered_params_and_output_variable() -> None:
    engine, _ = _engine(build_default_registry())
    workflow = linear_workflow(
        action(
            "set",
            module="workflow",
            name="set_variable",
            params={"value": "{{ trigger.amount }}"},
            output_variable="total",
        )
    )

    execution = await engine.execute(workflow, TriggerEvent(trigger_data={"amount": 5}))

    assert execution.status == "completed"
    assert execution.context["variables"] == {"total": 5}
    assert execution.output == {"total": 5}
    assert execution.node_execution("set").input["params"] == {"value": 5}


async def test_template_syntax_error_fails_node() -> None:
    engine, _ = _engine(build_default_registry())
    workflow = linear_workflow(
        action("set", module="workflow", name="set_variable", params={"value": "{{ broken"}),
    )

    execution = await engine.execute(workflow, TriggerEvent())

    assert execution.status == "failed"
    assert execution.error.message.startswith("Template error")


# ---- on_error policies ----


async def test_continue_policy_follows_error_edge() -> None:
    cleanup = RecordingAction()
    registry, _ = registry_with(ok=RecordingAction(FAIL), cleanup=cleanup)
    engine, _ = _engine(registry)
    workflow = make_workflow(
        [node("start", "trigger", {}), action("a1"), action("fix", name="cleanup"), node("end", "end", {})],
        [edge("start", "a1"), edge("a1", "end"), edge("a1", "fix", "error")],
        max_retries=0,
        on_error="continue",
    )

    execution = await engine.execute(workflow, TriggerEvent())

    assert execution.status == "completed"
    statuses = _statuses(execution)
    assert statuses["a1"] == "failed"
    assert statuses["fix"] == "completed"
    assert statuses["end"] == "skipped"
    assert len(cleanup.calls) == 1


async def test_continue_policy_uses_default_edges_without_error_edge() -> None:
    registry, _ = registry_with(ok=RecordingAction(FAIL))
    engine, _ = _engine(registry)

    execution = await engine.execute(
        linear_workflow(action("a1"), max_retries=0, on_error="continue"), TriggerEvent()
    )

    assert execution.status == "completed"
    assert _statuses(execution) == {"start": "completed", "a1": "failed", "end": "completed"}


async def test_notify_policy_sends_failure_notice() -> None:
    registry, channel = registry_with(ok=RecordingAction(FAIL))
    engine, _ = _engine(registry)
    workflow = linear_workflow(action("a1"), max_retries=0, on_error="notify", notify_emails=["ops@example.com"])

    execution = await engine.execute(workflow, TriggerEvent())

    assert execution.status == "failed"
    assert len(channel.sent) == 1
    assert channel.sent[0]["recipients"] == ["ops@example.com"]
    assert "a1" in channel.sent[0]["body"]


async def test_stop_policy_does_not_notify() -> None:
    registry, channel = registry_with(ok=RecordingAction(FAIL))
    engine, _ = _engine(registry)

    await engine.execute(
        linear_workflow(action("a1"), max_retries=0, notify_emails=["ops@example.com"]), TriggerEvent()
    )

    assert channel.sent == []


async def test_non_critical_notification_failure_does_not_fail_run() -> None:
    registry, _ = registry_with()
    registry.register_channel("sms", RecordingChannel(ok=False))
    engine, _ = _engine(registry)
    notify = node("n1", "notification", {"channel": "sms", "recipients": ["+100"], "body": "hi"})

    execution = await engine.execute(linear_workflow(notify, max_retries=0), TriggerEvent())

    assert execution.status == "completed"
    assert _statuses(execution)["n1"] == "failed"


async def test_critical_notification_failure_fails_run() -> None:
    registry, _ = registry_with()
    registry.register_channel("sms", RecordingChannel(ok=False))
    engine, _ = _engine(registry)
    notify = node("n1", "notification", {"channel": "sms", "recipients": ["+100"], "critical": True})

    execution = await engine.execute(linear_workflow(notify, max_retries=0), TriggerEvent())

    assert execution.status == "failed"


# ---- Approvals ----


def test_approval_outcome_rules() -> None:
    three = ["a", "b", "c"]
    majority = ApprovalConfig(approvers=three, approval_type="majority")
    assert approval_outcome(majority, {"a": "approved"}) is None
    assert approval_outcome(majority, {"a": "approved", "b": "approved"}) == "approved"
    assert approval_outcome(majority, {"a": "rejected", "b": "rejected"}) == "rejected"

    every = ApprovalConfig(approvers=three, approval_type="all")
    assert approval_outcome(every, {"a": "approved", "b": "approved"}) is None
    assert approval_outcome(every, {"a": "rejected"}) == "rejected"

    anyone = ApprovalConfig(approvers=["a", "b"], approval_type="any")
    assert approval_outcome(anyone, {"a": "rejected"}) is None
    assert approval_outcome(anyone, {"a": "rejected", "b": "approved"}) == "approved"
    assert approval_outcome(anyone, {"a": "rejected", "b": "rejected"}) == "rejected"


async def test_approval_suspends_until_all_approve() -> None:
    granted = RecordingAction()
    registry, _ = registry_with(ok=granted)
    engine, repo = _engine(registry)
    workflow = _approval_workflow({"approvers": ["u1", "u2"], "approval_type": "all"})

    execution = await engine.execute(workflow, TriggerEvent())

    assert execution.status == "running"
    assert execution.waiting.kind == "approval"
    assert execution.node_execution("ap").status == "pending"
    stored = repo.rows[execution.id]
    assert stored.is_suspended

    execution = await engine.submit_decision(execution.id, TENANT, "ap", "u1", "approved", "lgtm")
    assert execution.status == "running"
    assert execution.waiting.approvals == {"u1": "approved"}

    execution = await engine.submit_decision(execution.id, TENANT, "ap", "u2", "approved")
    assert execution.status == "completed"
    record = execution.node_execution("ap")
    assert record.status == "completed"
    assert record.output["decision"] == "approved"
    assert [d["approver"] for d in record.output["decisions"]] == ["u1", "u2"]
    assert len(granted.calls) == 1


async def test_rejection_without_rejected_edge_fails_run() -> None:
    registry, _ = registry_with(ok=RecordingAction())
    engine, _ = _engine(registry)
    execution = await engine.execute(_approval_workflow({"approvers": ["u1"]}), TriggerEvent())

    execution = await engine.submit_decision(execution.id, TENANT, "ap", "u1", "rejected")

    assert execution.status == "failed"
    assert execution.error.message == "Approval rejected"
    assert execution.node_execution("ap").status == "failed"


async def test_rejection_follows_rejected_edge() -> None:
    registry, _ = registry_with(ok=RecordingAction())
    engine, _ = _engine(registry)
    workflow = _approval_workflow({"approvers": ["u1"]}, with_rejected_edge=True)
    execution = await engine.execute(workflow, TriggerEvent())

    execution = await engine.submit_decision(execution.id, TENANT, "ap", "u1", "rejected")

    assert execution.status == "completed"
    statuses = _statuses(execution)
    assert statuses["denied"] == "completed"
    assert statuses["granted"] == "skipped"


async def test_decision_from_non_approver_is_rejected() -> None:
    registry, _ = registry_with(ok=RecordingAction())
    engine, _ = _engine(registry)
    execution = await engine.execute(_approval_workflow({"approvers": ["u1"]}), TriggerEvent())

    with pytest.raises(ValidationException):
        await engine.submit_decision(execution.id, TENANT, "ap", "intruder", "approved")
    with pytest.raises(ExecutionStateException):
        await engine.submit_decision(execution.id, TENANT, "other-node", "u1", "approved")


async def test_concurrent_decisions_never_drop_an_approval() -> None:
    class InterleavingRepository(InMemoryExecutionRepository):
        async def get_by_id(self, execution_id, tenant_id):
            loaded = await super().get_by_id(execution_id, tenant_id)
            await asyncio.sleep(0)
            return loaded

    registry, _ = registry_with(ok=RecordingAction())
    engine, repo = _engine(registry, InterleavingRepository())
    workflow = _approval_workflow({"approvers": ["u1", "u2"], "approval_type": "all"})
    execution = await engine.execute(workflow, TriggerEvent())

    results = await asyncio.gather(
        engine.submit_decision(execution.id, TENANT, "ap", "u1", "approved"),
        engine.submit_decision(execution.id, TENANT, "ap", "u2", "approved"),
        return_exceptions=True,
    )

    conflicts = [r for r in results if isinstance(r, ExecutionConflictException)]
    assert len(conflicts) == 1
    assert len(repo.rows[execution.id].waiting.approvals) == 1

    loser = "u2" if isinstance(results[1], ExecutionConflictException) else "u1"
    execution = await engine.submit_decision(execution.id, TENANT, "ap", loser, "approved")

    assert execution.status == "completed"
    assert execution.node_execution("ap").output["approvals"] == {"u1": "approved", "u2": "approved"}


async def test_templated_approval_timeout_is_rendered_per_run() -> None:
    registry, _ = registry_with(ok=RecordingAction())
    engine, _ = _engine(registry)
    workflow = _approval_workflow({"approvers": ["u1"], "timeout_ms": "{{ trigger.sla_ms }}"})

    execution = await engine.execute(workflow, TriggerEvent(trigger_data={"sla_ms": 60_000}))

    assert execution.waiting.resume_at > utc_now() + timedelta(seconds=30)

    broken = await engine.execute(workflow, TriggerEvent(trigger_data={"sla_ms": "soon"}))

    assert broken.status == "failed"
    assert broken.error.node_id == "ap"
    assert "Invalid approval timeout_ms" in broken.error.message


async def test_approval_timeout_applies_on_timeout_policy() -> None:
    registry, _ = registry_with(ok=RecordingAction())
    engine, repo = _engine(registry)
    workflow = _approval_workflow({"approvers": ["u1"], "timeout_ms": 60_000, "on_timeout": "approve"})
    execution = await engine.execute(workflow, TriggerEvent())

    assert (await engine.resume(execution.id, TENANT)).status == "running"

    repo.rows[execution.id].waiting.resume_at = utc_now() - timedelta(seconds=1)
    execution = await engine.resume(execution.id, TENANT)

    assert execution.status == "completed"
    assert execution.node_execution("ap").output["timed_out"] is True


# ---- Delays ----


async def test_delay_suspends_and_resumes_when_due() -> None:
    registry, _ = registry_with(ok=RecordingAction())
    engine, repo = _engine(registry)
    delay = node("wait", "delay", {"delay_type": "duration", "duration": 60_000})
    execution = await engine.execute(linear_workflow(delay, action("a1")), TriggerEvent())

    assert execution.status == "running"
    assert execution.waiting.kind == "delay"
    assert execution.waiting.resume_at > utc_now()
    assert execution.node_execution("a1") is None

    assert (await engine.resume(execution.id, TENANT)).waiting is not None

    repo.rows[execution.id].waiting.resume_at = utc_now() - timedelta(milliseconds=1)
    execution = await engine.resume(execution.id, TENANT)

    assert execution.status == "completed"
    assert execution.node_execution("wait").status == "completed"
    assert "resumed_at" in execution.node_execution("wait").output


async def test_delay_until_past_instant_does_not_suspend() -> None:
    registry, _ = registry_with()
    engine, _ = _engine(registry)
    delay = node("wait", "delay", {"delay_type": "until", "duration": "2000-01-01T00:00:00Z"})

    execution = await engine.execute(linear_workflow(delay), TriggerEvent())

    assert execution.status == "completed"


# ---- Cancellation ----


async def test_cancel_suspended_run_skips_waiting_node() -> None:
    registry, _ = registry_with()
    engine, repo = _engine(registry)
    delay = node("wait", "delay", {"delay_type": "duration", "duration": 60_000})
    execution = await engine.execute(linear_workflow(delay), TriggerEvent())

    execution = await engine.cancel(execution.id, TENANT)

    assert execution.status == "cancelled"
    assert execution.node_execution("wait").status == "skipped"
    assert execution.waiting is None
    assert repo.rows[execution.id].cancel_requested is True

    with pytest.raises(ExecutionStateException):
        await engine.cancel(execution.id, TENANT)


async def test_cancel_is_observed_at_next_node_boundary() -> None:
    repo = InMemoryExecutionRepository()

    async def cancel_mid_flight(params, context):
        execution_id = next(iter(repo.rows))
        await repo.request_cancel(execution_id, TENANT)
        return CapabilityResult(ok=True)

    after = RecordingAction()
    registry, _ = registry_with(ok=cancel_mid_flight, after=after)
    engine, _ = _engine(registry, repo)

    execution = await engine.execute(
        linear_workflow(action("a1"), action("a2", name="after")), TriggerEvent()
    )

    assert execution.status == "cancelled"
    assert execution.node_execution("a1").status == "skipped"
    assert execution.node_execution("a2") is None
    assert after.calls == []


# ---- Timeouts ----


async def test_global_timeout_fails_slow_handler() -> None:
    async def slow(params, context):
        await asyncio.sleep(5)
        return CapabilityResult(ok=True)

    registry, _ = registry_with(ok=slow)
    engine, _ = _engine(registry)

    execution = await engine.execute(linear_workflow(action("a1"), timeout_ms=50), TriggerEvent())

    assert execution.status == "failed"
    assert "timed out" in execution.error.message
    assert execution.node_execution("a1").status == "failed"


async def test_handler_timeout_is_a_node_failure() -> None:
    async def slow(params, context):
        await asyncio.sleep(5)
        return CapabilityResult(ok=True)

    registry, _ = registry_with(ok=slow)
    engine, _ = _engine(registry, handler_timeout_seconds=0.01)

    execution = await engine.execute(
        linear_workflow(action("a1"), timeout_ms=0, max_retries=0), TriggerEvent()
    )

    assert execution.status == "failed"
    assert execution.error.message == "Handler timed out"


async def test_suspended_run_past_deadline_times_out_on_resume() -> None:
    registry, _ = registry_with()
    engine, repo = _engine(registry)
    delay = node("wait", "delay", {"delay_type": "duration", "duration": 60_000})
    execution = await engine.execute(linear_workflow(delay, timeout_ms=1_000), TriggerEvent())

    repo.rows[execution.id].started_at = utc_now() - timedelta(seconds=5)
    execution = await engine.resume(execution.id, TENANT)

    assert execution.status == "failed"
    assert execution.error.node_id == "wait"
    assert execution.node_execution("wait").status == "failed"


# ---- Async runs, snapshots, metrics, persistence ----


async def test_async_run_is_queued_then_resumed_from_snapshot() -> None:
    registry, _ = registry_with(ok=RecordingAction())
    dispatcher = RecordingDispatcher()
    engine, _ = _engine(registry, dispatcher=dispatcher)
    workflow = linear_workflow(action("a1"), run_async=True)

    execution = await engine.execute(workflow, TriggerEvent())

    assert execution.status == "pending"
    assert dispatcher.notified == [(execution.id, TENANT)]

    workflow.nodes = []
    execution = await engine.resume(execution.id, TENANT)

    assert execution.status == "completed"
    assert [r.node_id for r in execution.node_executions] == ["start", "a1", "end"]
    assert execution.workflow_version == 1


async def test_finished_runs_are_recorded_in_metrics() -> None:
    registry, _ = registry_with(ok=RecordingAction(FAIL))
    metrics = AsyncMock()
    engine, _ = _engine(registry, metrics=metrics)

    execution = await engine.execute(linear_workflow(action("a1"), max_retries=0), TriggerEvent())

    metrics.record_execution.assert_awaited_once()
    args = metrics.record_execution.await_args.args
    assert args[:2] == (TENANT, execution.workflow_id)
    assert args[3] is False
    assert args[4] == "handler said no"


async def test_metrics_failure_does_not_affect_run() -> None:
    registry, _ = registry_with(ok=RecordingAction())
    metrics = AsyncMock()
    metrics.record_execution.side_effect = RuntimeError("metrics store down")
    engine, _ = _engine(registry, metrics=metrics)

    execution = await engine.execute(linear_workflow(action("a1")), TriggerEvent())

    assert execution.status == "completed"


async def test_event_log_traces_a_run_step_by_step() -> None:
    registry, _ = registry_with(ok=RecordingAction(FAIL, CapabilityResult(ok=True)))
    event_log = InMemoryExecutionLogRepository()
    engine, _ = _engine(registry, event_log=event_log)
    workflow = _approval_workflow({"approvers": ["u1"]}, max_retries=1)

    execution = await engine.execute(workflow, TriggerEvent())
    await engine.submit_decision(execution.id, TENANT, "ap", "u1", "approved", comment="ok")

    assert event_log.messages(execution.id) == [
        "Execution started",
        "Node start completed",
        "Waiting on approval node ap",
        "u1 approved node ap",
        "Node ap completed",
        "Retrying node granted (1/1): handler said no",
        "Node granted completed",
        "Node end completed",
        "Execution completed",
    ]
    levels = {e.message: e.level for e in event_log.entries}
    assert levels["Retrying node granted (1/1): handler said no"] == "warning"
    assert all(e.tenant_id == TENANT for e in event_log.entries)


async def test_event_log_records_failure_at_error_level() -> None:
    registry, _ = registry_with(ok=RecordingAction(FAIL))
    event_log = InMemoryExecutionLogRepository()
    engine, _ = _engine(registry, event_log=event_log)

    execution = await engine.execute(linear_workflow(action("a1"), max_retries=0), TriggerEvent())

    errors = [e for e in event_log.entries if e.level == "error"]
    assert [e.message for e in errors] == [
        "Node a1 failed: handler said no",
        "Execution failed: handler said no",
    ]
    assert errors[-1].node_id == "a1"
    assert errors[-1].execution_id == execution.id


async def test_persistence_failure_marks_run_failed() -> None:
    class FlakyRepository(InMemoryExecutionRepository):
        failures = 1

        async def save(self, execution):
            if self.failures:
                self.failures -= 1
                raise RepositoryException("disk full", "save")
            return await super().save(execution)

    registry, _ = registry_with(ok=RecordingAction())
    engine, repo = _engine(registry, FlakyRepository())

    with pytest.raises(RepositoryException):
        await engine.execute(linear_workflow(action("a1")), TriggerEvent())

    (stored,) = repo.rows.values()
    assert stored.status == "failed"
    assert stored.error.message.startswith("System error")


async def test_fail_stale_closes_in_flight_node() -> None:
    registry, _ = registry_with(ok=RecordingAction())
    engine, repo = _engine(registry)
    execution = await engine.execute(linear_workflow(action("a1"), run_async=True), TriggerEvent())

    stale = repo.rows[execution.id]
    stale.status = "running"
    stale.started_at = utc_now()
    execution = await engine.fail_stale(stale, "abandoned")

    assert execution.status == "failed"
    assert execution.error.message == "abandoned"


async def test_workflow_without_single_trigger_cannot_start() -> None:
    registry, _ = registry_with()
    engine, _ = _engine(registry)
    with pytest.raises(ValidationException):
        await engine.execute(make_workflow([node("end", "end", {})], []), TriggerEvent())
