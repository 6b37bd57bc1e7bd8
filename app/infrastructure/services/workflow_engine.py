"""Workflow engine: runs a workflow graph against one trigger event (implements IWorkflowEngine).

Traversal is deterministic: nodes run in topological order of the run's
definition snapshot, and a node runs only when it is the trigger or an
already-executed node took an edge into it. Delay and approval nodes park
the run (state persisted, no in-process sleep); resume() or
submit_decision() continue it later from any worker.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from jinja2 import TemplateError

from app.application.dtos.execution import CapabilityResult, TriggerEvent
from app.application.interfaces.repositories import (
    IExecutionLogRepository,
    IWorkflowExecutionRepository,
)
from app.application.interfaces.services import (
    ICapabilityRegistry,
    IMetricsRecorder,
    IRunDispatcher,
    ITemplateRenderer,
)
from app.application.services.condition_evaluator import evaluate_conditions
from app.domain.entities.execution import (
    DefinitionSnapshot,
    ExecutionError,
    ExecutionLogEntry,
    NodeExecution,
    WaitState,
    WorkflowExecution,
    new_context,
)
from app.domain.entities.workflow import (
    ActionConfig,
    ApprovalConfig,
    ConditionConfig,
    DelayConfig,
    NotificationConfig,
    Workflow,
    WorkflowEdge,
    WorkflowGraph,
    WorkflowNode,
    parse_node_config,
)
from app.domain.enums import (
    ApprovalDecision,
    ApprovalType,
    DelayType,
    EdgeBranch,
    ExecutionStatus,
    LogLevel,
    NodeExecutionStatus,
    NodeType,
    OnErrorPolicy,
    WaitKind,
)
from app.domain.exceptions import (
    ExecutionStateException,
    NodeExecutionError,
    RepositoryException,
    ResourceNotFoundException,
    RunTimeoutError,
    ValidationException,
)
from app.infrastructure.services.workflow_template_renderer import WorkflowTemplateRenderer
from app.shared.telemetry.logging import get_logger
from app.shared.telemetry.tracing import add_span_attributes, add_span_event, traced
from app.shared.utils.datetime import add_ms, elapsed_ms, parse_instant, utc_now
from app.shared.utils.generators import generate_cuid, generate_wait_token

logger = get_logger(__name__)

FAILURE_NOTICE_CHANNEL = "email"

_FINAL_LEVELS = {
    ExecutionStatus.COMPLETED: LogLevel.INFO,
    ExecutionStatus.FAILED: LogLevel.ERROR,
    ExecutionStatus.CANCELLED: LogLevel.WARNING,
}


@dataclass
class _NodeResult:
    output: Any = None
    branch: str | None = None
    wait: WaitState | None = None


def approval_outcome(config: ApprovalConfig, approvals: dict[str, str]) -> str | None:
    """Decide an approval node from the decisions so far; None while undecided.

    any: one approval suffices, rejected once every approver rejected.
    all: every approver must approve, one rejection rejects.
    majority: more than half approve; rejected once a majority is impossible.
    """
    approvers = config.approvers
    total = len(approvers)
    approved = sum(1 for a in approvers if approvals.get(a) == ApprovalDecision.APPROVED.value)
    rejected = sum(1 for a in approvers if approvals.get(a) == ApprovalDecision.REJECTED.value)
    match config.approval_type:
        case ApprovalType.ALL.value:
            if rejected:
                return ApprovalDecision.REJECTED.value
            if approved == total:
                return ApprovalDecision.APPROVED.value
        case ApprovalType.MAJORITY.value:
            if approved * 2 > total:
                return ApprovalDecision.APPROVED.value
            if (total - rejected) * 2 <= total:
                return ApprovalDecision.REJECTED.value
        case _:
            if approved:
                return ApprovalDecision.APPROVED.value
            if rejected == total:
                return ApprovalDecision.REJECTED.value
    return None


def taken_edges(graph: WorkflowGraph, node: WorkflowNode, branch: str | None, failed: bool = False) -> list[WorkflowEdge]:
    """Outgoing edges a finished node activates.

    failed (on_error=continue): error edges, else default edges.
    condition: edges labelled with the outcome, else default edges, else none.
    approval: edges labelled with the decision, else default edges.
    end: none. Others: every outgoing edge except error edges.
    """
    outgoing = graph.outgoing(node.id)
    defaults = [e for e in outgoing if e.branch is None]
    if node.type == NodeType.END.value:
        return []
    if failed:
        return [e for e in outgoing if e.branch == EdgeBranch.ERROR.value] or defaults
    if node.type in (NodeType.CONDITION.value, NodeType.APPROVAL.value):
        return [e for e in outgoing if e.branch == branch] or defaults
    return [e for e in outgoing if e.branch != EdgeBranch.ERROR.value]


class WorkflowEngine:
    """Executes runs and persists every state change through the execution repository."""

    def __init__(
        self,
        execution_repo: IWorkflowExecutionRepository,
        capabilities: ICapabilityRegistry,
        *,
        metrics: IMetricsRecorder | None = None,
        renderer: ITemplateRenderer | None = None,
        dispatcher: IRunDispatcher | None = None,
        event_log: IExecutionLogRepository | None = None,
        handler_timeout_seconds: float | None = None,
        max_retries_cap: int | None = None,
    ) -> None:
        self.execution_repo = execution_repo
        self.capabilities = capabilities
        self.metrics = metrics
        self.renderer = renderer or WorkflowTemplateRenderer()
        self.dispatcher = dispatcher
        self.event_log = event_log
        self.handler_timeout_seconds = handler_timeout_seconds
        self.max_retries_cap = max_retries_cap

    # ---- Entry points ----

    @traced("workflow_engine.execute")
    async def execute(self, workflow: Workflow, trigger_event: TriggerEvent) -> WorkflowExecution:
        """Create a run from the workflow's current definition and start it.

        With settings.run_async the run is persisted pending and handed to the
        dispatcher; otherwise it is traversed before returning.
        """
        triggers = workflow.graph().trigger_nodes()
        if len(triggers) != 1:
            raise ValidationException("Workflow must have exactly one trigger node", field="nodes")
        now = utc_now()
        execution = WorkflowExecution(
            id=generate_cuid(),
            tenant_id=workflow.tenant_id,
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            workflow_version=workflow.version,
            definition=workflow.snapshot(),
            status=ExecutionStatus.PENDING.value,
            triggered_by=trigger_event.triggered_by,
            triggered_by_user=trigger_event.triggered_by_user,
            trigger_data=dict(trigger_event.trigger_data),
            context=new_context(trigger_event.trigger_data),
            retry_of=trigger_event.retry_of,
            created_at=now,
            updated_at=now,
        )
        execution = await self.execution_repo.create(execution)
        add_span_attributes(execution_id=execution.id, workflow_id=workflow.id)
        logger.info(
            "Created execution %s for workflow %s v%d (triggered_by=%s)",
            execution.id,
            workflow.id,
            workflow.version,
            execution.triggered_by,
        )
        if workflow.settings.run_async:
            if self.dispatcher is not None:
                self.dispatcher.notify_pending(execution.id, execution.tenant_id)
            return execution
        return await self._guarded(execution, self._start)

    @traced("workflow_engine.resume")
    async def resume(self, execution_id: str, tenant_id: str) -> WorkflowExecution:
        """Start a pending run or continue a suspended one whose wait is over."""
        execution = await self._load(execution_id, tenant_id)
        if execution.is_terminal:
            return execution
        if execution.cancel_requested:
            return await self._finalize_cancelled(execution)
        if execution.status == ExecutionStatus.PENDING.value:
            return await self._guarded(execution, self._start)
        if execution.waiting is None:
            return execution
        if self._deadline_passed(execution):
            return await self.enforce_timeout(execution)

        wait = execution.waiting
        now = utc_now()
        if wait.resume_at is None or wait.resume_at > now:
            return execution
        if wait.kind == WaitKind.DELAY.value:
            return await self._guarded(
                execution,
                lambda ex: self._resolve_waiting_node(ex, {"resumed_at": now.isoformat()}, None),
            )
        # Approval wait whose timeout elapsed.
        record = execution.node_execution(wait.node_id)
        config = parse_node_config(NodeType.APPROVAL.value, record.input if record else None)
        decision = (
            ApprovalDecision.APPROVED.value
            if config and config.on_timeout == "approve"
            else ApprovalDecision.REJECTED.value
        )
        logger.info("Approval node %s of execution %s timed out; applying %s", wait.node_id, execution.id, decision)
        return await self._guarded(
            execution,
            lambda ex: self._resolve_approval(ex, decision, timed_out=True),
        )

    @traced("workflow_engine.submit_decision")
    async def submit_decision(
        self,
        execution_id: str,
        tenant_id: str,
        node_id: str,
        approver: str,
        decision: str,
        comment: str | None = None,
    ) -> WorkflowExecution:
        """Record one approver's decision; resume traversal once the node resolves."""
        execution = await self._load(execution_id, tenant_id)
        wait = execution.waiting
        if (
            execution.is_terminal
            or wait is None
            or wait.kind != WaitKind.APPROVAL.value
            or wait.node_id != node_id
        ):
            raise ExecutionStateException(execution.id, execution.status, "decide on")
        if decision not in ApprovalDecision.values():
            raise ValidationException(f"Invalid decision '{decision}'", field="decision")
        record = execution.node_execution(node_id)
        config = parse_node_config(NodeType.APPROVAL.value, record.input if record else None)
        if not isinstance(config, ApprovalConfig) or approver not in config.approvers:
            raise ValidationException(f"'{approver}' is not an approver for node {node_id}", field="approver")

        wait.approvals[approver] = decision
        history = list((record.output or {}).get("decisions", []))
        history.append({"approver": approver, "decision": decision, "comment": comment, "at": utc_now().isoformat()})
        record.output = {"decisions": history}
        logger.info("Execution %s: %s %s node %s", execution.id, approver, decision, node_id)
        await self._record(
            execution, LogLevel.INFO, f"{approver} {decision} node {node_id}", node_id, {"comment": comment}
        )

        outcome = approval_outcome(config, wait.approvals)
        if outcome is None:
            await self._save(execution)
            return execution
        return await self._guarded(execution, lambda ex: self._resolve_approval(ex, outcome))

    @traced("workflow_engine.cancel")
    async def cancel(self, execution_id: str, tenant_id: str) -> WorkflowExecution:
        """Request cancellation.

        Pending and suspended runs are finalized now. An active traversal sees
        the flag at its next node boundary; a handler call already in flight
        is not interrupted.
        """
        execution = await self._load(execution_id, tenant_id)
        if execution.is_terminal:
            raise ExecutionStateException(execution.id, execution.status, "cancel")
        await self.execution_repo.request_cancel(execution.id, execution.tenant_id)
        execution.cancel_requested = True
        logger.info("Cancellation requested for execution %s", execution.id)
        if execution.status == ExecutionStatus.PENDING.value or execution.waiting is not None:
            return await self._finalize_cancelled(execution)
        return execution

    async def enforce_timeout(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Fail a non-terminal run whose global timeout has elapsed."""
        if execution.is_terminal or not self._deadline_passed(execution):
            return execution
        timeout_ms = execution.snapshot().settings.timeout_ms
        in_flight = self._in_flight_record(execution)
        error = RunTimeoutError(execution.id, timeout_ms, in_flight.node_id if in_flight else None)
        if in_flight is not None:
            self._close_record(in_flight, NodeExecutionStatus.FAILED, error=error.message)
        return await self._fail(execution, error.message, error.node_id)

    async def fail_stale(self, execution: WorkflowExecution, message: str) -> WorkflowExecution:
        """Fail a run nobody is driving any more (e.g. the worker died mid-node)."""
        if execution.is_terminal:
            return execution
        in_flight = self._in_flight_record(execution)
        if in_flight is not None:
            self._close_record(in_flight, NodeExecutionStatus.FAILED, error=message)
        return await self._fail(execution, message, in_flight.node_id if in_flight else None)

    # ---- Traversal ----

    async def _guarded(
        self,
        execution: WorkflowExecution,
        step: Callable[[WorkflowExecution], Awaitable[WorkflowExecution]],
    ) -> WorkflowExecution:
        """Run a traversal step; a persistence failure marks the run failed."""
        try:
            return await step(execution)
        except RepositoryException as exc:
            logger.exception("Persistence failure in execution %s", execution.id)
            execution.status = ExecutionStatus.FAILED.value
            execution.error = ExecutionError(message=f"System error: {exc.message}")
            execution.completed_at = utc_now()
            execution.waiting = None
            try:
                await self.execution_repo.save(execution)
            except RepositoryException:
                logger.error("Could not record failure of execution %s", execution.id)
            raise

    async def _start(self, execution: WorkflowExecution) -> WorkflowExecution:
        snapshot = execution.snapshot()
        trigger = snapshot.graph().trigger_nodes()[0]
        now = utc_now()
        execution.status = ExecutionStatus.RUNNING.value
        execution.started_at = now
        execution.activated_node_ids = [trigger.id]
        await self._save(execution)
        logger.info("Execution %s started (workflow %s)", execution.id, execution.workflow_id)
        await self._record(
            execution, LogLevel.INFO, "Execution started", data={"workflow_version": execution.workflow_version}
        )
        return await self._advance(execution)

    async def _advance(self, execution: WorkflowExecution) -> WorkflowExecution:
        snapshot = execution.snapshot()
        graph = snapshot.graph()
        order = graph.topological_order()
        while True:
            node_id = self._next_node(execution, order)
            if node_id is None:
                return await self._complete(execution, graph)
            if await self._cancel_requested(execution):
                return await self._finalize_cancelled(execution)
            if self._deadline_passed(execution):
                return await self.enforce_timeout(execution)
            node = graph.node_by_id(node_id)
            if not await self._run_node(execution, snapshot, graph, node):
                return execution

    def _next_node(self, execution: WorkflowExecution, order: list[str]) -> str | None:
        handled = {r.node_id for r in execution.node_executions}
        activated = set(execution.activated_node_ids)
        for node_id in order:
            if node_id in activated and node_id not in handled:
                return node_id
        return None

    async def _run_node(
        self,
        execution: WorkflowExecution,
        snapshot: DefinitionSnapshot,
        graph: WorkflowGraph,
        node: WorkflowNode,
    ) -> bool:
        """Run one node with retries. Returns False when traversal must stop."""
        record = NodeExecution(
            node_id=node.id,
            node_type=node.type,
            status=NodeExecutionStatus.RUNNING.value,
            started_at=utc_now(),
        )
        execution.node_executions.append(record)
        max_retries = snapshot.settings.max_retries
        if self.max_retries_cap is not None:
            max_retries = min(max_retries, self.max_retries_cap)

        result: _NodeResult | None = None
        failure: NodeExecutionError | None = None
        while True:
            try:
                result = await self._execute_node(execution, snapshot, node, record)
                break
            except RunTimeoutError as exc:
                self._close_record(record, NodeExecutionStatus.FAILED, error=exc.message)
                await self._fail(execution, exc.message, node.id)
                return False
            except NodeExecutionError as exc:
                if exc.retryable and record.retry_count < max_retries:
                    record.retry_count += 1
                    logger.info(
                        "Retrying node %s of execution %s (%d/%d): %s",
                        node.id,
                        execution.id,
                        record.retry_count,
                        max_retries,
                        exc.message,
                    )
                    await self._record(
                        execution,
                        LogLevel.WARNING,
                        f"Retrying node {node.id} ({record.retry_count}/{max_retries}): {exc.message}",
                        node.id,
                    )
                    continue
                failure = exc
                break

        if await self._cancel_requested(execution):
            await self._finalize_cancelled(execution)
            return False

        if failure is None and result.wait is not None:
            record.status = NodeExecutionStatus.PENDING.value
            execution.waiting = result.wait
            await self._save(execution)
            logger.info(
                "Execution %s suspended on %s node %s",
                execution.id,
                result.wait.kind,
                node.id,
            )
            await self._record(
                execution,
                LogLevel.INFO,
                f"Waiting on {result.wait.kind} node {node.id}",
                node.id,
                {"resume_at": result.wait.resume_at.isoformat() if result.wait.resume_at else None},
            )
            return False
        return await self._after_node(execution, snapshot, graph, node, record, result, failure)

    async def _after_node(
        self,
        execution: WorkflowExecution,
        snapshot: DefinitionSnapshot,
        graph: WorkflowGraph,
        node: WorkflowNode,
        record: NodeExecution,
        result: _NodeResult | None,
        failure: NodeExecutionError | None,
    ) -> bool:
        """Close the node record, apply on_error policy and activate taken edges."""
        if failure is None:
            self._close_record(record, NodeExecutionStatus.COMPLETED, output=result.output)
            execution.context.setdefault("nodes", {})[node.id] = result.output
            edges = taken_edges(graph, node, result.branch)
            if node.type == NodeType.CONDITION.value and not edges and graph.outgoing(node.id):
                logger.info(
                    "Condition node %s of execution %s evaluated %s with no matching edge; branch ends",
                    node.id,
                    execution.id,
                    result.branch,
                )
            add_span_event("node.completed", {"node_id": node.id, "node_type": node.type})
            await self._record(
                execution,
                LogLevel.INFO,
                f"Node {node.id} completed",
                node.id,
                {"node_type": node.type, "branch": result.branch, "duration_ms": record.duration_ms},
            )
        else:
            self._close_record(record, NodeExecutionStatus.FAILED, error=failure.message)
            logger.warning("Node %s of execution %s failed: %s", node.id, execution.id, failure.message)
            add_span_event("node.failed", {"node_id": node.id, "node_type": node.type})
            await self._record(
                execution,
                LogLevel.ERROR,
                f"Node {node.id} failed: {failure.message}",
                node.id,
                {"node_type": node.type, "retry_count": record.retry_count},
            )
            critical = bool((record.input or {}).get("critical", False))
            if node.type == NodeType.NOTIFICATION.value and not critical:
                edges = taken_edges(graph, node, None)
            elif snapshot.settings.on_error == OnErrorPolicy.CONTINUE.value:
                edges = taken_edges(graph, node, None, failed=True)
            else:
                await self._fail(execution, failure.message, node.id)
                return False

        self._activate(execution, edges)
        await self._save(execution)
        return True

    def _activate(self, execution: WorkflowExecution, edges: list[WorkflowEdge]) -> None:
        for edge in edges:
            if edge.target not in execution.activated_node_ids:
                execution.activated_node_ids.append(edge.target)

    async def _resolve_waiting_node(
        self,
        execution: WorkflowExecution,
        output: Any,
        branch: str | None,
        failure: NodeExecutionError | None = None,
    ) -> WorkflowExecution:
        snapshot = execution.snapshot()
        graph = snapshot.graph()
        wait = execution.waiting
        node = graph.node_by_id(wait.node_id)
        record = execution.node_execution(wait.node_id)
        execution.waiting = None
        if failure is None:
            result = _NodeResult(output=output, branch=branch)
        else:
            result = None
            record.output = output
        if not await self._after_node(execution, snapshot, graph, node, record, result, failure):
            return execution
        return await self._advance(execution)

    async def _resolve_approval(
        self,
        execution: WorkflowExecution,
        decision: str,
        timed_out: bool = False,
    ) -> WorkflowExecution:
        wait = execution.waiting
        record = execution.node_execution(wait.node_id)
        output = {
            **(record.output or {}),
            "decision": decision,
            "approvals": dict(wait.approvals),
            "timed_out": timed_out,
        }
        graph = execution.snapshot().graph()
        has_rejected_edge = any(
            e.branch == EdgeBranch.REJECTED.value for e in graph.outgoing(wait.node_id)
        )
        if decision == ApprovalDecision.REJECTED.value and not has_rejected_edge:
            failure = NodeExecutionError(wait.node_id, "Approval rejected", retryable=False)
            return await self._resolve_waiting_node(execution, output, None, failure)
        return await self._resolve_waiting_node(execution, output, decision)

    # ---- Node semantics ----

    def _render_config(self, execution: WorkflowExecution, node: WorkflowNode) -> dict[str, Any] | None:
        if node.config is None:
            return None
        try:
            return self.renderer.render_value(node.config, execution.context)
        except TemplateError as exc:
            raise NodeExecutionError(node.id, f"Template error: {exc}", retryable=False) from exc

    async def _execute_node(
        self,
        execution: WorkflowExecution,
        snapshot: DefinitionSnapshot,
        node: WorkflowNode,
        record: NodeExecution,
    ) -> _NodeResult:
        rendered = self._render_config(execution, node)
        record.input = rendered
        config = parse_node_config(node.type, rendered)
        match node.type:
            case NodeType.TRIGGER.value:
                return _NodeResult(output=dict(execution.trigger_data))
            case NodeType.END.value:
                return _NodeResult()
            case NodeType.CONDITION.value:
                if not isinstance(config, ConditionConfig):
                    config = ConditionConfig()
                outcome = evaluate_conditions(
                    config.conditions,
                    config.logic_operator,
                    execution.context,
                    execution.trigger_data,
                )
                branch = EdgeBranch.TRUE.value if outcome else EdgeBranch.FALSE.value
                return _NodeResult(output={"result": outcome}, branch=branch)
            case NodeType.ACTION.value:
                return await self._run_action(execution, node, config)
            case NodeType.NOTIFICATION.value:
                return await self._run_notification(execution, node, config)
            case NodeType.DELAY.value:
                return self._start_delay(node, config)
            case NodeType.APPROVAL.value:
                return self._start_approval(node, config)
        raise NodeExecutionError(node.id, f"Unknown node type '{node.type}'", retryable=False)

    async def _run_action(
        self, execution: WorkflowExecution, node: WorkflowNode, config: Any
    ) -> _NodeResult:
        if not isinstance(config, ActionConfig) or not config.module or not config.action:
            raise NodeExecutionError(node.id, "Action node is not configured", retryable=False)
        handler = self.capabilities.get_action(config.module, config.action)
        if handler is None:
            raise NodeExecutionError(
                node.id,
                f"No handler registered for {config.module}.{config.action}",
                retryable=False,
            )
        result = await self._call_capability(
            execution, node, lambda: handler(dict(config.params), execution.context)
        )
        if config.output_variable:
            execution.context.setdefault("variables", {})[config.output_variable] = result.output
        return _NodeResult(output=result.output)

    async def _run_notification(
        self, execution: WorkflowExecution, node: WorkflowNode, config: Any
    ) -> _NodeResult:
        if not isinstance(config, NotificationConfig) or not config.channel:
            raise NodeExecutionError(node.id, "Notification node is not configured", retryable=False)
        channel = self.capabilities.get_channel(config.channel)
        if channel is None:
            raise NodeExecutionError(node.id, f"Unknown notification channel '{config.channel}'", retryable=False)
        recipients = config.recipients or []
        result = await self._call_capability(
            execution,
            node,
            lambda: channel.send(recipients, config.subject, config.body, execution.context),
        )
        return _NodeResult(output={"channel": config.channel, "recipients": recipients, "result": result.output})

    def _start_delay(self, node: WorkflowNode, config: Any) -> _NodeResult:
        if not isinstance(config, DelayConfig):
            raise NodeExecutionError(node.id, "Delay node is not configured", retryable=False)
        now = utc_now()
        if config.delay_type == DelayType.DURATION.value:
            try:
                resume_at = add_ms(now, int(config.duration))
            except (TypeError, ValueError) as exc:
                raise NodeExecutionError(node.id, f"Invalid delay duration {config.duration!r}", retryable=False) from exc
        elif config.delay_type == DelayType.UNTIL.value:
            resume_at = parse_instant(config.duration)
            if resume_at is None:
                raise NodeExecutionError(node.id, f"Invalid delay timestamp {config.duration!r}", retryable=False)
        else:
            raise NodeExecutionError(node.id, f"Invalid delay type {config.delay_type!r}", retryable=False)
        if resume_at <= now:
            return _NodeResult(output={"resumed_at": now.isoformat()})
        wait = WaitState(
            kind=WaitKind.DELAY.value,
            node_id=node.id,
            token=generate_wait_token(),
            requested_at=now,
            resume_at=resume_at,
        )
        return _NodeResult(wait=wait)

    def _start_approval(self, node: WorkflowNode, config: Any) -> _NodeResult:
        if not isinstance(config, ApprovalConfig) or not config.approvers:
            raise NodeExecutionError(node.id, "Approval node has no approvers", retryable=False)
        if config.invalid_timeout is not None:
            raise NodeExecutionError(
                node.id, f"Invalid approval timeout_ms {config.invalid_timeout!r}", retryable=False
            )
        now = utc_now()
        wait = WaitState(
            kind=WaitKind.APPROVAL.value,
            node_id=node.id,
            token=generate_wait_token(),
            requested_at=now,
            resume_at=add_ms(now, config.timeout_ms) if config.timeout_ms else None,
        )
        return _NodeResult(wait=wait)

    async def _call_capability(
        self,
        execution: WorkflowExecution,
        node: WorkflowNode,
        call: Callable[[], Awaitable[CapabilityResult]],
    ) -> CapabilityResult:
        """Await a handler bounded by the remaining global timeout and the handler timeout."""
        remaining = self._remaining_seconds(execution)
        bound = remaining
        if self.handler_timeout_seconds is not None:
            bound = self.handler_timeout_seconds if bound is None else min(bound, self.handler_timeout_seconds)
        try:
            result = await asyncio.wait_for(call(), timeout=bound)
        except TimeoutError as exc:
            if remaining is not None and bound == remaining:
                timeout_ms = execution.snapshot().settings.timeout_ms
                raise RunTimeoutError(execution.id, timeout_ms, node.id) from exc
            raise NodeExecutionError(node.id, "Handler timed out") from exc
        except NodeExecutionError:
            raise
        except Exception as exc:
            raise NodeExecutionError(node.id, f"{type(exc).__name__}: {exc}") from exc
        if not result.ok:
            raise NodeExecutionError(node.id, result.message or "Capability reported failure")
        return result

    # ---- Terminal states ----

    async def _complete(self, execution: WorkflowExecution, graph: WorkflowGraph) -> WorkflowExecution:
        handled = {r.node_id for r in execution.node_executions}
        trigger_ids = [n.id for n in graph.trigger_nodes()]
        reachable = graph.reachable_from(trigger_ids)
        now = utc_now()
        for node_id in graph.topological_order():
            if node_id in reachable and node_id not in handled:
                node = graph.node_by_id(node_id)
                execution.node_executions.append(
                    NodeExecution(
                        node_id=node_id,
                        node_type=node.type,
                        status=NodeExecutionStatus.SKIPPED.value,
                        completed_at=now,
                    )
                )
        execution.output = dict(execution.context.get("variables") or {})
        return await self._finalize(execution, ExecutionStatus.COMPLETED)

    async def _fail(self, execution: WorkflowExecution, message: str, node_id: str | None) -> WorkflowExecution:
        execution.error = ExecutionError(message=message, node_id=node_id)
        await self._finalize(execution, ExecutionStatus.FAILED)
        settings = execution.snapshot().settings
        if settings.on_error == OnErrorPolicy.NOTIFY.value or settings.notify_on_failure:
            await self._send_failure_notice(execution, settings.notify_emails)
        return execution

    async def _finalize_cancelled(self, execution: WorkflowExecution) -> WorkflowExecution:
        in_flight = self._in_flight_record(execution)
        if in_flight is not None:
            self._close_record(in_flight, NodeExecutionStatus.SKIPPED)
        execution.cancel_requested = True
        return await self._finalize(execution, ExecutionStatus.CANCELLED)

    async def _finalize(self, execution: WorkflowExecution, status: ExecutionStatus) -> WorkflowExecution:
        now = utc_now()
        execution.status = status.value
        execution.waiting = None
        execution.completed_at = now
        execution.duration_ms = elapsed_ms(execution.started_at or execution.created_at, now)
        await self._save(execution)
        logger.info(
            "Execution %s %s in %dms (workflow %s)",
            execution.id,
            status.value,
            execution.duration_ms,
            execution.workflow_id,
        )
        await self._record(
            execution,
            _FINAL_LEVELS[status],
            f"Execution {status.value}" + (f": {execution.error.message}" if execution.error else ""),
            execution.error.node_id if execution.error else None,
            {"duration_ms": execution.duration_ms},
        )
        if status in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED) and self.metrics is not None:
            try:
                await self.metrics.record_execution(
                    execution.tenant_id,
                    execution.workflow_id,
                    execution.duration_ms,
                    status == ExecutionStatus.COMPLETED,
                    execution.error.message if execution.error else None,
                )
            except Exception:
                logger.exception("Failed to record metrics for execution %s", execution.id)
        return execution

    async def _send_failure_notice(self, execution: WorkflowExecution, recipients: list[str]) -> None:
        if not recipients:
            logger.info("Execution %s failed; no notify_emails configured", execution.id)
            return
        channel = self.capabilities.get_channel(FAILURE_NOTICE_CHANNEL)
        if channel is None:
            logger.warning("Failure notice for execution %s not sent: no email channel", execution.id)
            return
        error = execution.error
        subject = f"Workflow '{execution.workflow_name}' failed"
        body = (
            f"Execution {execution.id} of workflow {execution.workflow_id} failed"
            f"{f' at node {error.node_id}' if error and error.node_id else ''}: "
            f"{error.message if error else 'unknown error'}"
        )
        try:
            result = await channel.send(recipients, subject, body, execution.context)
        except Exception:
            logger.exception("Failure notice for execution %s raised", execution.id)
            return
        if not result.ok:
            logger.warning("Failure notice for execution %s not delivered: %s", execution.id, result.message)

    # ---- Helpers ----

    async def _load(self, execution_id: str, tenant_id: str) -> WorkflowExecution:
        execution = await self.execution_repo.get_by_id(execution_id, tenant_id)
        if execution is None:
            raise ResourceNotFoundException("workflow_execution", execution_id)
        return execution

    async def _save(self, execution: WorkflowExecution) -> None:
        execution.updated_at = utc_now()
        await self.execution_repo.save(execution)

    async def _record(
        self,
        execution: WorkflowExecution,
        level: LogLevel,
        message: str,
        node_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Append to the run's event log when one is configured."""
        if self.event_log is None:
            return
        await self.event_log.append(
            ExecutionLogEntry(
                id=generate_cuid(),
                tenant_id=execution.tenant_id,
                execution_id=execution.id,
                level=level.value,
                message=message,
                node_id=node_id,
                data=data,
                timestamp=utc_now(),
            )
        )

    async def _cancel_requested(self, execution: WorkflowExecution) -> bool:
        if not execution.cancel_requested:
            execution.cancel_requested = await self.execution_repo.is_cancel_requested(
                execution.id, execution.tenant_id
            )
        return execution.cancel_requested

    def _remaining_seconds(self, execution: WorkflowExecution) -> float | None:
        timeout_ms = execution.snapshot().settings.timeout_ms
        if not timeout_ms or execution.started_at is None:
            return None
        return max(0.0, (timeout_ms - elapsed_ms(execution.started_at)) / 1000)

    def _deadline_passed(self, execution: WorkflowExecution) -> bool:
        timeout_ms = execution.snapshot().settings.timeout_ms
        if not timeout_ms or execution.started_at is None:
            return False
        return elapsed_ms(execution.started_at) >= timeout_ms

    def _in_flight_record(self, execution: WorkflowExecution) -> NodeExecution | None:
        for record in reversed(execution.node_executions):
            if record.status in (NodeExecutionStatus.RUNNING.value, NodeExecutionStatus.PENDING.value):
                return record
        return None

    def _close_record(
        self,
        record: NodeExecution,
        status: NodeExecutionStatus,
        output: Any = None,
        error: str | None = None,
    ) -> None:
        now = utc_now()
        record.status = status.value
        if output is not None:
            record.output = output
        if error is not None:
            record.error = error
        record.completed_at = now
        if record.started_at is not None:
            record.duration_ms = elapsed_ms(record.started_at, now)
