"""Static validation of workflow graphs.

Pure and deterministic: no I/O, never raises for structural problems.
Errors block activation; warnings are advisory and support iterative drafting.
"""

from __future__ import annotations

from collections import Counter

from app.application.dtos.workflow import (
    ISSUE_ERROR,
    ISSUE_WARNING,
    ValidationIssue,
    ValidationResult,
)
from app.domain.entities.workflow import (
    ActionConfig,
    ApprovalConfig,
    ConditionConfig,
    DelayConfig,
    NotificationConfig,
    Workflow,
    WorkflowGraph,
)
from app.domain.enums import DelayType, NodeType, TriggerType

MSG_NO_NODES = "Workflow must have at least one node"
MSG_NO_TRIGGER = "Workflow must have a trigger node"
MSG_MULTIPLE_TRIGGERS = "Workflow can only have one trigger node"
MSG_NO_END = "Workflow should have at least one end node"
MSG_CYCLE = "Workflow contains circular dependencies"


def _error(message: str, node_id: str | None = None) -> ValidationIssue:
    return ValidationIssue(type=ISSUE_ERROR, message=message, node_id=node_id)


def _warning(message: str, node_id: str | None = None) -> ValidationIssue:
    return ValidationIssue(type=ISSUE_WARNING, message=message, node_id=node_id)


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_template(value: object) -> bool:
    """Templated values are rendered per run, so they are checked by the engine."""
    return isinstance(value, str) and "{{" in value


def find_cycle_node(graph: WorkflowGraph, start_ids: list[str]) -> str | None:
    """Iterative DFS from each start node with an explicit recursion stack.

    Returns the node that closed a cycle, or None. Revisiting a node that has
    been fully explored (diamond) is not a cycle.
    """
    adjacency: dict[str, list[str]] = {}
    for edge in graph.valid_edges():
        adjacency.setdefault(edge.source, []).append(edge.target)

    done: set[str] = set()
    for start in start_ids:
        if start in done:
            continue
        on_stack = {start}
        stack: list[tuple[str, int]] = [(start, 0)]
        while stack:
            node_id, index = stack[-1]
            children = adjacency.get(node_id, [])
            if index < len(children):
                stack[-1] = (node_id, index + 1)
                child = children[index]
                if child in on_stack:
                    return child
                if child not in done:
                    on_stack.add(child)
                    stack.append((child, 0))
            else:
                stack.pop()
                on_stack.discard(node_id)
                done.add(node_id)
    return None


class WorkflowValidator:
    """Runs the structural, connectivity, cycle and config rules in order."""

    def validate(self, workflow: Workflow) -> ValidationResult:
        if not workflow.nodes:
            return ValidationResult(valid=False, errors=[_error(MSG_NO_NODES)], warnings=[])

        graph = workflow.graph()
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        for node_id, count in Counter(n.id for n in workflow.nodes).items():
            if count > 1:
                errors.append(_error(f"Duplicate node id '{node_id}'", node_id))
        for node in workflow.nodes:
            if node.type not in NodeType.values():
                errors.append(_error(f"Unknown node type '{node.type}'", node.id))

        triggers = graph.trigger_nodes()
        if not triggers:
            errors.append(_error(MSG_NO_TRIGGER))
        elif len(triggers) > 1:
            errors.append(_error(MSG_MULTIPLE_TRIGGERS))

        if not graph.end_nodes():
            warnings.append(_warning(MSG_NO_END))

        for edge in workflow.edges:
            if not graph.has_node(edge.source) or not graph.has_node(edge.target):
                warnings.append(_warning(f"Edge '{edge.id}' references a missing node"))

        trigger_ids = [t.id for t in triggers]
        if trigger_ids:
            reached = graph.reachable_from(trigger_ids)
            for node in workflow.nodes:
                if node.id not in reached:
                    warnings.append(
                        _warning(f"Node '{node.display_name}' is a disconnected node", node.id)
                    )
            if find_cycle_node(graph, trigger_ids) is not None:
                errors.append(_error(MSG_CYCLE))

        for node in workflow.nodes:
            self._check_config(node, errors, warnings)

        self._check_trigger_config(workflow, errors)
        self._check_delays_against_timeout(workflow, warnings)

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def _check_config(self, node, errors: list[ValidationIssue], warnings: list[ValidationIssue]) -> None:
        name = node.display_name
        config = node.typed_config
        if config is None:
            warnings.append(_warning(f"Node '{name}' is not configured", node.id))
            return
        match config:
            case ActionConfig():
                if _is_blank(config.module) or _is_blank(config.action):
                    errors.append(_error(f"Action node '{name}' must specify module and action", node.id))
            case ApprovalConfig():
                if not config.approvers:
                    errors.append(_error(f"Approval node '{name}' must have at least one approver", node.id))
                if config.invalid_timeout is not None and not _is_template(config.invalid_timeout):
                    errors.append(_error(f"Approval node '{name}' has an invalid timeout_ms", node.id))
            case DelayConfig():
                if _is_blank(config.delay_type) or _is_blank(config.duration):
                    errors.append(_error(f"Delay node '{name}' must specify delay type and duration", node.id))
                elif config.delay_type not in DelayType.values():
                    errors.append(_error(f"Delay node '{name}' has invalid delay type '{config.delay_type}'", node.id))
            case NotificationConfig():
                if _is_blank(config.channel) or not config.recipients:
                    errors.append(
                        _error(f"Notification node '{name}' must specify channel and recipients", node.id)
                    )
            case ConditionConfig():
                if not config.conditions:
                    warnings.append(_warning(f"Condition node '{name}' has no conditions", node.id))

    def _check_trigger_config(self, workflow: Workflow, errors: list[ValidationIssue]) -> None:
        trigger = workflow.trigger
        match trigger.type:
            case TriggerType.EVENT.value:
                if _is_blank(trigger.module) or _is_blank(trigger.event):
                    errors.append(_error("Event trigger must specify module and event"))
            case TriggerType.SCHEDULE.value:
                if not trigger.schedule:
                    errors.append(_error("Schedule trigger must specify a schedule"))
            case TriggerType.WEBHOOK.value:
                if not trigger.webhook or _is_blank(trigger.webhook.get("url")):
                    errors.append(_error("Webhook trigger must specify a webhook url"))
            case TriggerType.MANUAL.value:
                pass
            case _:
                errors.append(_error(f"Unknown trigger type '{trigger.type}'"))

    def _check_delays_against_timeout(self, workflow: Workflow, warnings: list[ValidationIssue]) -> None:
        timeout_ms = workflow.settings.timeout_ms
        if not timeout_ms:
            return
        for node in workflow.nodes:
            config = node.typed_config
            if not isinstance(config, DelayConfig) or config.delay_type != DelayType.DURATION.value:
                continue
            try:
                duration = int(config.duration)
            except (TypeError, ValueError):
                continue
            if duration > timeout_ms:
                warnings.append(
                    _warning(
                        f"Delay node '{node.display_name}' waits longer than the workflow timeout",
                        node.id,
                    )
                )


_default_validator = WorkflowValidator()


def validate_workflow(workflow: Workflow) -> ValidationResult:
    """Validate with the default rule set."""
    return _default_validator.validate(workflow)
