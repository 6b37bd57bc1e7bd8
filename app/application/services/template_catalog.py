"""Built-in system templates, visible to every tenant.

Each template is a complete, valid graph; action nodes name the module
capabilities a tenant is expected to register (tickets.assign, ...).
"""

from __future__ import annotations

from typing import Any

from app.domain.entities.workflow import TriggerConfig, WorkflowEdge, WorkflowNode
from app.domain.entities.workflow_template import WorkflowTemplate
from app.domain.enums import WorkflowCategory

SYSTEM_AUTHOR = "system"


def _node(node_id: str, node_type: str, label: str, config: dict[str, Any] | None = None) -> WorkflowNode:
    return WorkflowNode(id=node_id, type=node_type, label=label, config=config or {})


def _edge(source: str, target: str, branch: str | None = None) -> WorkflowEdge:
    return WorkflowEdge(id=f"{source}->{target}", source=source, target=target, branch=branch)


def _event_trigger(module: str, event: str, **condition: Any) -> TriggerConfig:
    return TriggerConfig.from_dict(
        {
            "type": "event",
            "module": module,
            "event": event,
            "conditions": [{"field": k, "operator": "equals", "value": v} for k, v in condition.items()],
        }
    )


def _critical_ticket_alert() -> WorkflowTemplate:
    return WorkflowTemplate(
        id="system-critical-ticket-alert",
        tenant_id=None,
        name="Auto-Assign Critical Tickets",
        description="Assign critical tickets to the on-call technician, or to a manager after hours",
        category=WorkflowCategory.TICKET.value,
        icon="alert-circle",
        tags=["tickets", "automation", "assignment"],
        nodes=[
            _node("trigger", "trigger", "Ticket Created"),
            _node(
                "business-hours",
                "condition",
                "Check Business Hours",
                {
                    "conditions": [
                        {"field": "trigger.created_hour", "operator": "greater-than", "value": 8},
                        {"field": "trigger.created_hour", "operator": "less-than", "value": 17},
                    ],
                    "logic_operator": "AND",
                },
            ),
            _node(
                "assign-on-call",
                "action",
                "Assign to On-Call",
                {"module": "tickets", "action": "assign", "params": {"assignment_type": "on-call"}},
            ),
            _node(
                "assign-manager",
                "action",
                "Assign to Manager",
                {"module": "tickets", "action": "assign", "params": {"assignment_type": "manager"}},
            ),
            _node(
                "alert",
                "notification",
                "Send Alert",
                {
                    "channel": "email",
                    "recipients": ["{{ trigger.assigned_to }}"],
                    "subject": "Critical Ticket Assigned: {{ trigger.ticket_number }}",
                    "body": "A critical priority ticket has been assigned to you.",
                },
            ),
            _node("end", "end", "Complete"),
        ],
        edges=[
            _edge("trigger", "business-hours"),
            _edge("business-hours", "assign-on-call", "true"),
            _edge("business-hours", "assign-manager", "false"),
            _edge("assign-on-call", "alert"),
            _edge("assign-manager", "alert"),
            _edge("alert", "end"),
        ],
        trigger=_event_trigger("tickets", "created", priority="critical"),
        is_system=True,
        created_by=SYSTEM_AUTHOR,
    )


def _service_request_approval() -> WorkflowTemplate:
    return WorkflowTemplate(
        id="system-service-request-approval",
        tenant_id=None,
        name="Service Request Approval",
        description="Route costly service requests to a manager for approval; auto-approve the rest",
        category=WorkflowCategory.SERVICE_REQUEST.value,
        icon="check-circle",
        tags=["tickets", "service-requests", "approval"],
        nodes=[
            _node("trigger", "trigger", "Service Request Created"),
            _node(
                "check-cost",
                "condition",
                "Check Cost",
                {"conditions": [{"field": "trigger.estimated_cost", "operator": "greater-than", "value": 1000}]},
            ),
            _node(
                "manager-approval",
                "approval",
                "Manager Approval",
                {
                    "approvers": ["{{ trigger.manager }}"],
                    "approval_type": "any",
                    "timeout_ms": 86_400_000,
                    "on_timeout": "reject",
                    "message": "Please approve service request: {{ trigger.title }}",
                },
            ),
            _node(
                "auto-approve",
                "action",
                "Auto-Approve",
                {"module": "tickets", "action": "update", "params": {"status": "approved"}},
            ),
            _node(
                "mark-approved",
                "action",
                "Mark Approved",
                {"module": "tickets", "action": "update", "params": {"status": "approved"}},
            ),
            _node(
                "mark-rejected",
                "action",
                "Mark Rejected",
                {"module": "tickets", "action": "update", "params": {"status": "rejected"}},
            ),
            _node("end", "end", "Complete"),
        ],
        edges=[
            _edge("trigger", "check-cost"),
            _edge("check-cost", "manager-approval", "true"),
            _edge("check-cost", "auto-approve", "false"),
            _edge("manager-approval", "mark-approved", "approved"),
            _edge("manager-approval", "mark-rejected", "rejected"),
            _edge("auto-approve", "end"),
            _edge("mark-approved", "end"),
            _edge("mark-rejected", "end"),
        ],
        trigger=_event_trigger("tickets", "created", ticket_type="service_request"),
        is_system=True,
        created_by=SYSTEM_AUTHOR,
    )


def _incident_follow_up() -> WorkflowTemplate:
    return WorkflowTemplate(
        id="system-incident-follow-up",
        tenant_id=None,
        name="Incident Follow-Up",
        description="Notify the reporter when an incident is resolved and check back a day later",
        category=WorkflowCategory.INCIDENT.value,
        icon="bell",
        tags=["incidents", "notification", "follow-up"],
        nodes=[
            _node("trigger", "trigger", "Incident Resolved"),
            _node(
                "notify-resolved",
                "notification",
                "Notify Reporter",
                {
                    "channel": "email",
                    "recipients": ["{{ trigger.reporter_email }}"],
                    "subject": "Incident {{ trigger.incident_number }} resolved",
                    "body": "Your incident has been resolved. Reply to this email if the problem persists.",
                },
            ),
            _node("wait-a-day", "delay", "Wait One Day", {"delay_type": "duration", "duration": 86_400_000}),
            _node(
                "follow-up",
                "notification",
                "Follow Up",
                {
                    "channel": "email",
                    "recipients": ["{{ trigger.reporter_email }}"],
                    "subject": "How did we do on {{ trigger.incident_number }}?",
                    "body": "We would like to hear whether the fix is holding up.",
                },
            ),
            _node("end", "end", "Complete"),
        ],
        edges=[
            _edge("trigger", "notify-resolved"),
            _edge("notify-resolved", "wait-a-day"),
            _edge("wait-a-day", "follow-up"),
            _edge("follow-up", "end"),
        ],
        trigger=_event_trigger("incidents", "resolved"),
        is_system=True,
        created_by=SYSTEM_AUTHOR,
    )


def system_templates() -> list[WorkflowTemplate]:
    """Fresh copies of the built-in templates; callers may mutate them."""
    return [_critical_ticket_alert(), _service_request_approval(), _incident_follow_up()]


def get_system_template(template_id: str) -> WorkflowTemplate | None:
    return next((t for t in system_templates() if t.id == template_id), None)
