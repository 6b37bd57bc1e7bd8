"""Domain enumerations for the Flowline workflow engine.

Enums represent fixed sets of domain values: workflow lifecycle, node kinds,
error policies, run and node-run statuses, condition operators.
"""

from enum import Enum


class _ValuesMixin:
    """Mixin that adds a values() classmethod to str Enums."""

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid values as strings."""
        return [member.value for member in cls]


class WorkflowStatus(_ValuesMixin, str, Enum):
    """Workflow lifecycle status.

    Only an enabled workflow that validates with zero errors may be ACTIVE.
    """

    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class WorkflowCategory(_ValuesMixin, str, Enum):
    """Business area a workflow automates."""

    INCIDENT = "incident"
    SERVICE_REQUEST = "service-request"
    CHANGE = "change"
    PROBLEM = "problem"
    TICKET = "ticket"
    ASSET = "asset"
    APPROVAL = "approval"
    NOTIFICATION = "notification"
    CUSTOM = "custom"


class NodeType(_ValuesMixin, str, Enum):
    """Fixed set of node kinds the engine knows how to run."""

    TRIGGER = "trigger"
    CONDITION = "condition"
    ACTION = "action"
    APPROVAL = "approval"
    DELAY = "delay"
    NOTIFICATION = "notification"
    END = "end"


class TriggerType(_ValuesMixin, str, Enum):
    """How a workflow is started."""

    MANUAL = "manual"
    EVENT = "event"
    SCHEDULE = "schedule"
    WEBHOOK = "webhook"


class TriggeredBy(_ValuesMixin, str, Enum):
    """Source recorded on a run."""

    USER = "user"
    EVENT = "event"
    SCHEDULE = "schedule"
    WEBHOOK = "webhook"


class OnErrorPolicy(_ValuesMixin, str, Enum):
    """Run behaviour after a node exhausts its retries."""

    STOP = "stop"
    CONTINUE = "continue"
    NOTIFY = "notify"


class ExecutionStatus(_ValuesMixin, str, Enum):
    """Workflow execution (run) lifecycle status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def terminal(cls) -> frozenset["ExecutionStatus"]:
        """Statuses a run never leaves."""
        return frozenset({cls.COMPLETED, cls.FAILED, cls.CANCELLED})


class NodeExecutionStatus(_ValuesMixin, str, Enum):
    """Per-node execution status within a run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ConditionOperator(_ValuesMixin, str, Enum):
    """Operators for FilterCondition."""

    EQUALS = "equals"
    NOT_EQUALS = "not-equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not-contains"
    GREATER_THAN = "greater-than"
    LESS_THAN = "less-than"
    IN = "in"
    NOT_IN = "not-in"
    IS_EMPTY = "is-empty"
    IS_NOT_EMPTY = "is-not-empty"


class LogicOperator(_ValuesMixin, str, Enum):
    """How a condition node combines its conditions."""

    AND = "AND"
    OR = "OR"


class DelayType(_ValuesMixin, str, Enum):
    """Delay node modes: relative duration (ms) or absolute timestamp."""

    DURATION = "duration"
    UNTIL = "until"


class ApprovalType(_ValuesMixin, str, Enum):
    """How many approvers must approve before an approval node completes."""

    ANY = "any"
    ALL = "all"
    MAJORITY = "majority"


class ApprovalDecision(_ValuesMixin, str, Enum):
    """Decision submitted by an approver."""

    APPROVED = "approved"
    REJECTED = "rejected"


class WaitKind(_ValuesMixin, str, Enum):
    """Why a running execution is suspended."""

    DELAY = "delay"
    APPROVAL = "approval"


class EdgeBranch(_ValuesMixin, str, Enum):
    """Branch labels the engine interprets on edges. Unlabelled edges are defaults."""

    TRUE = "true"
    FALSE = "false"
    APPROVED = "approved"
    REJECTED = "rejected"
    ERROR = "error"


class MetricsStrategy(_ValuesMixin, str, Enum):
    """How the metrics aggregator persists rolling metrics."""

    OPTIMISTIC = "optimistic"
    ATOMIC = "atomic"


class LogLevel(_ValuesMixin, str, Enum):
    """Severity of a per-run execution log entry."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
