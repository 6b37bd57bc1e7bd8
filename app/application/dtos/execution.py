"""DTOs for runs: trigger events, capability results, filters and stats."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.domain.enums import TriggeredBy


@dataclass(frozen=True)
class TriggerEvent:
    """What started a run: source plus the payload the run is evaluated against."""

    trigger_data: dict[str, Any] = field(default_factory=dict)
    triggered_by: str = TriggeredBy.USER.value
    triggered_by_user: str | None = None
    retry_of: str | None = None


@dataclass(frozen=True)
class DomainEvent:
    """Tenant-scoped event emitted by a business module (e.g. ticket.created)."""

    module: str
    event: str
    data: dict[str, Any] = field(default_factory=dict)
    user_id: str | None = None


@dataclass(frozen=True)
class CapabilityResult:
    """Return value of action handlers and notification channels."""

    ok: bool
    output: Any = None
    message: str | None = None


@dataclass(frozen=True)
class ExecutionFilters:
    workflow_id: str | None = None
    status: tuple[str, ...] | None = None
    triggered_by: str | None = None
    started_from: datetime | None = None
    started_to: datetime | None = None
    search: str | None = None
    skip: int = 0
    limit: int = 100


@dataclass(frozen=True)
class ExecutionStats:
    total: int
    by_status: dict[str, int]
    today: int
    success_rate_percent: float
    average_duration_ms: float


@dataclass(frozen=True)
class MetricsSnapshot:
    """Rolling metrics as read from or written to the workflow record."""

    execution_count: int
    average_execution_time_ms: float
    success_rate_percent: float
