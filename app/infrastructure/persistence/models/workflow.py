"""Workflow, WorkflowExecution and WorkflowExecutionLog ORM models.

Graph, settings, run context and node executions are stored as JSON; the
columns the scheduler and filters query on are broken out.
"""

from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.domain.enums import ExecutionStatus, WorkflowStatus
from app.infrastructure.persistence.database import Base
from app.infrastructure.persistence.models.mixins import (
    CuidMixin,
    MultiTenantModel,
    TenantMixin,
    VersionedMixin,
)
from app.shared.utils.datetime import utc_now


def _status_check(values: list[str], name: str) -> CheckConstraint:
    quoted = ", ".join("'{}'".format(v.replace("'", "''")) for v in values)
    return CheckConstraint(f"status IN ({quoted})", name=name)


class Workflow(MultiTenantModel, VersionedMixin, Base):
    """Workflow definition. Table: workflow."""

    __tablename__ = "workflow"

    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    category: Mapped[str] = mapped_column(String, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=WorkflowStatus.DRAFT.value, index=True
    )
    enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sa.false()
    )
    nodes: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    edges: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    trigger: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    trigger_type: Mapped[str] = mapped_column(String, nullable=False, default="manual")
    trigger_module: Mapped[str | None] = mapped_column(String, nullable=True)
    trigger_event: Mapped[str | None] = mapped_column(String, nullable=True)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    execution_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    last_executed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    average_execution_time_ms: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, server_default=sa.text("0")
    )
    success_rate_percent: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, server_default=sa.text("0")
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    template_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        Index("ix_workflow_tenant_trigger", "tenant_id", "trigger_module", "trigger_event"),
        _status_check(WorkflowStatus.values(), "workflow_status_check"),
    )


class WorkflowExecution(MultiTenantModel, Base):
    """One run of a workflow. Table: workflow_execution."""

    __tablename__ = "workflow_execution"

    workflow_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("workflow.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    workflow_name: Mapped[str] = mapped_column(String, nullable=False)
    workflow_version: Mapped[int] = mapped_column(Integer, nullable=False)
    definition: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default=ExecutionStatus.PENDING.value,
        index=True,
    )
    triggered_by: Mapped[str] = mapped_column(String, nullable=False)
    triggered_by_user: Mapped[str | None] = mapped_column(String, nullable=True)
    trigger_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    context: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    node_executions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    activated_node_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    waiting: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    waiting_kind: Mapped[str | None] = mapped_column(String, nullable=True)
    resume_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    deadline_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    output: Mapped[Any] = mapped_column(JSON, nullable=True)
    error: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    cancel_requested: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sa.false()
    )
    retry_of: Mapped[str | None] = mapped_column(String, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")

    __table_args__ = (
        Index("ix_workflow_execution_tenant_workflow", "tenant_id", "workflow_id"),
        Index("ix_workflow_execution_status_updated", "status", "updated_at"),
        _status_check(ExecutionStatus.values(), "workflow_execution_status_check"),
    )
    __mapper_args__ = {"version_id_col": revision}


class WorkflowExecutionLog(CuidMixin, TenantMixin, Base):
    """Append-only step log of a run. Table: workflow_execution_log."""

    __tablename__ = "workflow_execution_log"

    execution_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("workflow_execution.id", ondelete="CASCADE"),
        nullable=False,
    )
    level: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    node_id: Mapped[str | None] = mapped_column(String, nullable=True)
    data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (Index("ix_workflow_execution_log_execution", "execution_id", "timestamp"),)
