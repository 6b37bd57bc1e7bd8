"""create_workflow_tables

Revision ID: 0001_create_workflow_tables
Revises:
Create Date: 2026-10-18 09:12:41.000000

"""

from collections.abc import Sequence
from typing import Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_create_workflow_tables"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

WORKFLOW_STATUSES = ("draft", "active", "inactive", "archived")
EXECUTION_STATUSES = ("pending", "running", "completed", "failed", "cancelled")


def _status_check(values: tuple[str, ...], name: str) -> sa.CheckConstraint:
    quoted = ", ".join(f"'{v}'" for v in values)
    return sa.CheckConstraint(f"status IN ({quoted})", name=name)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "workflow",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("enabled", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("nodes", sa.JSON(), nullable=False),
        sa.Column("edges", sa.JSON(), nullable=False),
        sa.Column("trigger", sa.JSON(), nullable=False),
        sa.Column("trigger_type", sa.String(), nullable=False),
        sa.Column("trigger_module", sa.String(), nullable=True),
        sa.Column("trigger_event", sa.String(), nullable=True),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("execution_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "average_execution_time_ms", sa.Float(), server_default=sa.text("0"), nullable=False
        ),
        sa.Column("success_rate_percent", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("template_id", sa.String(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        _status_check(WORKFLOW_STATUSES, "workflow_status_check"),
    )
    op.create_index("ix_workflow_tenant_id", "workflow", ["tenant_id"])
    op.create_index("ix_workflow_category", "workflow", ["category"])
    op.create_index("ix_workflow_status", "workflow", ["status"])
    op.create_index(
        "ix_workflow_tenant_trigger", "workflow", ["tenant_id", "trigger_module", "trigger_event"]
    )

    op.create_table(
        "workflow_execution",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("workflow_id", sa.String(), nullable=False),
        sa.Column("workflow_name", sa.String(), nullable=False),
        sa.Column("workflow_version", sa.Integer(), nullable=False),
        sa.Column("definition", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("triggered_by", sa.String(), nullable=False),
        sa.Column("triggered_by_user", sa.String(), nullable=True),
        sa.Column("trigger_data", sa.JSON(), nullable=False),
        sa.Column("context", sa.JSON(), nullable=False),
        sa.Column("node_executions", sa.JSON(), nullable=False),
        sa.Column("activated_node_ids", sa.JSON(), nullable=False),
        sa.Column("waiting", sa.JSON(), nullable=True),
        sa.Column("waiting_kind", sa.String(), nullable=True),
        sa.Column("resume_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("output", sa.JSON(), nullable=True),
        sa.Column("error", sa.JSON(), nullable=True),
        sa.Column("cancel_requested", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("retry_of", sa.String(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["workflow_id"], ["workflow.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        _status_check(EXECUTION_STATUSES, "workflow_execution_status_check"),
    )
    op.create_index("ix_workflow_execution_tenant_id", "workflow_execution", ["tenant_id"])
    op.create_index("ix_workflow_execution_workflow_id", "workflow_execution", ["workflow_id"])
    op.create_index("ix_workflow_execution_status", "workflow_execution", ["status"])
    op.create_index("ix_workflow_execution_resume_at", "workflow_execution", ["resume_at"])
    op.create_index(
        "ix_workflow_execution_tenant_workflow", "workflow_execution", ["tenant_id", "workflow_id"]
    )
    op.create_index(
        "ix_workflow_execution_status_updated", "workflow_execution", ["status", "updated_at"]
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("workflow_execution")
    op.drop_table("workflow")
