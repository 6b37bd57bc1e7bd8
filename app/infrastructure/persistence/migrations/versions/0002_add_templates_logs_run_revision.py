"""add_templates_logs_run_revision

Revision ID: 0002_add_templates_logs_run_revision
Revises: 0001_create_workflow_tables
Create Date: 2026-10-18 15:40:07.000000

"""

from collections.abc import Sequence
from typing import Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0002_add_templates_logs_run_revision"
down_revision: Union[str, Sequence[str], None] = "0001_create_workflow_tables"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.add_column(
        "workflow_execution",
        sa.Column("deadline_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.add_column(
        "workflow_execution",
        sa.Column("revision", sa.Integer(), server_default="1", nullable=False),
    )
    op.create_index("ix_workflow_execution_deadline_at", "workflow_execution", ["deadline_at"])

    op.create_table(
        "workflow_template",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("icon", sa.String(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("nodes", sa.JSON(), nullable=False),
        sa.Column("edges", sa.JSON(), nullable=False),
        sa.Column("trigger", sa.JSON(), nullable=False),
        sa.Column("usage_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_workflow_template_tenant_id", "workflow_template", ["tenant_id"])
    op.create_index("ix_workflow_template_category", "workflow_template", ["category"])

    op.create_table(
        "workflow_execution_log",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("execution_id", sa.String(), nullable=False),
        sa.Column("level", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("node_id", sa.String(), nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["execution_id"], ["workflow_execution.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_workflow_execution_log_tenant_id", "workflow_execution_log", ["tenant_id"])
    op.create_index(
        "ix_workflow_execution_log_execution", "workflow_execution_log", ["execution_id", "timestamp"]
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("workflow_execution_log")
    op.drop_table("workflow_template")
    op.drop_index("ix_workflow_execution_deadline_at", table_name="workflow_execution")
    with op.batch_alter_table("workflow_execution") as batch:
        batch.drop_column("revision")
        batch.drop_column("deadline_at")
