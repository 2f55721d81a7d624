"""create workflow graph and issue tables

Revision ID: 3c1e9a7b5d20
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "3c1e9a7b5d20"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    workflow_status = postgresql.ENUM(
        "draft", "active", "archived", name="workflow_status", create_type=False
    )
    workflow_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "workflow",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("domain", sa.String(length=120), nullable=True),
        sa.Column("version", sa.String(length=32), nullable=False, server_default="1"),
        sa.Column(
            "status",
            workflow_status,
            nullable=False,
            server_default="draft",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "node",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("workflow_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="action"),
        sa.Column("x", sa.Float(), nullable=False, server_default="100"),
        sa.Column("y", sa.Float(), nullable=False, server_default="100"),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="active"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["workflow_id"], ["workflow.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_node_workflow_id", "node", ["workflow_id"])

    op.create_table(
        "edge",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("workflow_id", sa.Integer(), nullable=False),
        sa.Column("from_node_id", sa.Integer(), nullable=False),
        sa.Column("to_node_id", sa.Integer(), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=True),
        sa.Column("style", sa.String(length=16), nullable=False, server_default="solid"),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["workflow_id"], ["workflow.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["from_node_id"], ["node.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["to_node_id"], ["node.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_edge_workflow_id", "edge", ["workflow_id"])

    op.create_table(
        "error",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("workflow_id", sa.Integer(), nullable=False),
        sa.Column("node_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_fixed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("solution", sa.Text(), nullable=True),
        sa.Column("solver_contact_id", sa.Integer(), nullable=True),
        sa.Column(
            "reported_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.Column("fixed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["workflow_id"], ["workflow.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["node_id"], ["node.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_error_workflow_id", "error", ["workflow_id"])
    op.create_index("ix_error_node_id", "error", ["node_id"])

    op.create_table(
        "problem",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("workflow_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_solved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("solution", sa.Text(), nullable=True),
        sa.Column("owner_names", sa.String(length=255), nullable=True),
        sa.Column(
            "reported_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.Column("solved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["workflow_id"], ["workflow.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_problem_workflow_id", "problem", ["workflow_id"])


def downgrade() -> None:
    op.drop_index("ix_problem_workflow_id", table_name="problem")
    op.drop_table("problem")
    op.drop_index("ix_error_node_id", table_name="error")
    op.drop_index("ix_error_workflow_id", table_name="error")
    op.drop_table("error")
    op.drop_index("ix_edge_workflow_id", table_name="edge")
    op.drop_table("edge")
    op.drop_index("ix_node_workflow_id", table_name="node")
    op.drop_table("node")
    op.drop_table("workflow")
    postgresql.ENUM(name="workflow_status").drop(op.get_bind(), checkfirst=True)
