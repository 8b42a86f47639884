"""order workflow board schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:01
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _family_column() -> sa.Column:
    return sa.Column("family_id", sa.Integer(), sa.ForeignKey("families.id", ondelete="CASCADE"), nullable=False)


def upgrade() -> None:
    op.create_table(
        "families",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("first_name", sa.String(length=120), nullable=False),
        sa.Column("last_name", sa.String(length=120), nullable=False),
        sa.Column("color", sa.String(length=16), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_audit_columns(),
        _family_column(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_family_id", "users", ["family_id"])
    op.create_index("idx_users_family_role", "users", ["family_id", "role"])

    op.create_table(
        "source_orders",
        sa.Column("id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("order_number", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=40), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("customer_email", sa.String(length=320), nullable=True),
        sa.Column("total", sa.String(length=32), nullable=True),
        sa.Column("currency", sa.String(length=8), nullable=True),
        sa.Column("line_items", sa.JSON(), nullable=True),
        sa.Column("customization", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("synced_at", sa.DateTime(), nullable=False),
        _family_column(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_source_orders_family_id", "source_orders", ["family_id"])
    op.create_index("idx_source_orders_family_created", "source_orders", ["family_id", "created_at"])

    op.create_table(
        "order_workflow_stages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("color", sa.String(length=16), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("external_status", sa.String(length=40), nullable=True),
        sa.Column("is_hidden", sa.Boolean(), nullable=False),
        *_audit_columns(),
        _family_column(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("family_id", "position", name="uq_stages_family_position"),
    )
    op.create_index("ix_order_workflow_stages_family_id", "order_workflow_stages", ["family_id"])
    op.create_index("idx_stages_family_position", "order_workflow_stages", ["family_id", "position"])

    op.create_table(
        "order_workflow",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("stage_id", sa.Integer(), nullable=False),
        sa.Column("assigned_to", sa.Integer(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["order_id"], ["source_orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["stage_id"], ["order_workflow_stages.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["assigned_to"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id"),
    )
    op.create_index("idx_order_workflow_stage", "order_workflow", ["stage_id"])
    op.create_index("idx_order_workflow_assigned_to", "order_workflow", ["assigned_to"])
    op.create_index("idx_order_workflow_priority", "order_workflow", ["priority"])

    op.create_table(
        "order_workflow_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("from_stage_id", sa.Integer(), nullable=True),
        sa.Column("from_stage_name", sa.String(length=120), nullable=True),
        sa.Column("to_stage_id", sa.Integer(), nullable=False),
        sa.Column("to_stage_name", sa.String(length=120), nullable=False),
        sa.Column("changed_by", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("changed_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["changed_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_order_workflow_history_order", "order_workflow_history", ["order_id"])
    op.create_index("idx_order_workflow_history_changed_at", "order_workflow_history", ["changed_at"])


def downgrade() -> None:
    op.drop_index("idx_order_workflow_history_changed_at", table_name="order_workflow_history")
    op.drop_index("idx_order_workflow_history_order", table_name="order_workflow_history")
    op.drop_table("order_workflow_history")

    op.drop_index("idx_order_workflow_priority", table_name="order_workflow")
    op.drop_index("idx_order_workflow_assigned_to", table_name="order_workflow")
    op.drop_index("idx_order_workflow_stage", table_name="order_workflow")
    op.drop_table("order_workflow")

    op.drop_index("idx_stages_family_position", table_name="order_workflow_stages")
    op.drop_index("ix_order_workflow_stages_family_id", table_name="order_workflow_stages")
    op.drop_table("order_workflow_stages")

    op.drop_index("idx_source_orders_family_created", table_name="source_orders")
    op.drop_index("ix_source_orders_family_id", table_name="source_orders")
    op.drop_table("source_orders")

    op.drop_index("idx_users_family_role", table_name="users")
    op.drop_index("ix_users_family_id", table_name="users")
    op.drop_table("users")

    op.drop_table("families")
