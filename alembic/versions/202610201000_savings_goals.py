"""savings goals

Revision ID: 202610201000
Revises: 202610190900
Create Date: 2026-10-20 10:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "202610201000"
down_revision = "202610190900"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "savings_goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("description", sa.String(length=500)),
        sa.Column("target_cents", sa.Integer(), nullable=False),
        sa.Column("current_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deadline", sa.Date()),
        sa.Column("category", sa.String(length=80)),
        sa.Column(
            "priority",
            sa.Enum("low", "medium", "high", name="goalpriority"),
            nullable=False,
            server_default="medium",
        ),
        sa.Column("icon", sa.String(length=40)),
        sa.Column("color", sa.String(length=20)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("target_cents > 0", name="ck_savings_goal_target_positive"),
        sa.CheckConstraint(
            "current_cents >= 0", name="ck_savings_goal_current_non_negative"
        ),
    )
    op.create_index("ix_savings_goals_user_id", "savings_goals", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_savings_goals_user_id", table_name="savings_goals")
    op.drop_table("savings_goals")
