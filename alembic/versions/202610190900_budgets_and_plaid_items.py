"""budgets and plaid items

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None

ALLOCATION_COLUMNS = (
    "housing_cents",
    "food_cents",
    "transportation_cents",
    "health_cents",
    "personal_cents",
    "entertainment_cents",
    "financial_cents",
    "gifts_cents",
)


def upgrade() -> None:
    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("overall_cents", sa.Integer(), nullable=False),
        *[
            sa.Column(name, sa.Integer(), nullable=False, server_default="0")
            for name in ALLOCATION_COLUMNS
        ],
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", name="uq_budget_user"),
        sa.CheckConstraint("overall_cents > 0", name="ck_budget_overall_positive"),
        sa.CheckConstraint(
            " AND ".join(f"{name} >= 0" for name in ALLOCATION_COLUMNS),
            name="ck_budget_allocations_non_negative",
        ),
    )

    op.create_table(
        "plaid_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.String(length=100), nullable=False),
        sa.Column("access_token", sa.String(length=200), nullable=False),
        sa.Column("institution_name", sa.String(length=120)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("item_id", name="uq_plaid_item_item_id"),
    )
    op.create_index("ix_plaid_items_user_id", "plaid_items", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_plaid_items_user_id", table_name="plaid_items")
    op.drop_table("plaid_items")
    op.drop_table("budgets")
