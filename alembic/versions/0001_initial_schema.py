"""Initial schema: token ledger and saved recipes.

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "user_tokens",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("tokens_balance", sa.Integer(), nullable=False),
        sa.Column("total_generations_used", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("tokens_balance >= 0", name="ck_user_tokens_balance_non_negative"),
        sa.CheckConstraint(
            "total_generations_used >= 0", name="ck_user_tokens_usage_non_negative"
        ),
    )
    op.create_index("ix_user_tokens_user_id", "user_tokens", ["user_id"], unique=True)

    op.create_table(
        "token_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("transaction_type", sa.String(20), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("usage_kind", sa.String(50), nullable=True),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("reference", sa.String(255), nullable=True, unique=True),
        *_timestamps(),
    )
    op.create_index("ix_token_transactions_user_id", "token_transactions", ["user_id"])
    op.create_index(
        "ix_token_transactions_transaction_type", "token_transactions", ["transaction_type"]
    )

    op.create_table(
        "recipes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("prep_time", sa.Integer(), nullable=False),
        sa.Column("cook_time", sa.Integer(), nullable=False),
        sa.Column("servings", sa.Integer(), nullable=False),
        sa.Column("difficulty", sa.String(10), nullable=False),
        sa.Column("cuisine", sa.JSON()),
        sa.Column("dietary_tags", sa.JSON()),
        sa.Column("ingredients", sa.JSON()),
        sa.Column("instructions", sa.JSON()),
        sa.Column("nutrition", sa.JSON()),
        sa.Column("tips", sa.JSON(), nullable=True),
        sa.Column("estimated_cost", sa.String(20), nullable=True),
        sa.Column(
            "parent_recipe_id", sa.String(36),
            sa.ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("modification_request", sa.Text(), nullable=True),
        sa.Column("modification_count", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_recipes_user_id", "recipes", ["user_id"])
    op.create_index("ix_recipes_parent_recipe_id", "recipes", ["parent_recipe_id"])


def downgrade() -> None:
    op.drop_index("ix_recipes_parent_recipe_id", table_name="recipes")
    op.drop_index("ix_recipes_user_id", table_name="recipes")
    op.drop_table("recipes")
    op.drop_index("ix_token_transactions_transaction_type", table_name="token_transactions")
    op.drop_index("ix_token_transactions_user_id", table_name="token_transactions")
    op.drop_table("token_transactions")
    op.drop_index("ix_user_tokens_user_id", table_name="user_tokens")
    op.drop_table("user_tokens")
