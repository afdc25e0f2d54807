"""Initial schema: user profiles, routines, routine products, step completions

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # User profiles (timezone projection)
    op.create_table(
        "user_profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), unique=True, nullable=True),
        sa.Column("timezone", sa.String(64), server_default="Europe/London", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Routines
    op.create_table(
        "skincare_routines",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_profile_id",
            sa.String(36),
            sa.ForeignKey("user_profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(20), server_default="draft", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_skincare_routines_user_profile_id", "skincare_routines", ["user_profile_id"])

    # Routine products
    op.create_table(
        "skincare_routine_products",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "routine_id",
            sa.String(36),
            sa.ForeignKey("skincare_routines.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_profile_id",
            sa.String(36),
            sa.ForeignKey("user_profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("routine_step", sa.Text(), nullable=False),
        sa.Column("product_name", sa.Text(), nullable=False),
        sa.Column("instructions", sa.Text(), nullable=True),
        sa.Column("frequency", sa.String(20), nullable=False),
        sa.Column("days", sa.JSON(), nullable=True),
        sa.Column("time_of_day", sa.String(10), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "routine_id", "time_of_day", "order",
            name="uq_routine_product_routine_time_order",
        ),
    )
    op.create_index("ix_skincare_routine_products_routine_id", "skincare_routine_products", ["routine_id"])
    op.create_index(
        "ix_skincare_routine_products_user_profile_id", "skincare_routine_products", ["user_profile_id"]
    )

    # Scheduled step completions
    op.create_table(
        "routine_step_completions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "routine_product_id",
            sa.String(36),
            sa.ForeignKey("skincare_routine_products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_profile_id",
            sa.String(36),
            sa.ForeignKey("user_profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_time_of_day", sa.String(10), nullable=False),
        sa.Column("on_time_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("grace_period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(10), server_default="pending", nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "routine_product_id", "scheduled_date",
            name="uq_routine_step_completion_schedule",
        ),
        sa.CheckConstraint(
            "grace_period_end > on_time_deadline",
            name="ck_routine_step_completion_grace_after_deadline",
        ),
    )
    op.create_index(
        "ix_routine_step_completions_user_date",
        "routine_step_completions",
        ["user_profile_id", "scheduled_date"],
    )
    op.create_index(
        "ix_routine_step_completions_status_grace",
        "routine_step_completions",
        ["status", "grace_period_end"],
    )
    op.create_index(
        "ix_routine_step_completions_product", "routine_step_completions", ["routine_product_id"]
    )


def downgrade() -> None:
    op.drop_table("routine_step_completions")
    op.drop_table("skincare_routine_products")
    op.drop_table("skincare_routines")
    op.drop_table("user_profiles")
