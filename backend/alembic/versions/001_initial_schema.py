"""Initial schema: classes and applications with indexes and constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Classes table
    op.create_table(
        "classes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=False, server_default=sa.text("''")),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("host_id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("capacity > 0", name="check_class_capacity_positive"),
        sa.CheckConstraint("start_at < end_at", name="check_class_schedule_order"),
    )
    op.create_index("ix_classes_host_id", "classes", ["host_id"])
    # Default listing is "upcoming classes by start time"
    op.create_index("ix_classes_start_at", "classes", ["start_at"])
    # Hiding expired classes filters on end_at
    op.create_index("ix_classes_end_at", "classes", ["end_at"])

    # Applications table
    op.create_table(
        "applications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column(
            "class_id",
            sa.Uuid(),
            sa.ForeignKey("classes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        # One application per user per class, enforced even under concurrent inserts
        sa.UniqueConstraint("user_id", "class_id", name="uq_user_class_application"),
    )
    # Covers both the occupancy COUNT inside the admission transaction and the
    # roster listing ordered by applied_at
    op.create_index("ix_applications_class_applied", "applications", ["class_id", "applied_at"])
    op.create_index("ix_applications_user_applied", "applications", ["user_id", "applied_at"])


def downgrade() -> None:
    op.drop_table("applications")
    op.drop_table("classes")
