"""Create applications table.

Revision ID: 0001_applications
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "0001_applications"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "applications",
        sa.Column(
            "id",
            UUID(),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("application_id", sa.Text(), nullable=False, unique=True),
        sa.Column("organization_name", sa.Text(), nullable=True),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("mobile", sa.Text(), nullable=True),
        sa.Column("project_title", sa.Text(), nullable=True),
        sa.Column(
            "form_data",
            JSONB(),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("current_step", sa.Integer(), server_default="1", nullable=False),
        sa.Column(
            "completed_steps",
            JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column(
            "application_status", sa.Text(), server_default="draft", nullable=False
        ),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
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
        sa.CheckConstraint(
            "application_status IN ('draft','submitted')",
            name="applications_status_check",
        ),
        sa.CheckConstraint(
            "current_step BETWEEN 1 AND 9",
            name="applications_current_step_check",
        ),
    )
    op.create_index("idx_applications_status", "applications", ["application_status"])
    op.create_index("idx_applications_created", "applications", ["created_at"])


def downgrade() -> None:
    op.drop_index("idx_applications_created", table_name="applications")
    op.drop_index("idx_applications_status", table_name="applications")
    op.drop_table("applications")
