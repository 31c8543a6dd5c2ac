"""execution tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


execution_quarter = postgresql.ENUM("Q1", "Q2", "Q3", "Q4", name="execution_quarter", create_type=False)


def upgrade() -> None:
    execution_quarter.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "execution_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("facility_id", sa.Integer(), nullable=False),
        sa.Column("reporting_period_id", sa.Integer(), nullable=False),
        sa.Column("quarter", execution_quarter, nullable=False),
        sa.Column("project_type", sa.String(length=32), nullable=False),
        sa.Column("facility_type", sa.String(length=64), nullable=False),
        sa.Column("rollups", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("computed_values", postgresql.JSONB(), nullable=True),
        sa.Column("validation_state", postgresql.JSONB(), nullable=True),
        sa.Column("vat_receivables", postgresql.JSONB(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "project_id",
            "facility_id",
            "reporting_period_id",
            "quarter",
            name="uq_execution_entries_project_facility_period_quarter",
        ),
    )
    op.create_index(
        "ix_execution_entries_project_facility_period",
        "execution_entries",
        ["project_id", "facility_id", "reporting_period_id"],
    )

    op.create_table(
        "execution_activities",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "entry_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("execution_entries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("code", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("section", sa.String(length=1), nullable=True),
        sa.Column("sub_section", sa.String(length=16), nullable=True),
        sa.Column("q1", sa.Numeric(14, 2), nullable=True),
        sa.Column("q2", sa.Numeric(14, 2), nullable=True),
        sa.Column("q3", sa.Numeric(14, 2), nullable=True),
        sa.Column("q4", sa.Numeric(14, 2), nullable=True),
        sa.Column("cumulative_balance", sa.Numeric(14, 2), nullable=True),
        sa.Column("opening_balance", sa.Numeric(14, 2), nullable=True),
        sa.Column("comment", sa.String(length=2000), nullable=True),
        sa.UniqueConstraint("entry_id", "code", name="uq_execution_activities_entry_code"),
    )
    op.create_index("ix_execution_activities_entry_id", "execution_activities", ["entry_id"])


def downgrade() -> None:
    op.drop_index("ix_execution_activities_entry_id", table_name="execution_activities")
    op.drop_table("execution_activities")

    op.drop_index("ix_execution_entries_project_facility_period", table_name="execution_entries")
    op.drop_table("execution_entries")

    execution_quarter.drop(op.get_bind(), checkfirst=True)
