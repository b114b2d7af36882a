"""Add per-job audit events."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261001_0002"
down_revision = "20261001_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "report_job_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("status_from", sa.String(), nullable=True),
        sa.Column("status_to", sa.String(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["job_id"], ["report_jobs.job_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_report_job_events_job_id", "report_job_events", ["job_id"])
    op.create_index("ix_report_job_events_event_type", "report_job_events", ["event_type"])
    op.create_index(
        "idx_report_job_events_job_time",
        "report_job_events",
        ["job_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_report_job_events_job_time", table_name="report_job_events")
    op.drop_index("ix_report_job_events_event_type", table_name="report_job_events")
    op.drop_index("ix_report_job_events_job_id", table_name="report_job_events")
    op.drop_table("report_job_events")
