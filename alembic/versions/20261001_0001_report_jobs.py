"""Create the owner report job queue table."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261001_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "report_jobs",
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("organization_id", sa.String(), nullable=True),
        sa.Column("project_ref", sa.String(), nullable=False),
        sa.Column("project_name", sa.String(), nullable=False),
        sa.Column("external_project_id", sa.String(), nullable=True),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("artifact_path", sa.String(), nullable=True),
        sa.Column("worker_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("job_id"),
    )
    op.create_index("ix_report_jobs_organization_id", "report_jobs", ["organization_id"])
    op.create_index("ix_report_jobs_project_ref", "report_jobs", ["project_ref"])
    op.create_index("ix_report_jobs_status", "report_jobs", ["status"])
    op.create_index("ix_report_jobs_worker_id", "report_jobs", ["worker_id"])
    op.create_index("idx_report_jobs_queue", "report_jobs", ["status", "created_at", "job_id"])
    op.create_index(
        "idx_report_jobs_retention",
        "report_jobs",
        ["status", "completed_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_report_jobs_retention", table_name="report_jobs")
    op.drop_index("idx_report_jobs_queue", table_name="report_jobs")
    op.drop_index("ix_report_jobs_worker_id", table_name="report_jobs")
    op.drop_index("ix_report_jobs_status", table_name="report_jobs")
    op.drop_index("ix_report_jobs_project_ref", table_name="report_jobs")
    op.drop_index("ix_report_jobs_organization_id", table_name="report_jobs")
    op.drop_table("report_jobs")
