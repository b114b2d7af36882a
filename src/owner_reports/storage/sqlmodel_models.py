"""SQLModel ORM tables for the report job queue."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Text
from sqlmodel import Field, SQLModel


class ReportJob(SQLModel, table=True):
    __tablename__ = "report_jobs"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_report_jobs_queue", "status", "created_at", "job_id"),
        Index("idx_report_jobs_retention", "status", "completed_at"),
    )

    job_id: str = Field(primary_key=True)
    organization_id: str | None = Field(default=None, index=True)
    project_ref: str = Field(index=True)
    project_name: str
    external_project_id: str | None = None
    period_start: date = Field(sa_column=Column(Date, nullable=False))
    period_end: date = Field(sa_column=Column(Date, nullable=False))
    status: str = Field(index=True)
    error_message: str | None = Field(default=None, sa_column=Column(Text))
    artifact_path: str | None = None
    worker_id: str | None = Field(default=None, index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ReportJobEvent(SQLModel, table=True):
    __tablename__ = "report_job_events"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_report_job_events_job_time", "job_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    job_id: str = Field(
        sa_column=Column(
            ForeignKey("report_jobs.job_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    event_type: str = Field(index=True)
    status_from: str | None = None
    status_to: str | None = None
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
