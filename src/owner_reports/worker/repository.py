"""Persistent job queue backed by SQLModel + SQLite."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from sqlalchemy import update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from owner_reports.storage.alembic_runner import upgrade_head
from owner_reports.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from owner_reports.storage.sqlmodel_models import ReportJob, ReportJobEvent
from owner_reports.worker.errors import StoreError
from owner_reports.worker.models import (
    ExpiredArtifact,
    JobStatus,
    ReportJobCreate,
    ReportJobDetails,
    ReportJobEventView,
    ReportJobView,
)

logger = logging.getLogger(__name__)


class JobRepository:
    """Queue persistence facade for report jobs."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations up to head."""

        upgrade_head(self.db_path)

    def enqueue(self, payload: ReportJobCreate) -> ReportJobView:
        """Create a pending job."""

        if payload.period_end < payload.period_start:
            raise ValueError(
                f"Report period end {payload.period_end} precedes start {payload.period_start}.",
            )
        now = utc_now()
        job_id = payload.job_id or str(uuid4())
        with Session(self.engine) as session:
            row = ReportJob(
                job_id=job_id,
                organization_id=payload.organization_id,
                project_ref=payload.project_ref,
                project_name=payload.project_name,
                external_project_id=payload.external_project_id,
                period_start=payload.period_start,
                period_end=payload.period_end,
                status=JobStatus.PENDING.value,
                created_at=to_db_datetime(now),
                updated_at=to_db_datetime(now),
            )
            session.add(row)
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="enqueued",
                status_from=None,
                status_to=JobStatus.PENDING,
                details={
                    "project_ref": payload.project_ref,
                    "period_start": payload.period_start.isoformat(),
                    "period_end": payload.period_end.isoformat(),
                },
            )
            session.commit()
            session.refresh(row)
            return _to_job_view(row)

    def claim_next_pending(self, *, worker_id: str) -> ReportJobView | None:
        """Atomically claim the oldest pending job.

        The status guard on the UPDATE is the only lock: when another worker
        claims the candidate first, zero rows change and we move on to the
        next-oldest job.
        """

        while True:
            now = utc_now()
            with Session(self.engine) as session:
                candidate = session.exec(
                    select(ReportJob)
                    .where(ReportJob.status == JobStatus.PENDING.value)
                    .order_by(col(ReportJob.created_at).asc(), col(ReportJob.job_id).asc())
                    .limit(1),
                ).one_or_none()
                if candidate is None:
                    return None

                result = session.exec(
                    sa_update(ReportJob)
                    .where(
                        col(ReportJob.job_id) == candidate.job_id,
                        col(ReportJob.status) == JobStatus.PENDING.value,
                    )
                    .values(
                        status=JobStatus.PROCESSING.value,
                        started_at=to_db_datetime(now),
                        worker_id=worker_id,
                        updated_at=to_db_datetime(now),
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    logger.debug("Lost claim race for job %s", candidate.job_id)
                    continue

                claimed = session.exec(
                    select(ReportJob)
                    .where(ReportJob.job_id == candidate.job_id)
                    .execution_options(populate_existing=True),
                ).one()
                self._add_event(
                    session=session,
                    job_id=claimed.job_id,
                    event_type="claimed",
                    status_from=JobStatus.PENDING,
                    status_to=JobStatus.PROCESSING,
                    details={"worker_id": worker_id},
                )
                session.commit()
                session.refresh(claimed)
                return _to_job_view(claimed)

    def mark_completed(self, *, job_id: str, artifact_path: str) -> None:
        """Mark a processing job as completed; raise StoreError otherwise."""

        now = utc_now()
        try:
            with Session(self.engine) as session:
                result = session.exec(
                    sa_update(ReportJob)
                    .where(
                        col(ReportJob.job_id) == job_id,
                        col(ReportJob.status) == JobStatus.PROCESSING.value,
                    )
                    .values(
                        status=JobStatus.COMPLETED.value,
                        artifact_path=artifact_path,
                        completed_at=to_db_datetime(now),
                        updated_at=to_db_datetime(now),
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    raise StoreError(
                        f"Job {job_id} is not processing; refusing to mark it completed.",
                    )
                self._add_event(
                    session=session,
                    job_id=job_id,
                    event_type="completed",
                    status_from=JobStatus.PROCESSING,
                    status_to=JobStatus.COMPLETED,
                    details={"artifact_path": artifact_path},
                )
                session.commit()
        except SQLAlchemyError as error:
            raise StoreError(f"Failed to mark job {job_id} completed: {error}") from error

    def mark_failed(
        self,
        *,
        job_id: str,
        message: str,
        details: dict[str, object] | None = None,
    ) -> bool:
        """Mark a processing job as failed.

        Never raises for write problems: they are logged and False is returned,
        leaving the job in its last consistent status for manual reconciliation.
        """

        now = utc_now()
        try:
            with Session(self.engine) as session:
                result = session.exec(
                    sa_update(ReportJob)
                    .where(
                        col(ReportJob.job_id) == job_id,
                        col(ReportJob.status) == JobStatus.PROCESSING.value,
                    )
                    .values(
                        status=JobStatus.FAILED.value,
                        error_message=message,
                        completed_at=to_db_datetime(now),
                        updated_at=to_db_datetime(now),
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    logger.error("Cannot mark job %s failed: job is not processing", job_id)
                    return False
                self._add_event(
                    session=session,
                    job_id=job_id,
                    event_type="failed",
                    status_from=JobStatus.PROCESSING,
                    status_to=JobStatus.FAILED,
                    details={"error_message": message, **(details or {})},
                )
                session.commit()
                return True
        except SQLAlchemyError:
            logger.exception("Failed to write failed status for job %s", job_id)
            return False

    def list_expired_completed(self, *, older_than: datetime) -> list[ExpiredArtifact]:
        """Completed jobs with an artifact and `completed_at` strictly before `older_than`."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(ReportJob)
                .where(
                    ReportJob.status == JobStatus.COMPLETED.value,
                    col(ReportJob.artifact_path).is_not(None),
                    col(ReportJob.completed_at) < to_db_datetime(older_than),
                )
                .order_by(col(ReportJob.completed_at).asc(), col(ReportJob.job_id).asc()),
            ).all()
        return [
            ExpiredArtifact(job_id=row.job_id, artifact_path=row.artifact_path)
            for row in rows
            if row.artifact_path is not None
        ]

    def clear_artifact_path(self, *, job_id: str) -> bool:
        """Forget a purged artifact; status and history are kept."""

        now = utc_now()
        try:
            with Session(self.engine) as session:
                row = session.exec(
                    select(ReportJob).where(ReportJob.job_id == job_id),
                ).one_or_none()
                if row is None or row.artifact_path is None:
                    return False
                previous_path = row.artifact_path
                result = session.exec(
                    sa_update(ReportJob)
                    .where(
                        col(ReportJob.job_id) == job_id,
                        col(ReportJob.artifact_path) == previous_path,
                    )
                    .values(
                        artifact_path=None,
                        updated_at=to_db_datetime(now),
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    return False
                status = JobStatus(row.status)
                self._add_event(
                    session=session,
                    job_id=job_id,
                    event_type="artifact_purged",
                    status_from=status,
                    status_to=status,
                    details={"artifact_path": previous_path},
                )
                session.commit()
                return True
        except SQLAlchemyError as error:
            raise StoreError(f"Failed to clear artifact path for job {job_id}: {error}") from error

    def get_job(self, *, job_id: str) -> ReportJobView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(ReportJob).where(ReportJob.job_id == job_id),
            ).one_or_none()
        return _to_job_view(row) if row is not None else None

    def list_jobs(
        self,
        *,
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> list[ReportJobView]:
        """List recent jobs, optionally filtered by status."""

        with Session(self.engine) as session:
            statement = (
                select(ReportJob)
                .order_by(col(ReportJob.created_at).desc(), col(ReportJob.job_id).desc())
                .limit(limit)
            )
            if status is not None:
                statement = statement.where(ReportJob.status == status.value)
            rows = session.exec(statement).all()
        return [_to_job_view(row) for row in rows]

    def get_job_details(self, *, job_id: str) -> ReportJobDetails | None:
        """Return job details with event stream."""

        with Session(self.engine) as session:
            job = session.exec(
                select(ReportJob).where(ReportJob.job_id == job_id),
            ).one_or_none()
            if job is None:
                return None

            event_rows = session.exec(
                select(ReportJobEvent)
                .where(ReportJobEvent.job_id == job_id)
                .order_by(col(ReportJobEvent.created_at).asc(), col(ReportJobEvent.id).asc()),
            ).all()

        events: list[ReportJobEventView] = []
        for row in event_rows:
            details = {}
            if row.details_json:
                parsed = json.loads(row.details_json)
                if isinstance(parsed, dict):
                    details = parsed
            events.append(
                ReportJobEventView(
                    event_id=row.id or 0,
                    job_id=row.job_id,
                    event_type=row.event_type,
                    status_from=JobStatus(row.status_from) if row.status_from else None,
                    status_to=JobStatus(row.status_to) if row.status_to else None,
                    created_at=to_utc_aware_datetime(row.created_at),
                    details=details,
                ),
            )

        return ReportJobDetails(job=_to_job_view(job), events=events)

    def _add_event(  # noqa: PLR0913
        self,
        *,
        session: Session,
        job_id: str,
        event_type: str,
        status_from: JobStatus | None,
        status_to: JobStatus | None,
        details: dict[str, object],
    ) -> None:
        session.add(
            ReportJobEvent(
                job_id=job_id,
                event_type=event_type,
                status_from=status_from.value if status_from is not None else None,
                status_to=status_to.value if status_to is not None else None,
                details_json=json.dumps(details, ensure_ascii=False, sort_keys=True)
                if details
                else None,
                created_at=to_db_datetime(utc_now()),
            ),
        )


def _to_job_view(row: ReportJob) -> ReportJobView:
    return ReportJobView(
        job_id=row.job_id,
        organization_id=row.organization_id,
        project_ref=row.project_ref,
        project_name=row.project_name,
        external_project_id=row.external_project_id,
        period_start=row.period_start,
        period_end=row.period_end,
        status=JobStatus(row.status),
        error_message=row.error_message,
        artifact_path=row.artifact_path,
        worker_id=row.worker_id,
        created_at=to_utc_aware_datetime(row.created_at),
        started_at=to_utc_aware_datetime(row.started_at) if row.started_at is not None else None,
        completed_at=(
            to_utc_aware_datetime(row.completed_at) if row.completed_at is not None else None
        ),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
