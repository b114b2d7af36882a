"""Controllers for report worker CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path

from owner_reports.config import Settings
from owner_reports.worker.artifact_store import LocalArtifactStore
from owner_reports.worker.backend import build_fixture_context
from owner_reports.worker.models import JobStatus, ReportJobCreate
from owner_reports.worker.pipeline import PipelineOptions, ReportPipeline
from owner_reports.worker.repository import JobRepository
from owner_reports.worker.scheduler import ReportScheduler
from owner_reports.worker.sweeper import RetentionSweeper
from owner_reports.worker.validation import ValidationThresholds


@dataclass(slots=True)
class JobEnqueueCommand:
    """CLI input for report job enqueue."""

    db_path: Path | None
    project_ref: str
    project_name: str
    period_start: date
    period_end: date
    external_project_id: str | None = None
    organization_id: str | None = None


@dataclass(slots=True)
class JobListCommand:
    """CLI input for job listing."""

    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class JobShowCommand:
    """CLI input for one job with its event history."""

    db_path: Path | None
    job_id: str


@dataclass(slots=True)
class WorkerCommand:
    """CLI input for worker execution."""

    db_path: Path | None
    once: bool
    max_iterations: int | None = None
    fixtures_dir: Path | None = None


@dataclass(slots=True)
class SweepCommand:
    """CLI input for a manual retention sweep."""

    db_path: Path | None


class ReportCliController:
    """Controller that maps CLI commands to queue, pipeline and sweep calls."""

    def enqueue(self, command: JobEnqueueCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            job = repository.enqueue(
                ReportJobCreate(
                    project_ref=command.project_ref,
                    project_name=command.project_name,
                    period_start=command.period_start,
                    period_end=command.period_end,
                    external_project_id=command.external_project_id,
                    organization_id=command.organization_id,
                ),
            )
        return [
            f"Enqueued job: {job.job_id}",
            f"Project: {job.project_name} ({job.project_ref})",
            f"Period: {job.period_start.isoformat()} .. {job.period_end.isoformat()}",
            f"Status: {job.status.value}",
        ]

    def list_jobs(self, command: JobListCommand) -> list[str]:
        settings = _settings(command.db_path)
        status_filter = _parse_status(command.status)
        with _repository(settings) as repository:
            jobs = repository.list_jobs(status=status_filter, limit=command.limit)

        lines = [f"Jobs: {len(jobs)}"]
        for job in jobs:
            lines.append(
                f"  {job.job_id} project={job.project_name} status={job.status.value} "
                f"period={job.period.label} created_at={job.created_at.isoformat()}",
            )
        return lines

    def show_job(self, command: JobShowCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            details = repository.get_job_details(job_id=command.job_id)
        if details is None:
            return [f"Job not found: {command.job_id}"]

        job = details.job
        lines = [
            f"Job: {job.job_id}",
            f"Project: {job.project_name} ({job.project_ref})",
            f"External project: {job.external_project_id or '-'}",
            f"Period: {job.period_start.isoformat()} .. {job.period_end.isoformat()}",
            f"Status: {job.status.value}",
            f"Worker: {job.worker_id or '-'}",
            f"Error: {job.error_message or '-'}",
            f"Artifact: {job.artifact_path or '-'}",
            f"Events: {len(details.events)}",
        ]
        for event in details.events:
            lines.append(
                f"  {event.created_at.isoformat()} {event.event_type} "
                f"{event.status_from.value if event.status_from else '-'} -> "
                f"{event.status_to.value if event.status_to else '-'}",
            )
        return lines

    def run_worker(self, command: WorkerCommand) -> list[str]:
        settings = _settings(command.db_path)
        fixtures_dir = command.fixtures_dir or settings.storage.fixtures_dir
        if fixtures_dir is None:
            raise ValueError(
                "No collaborator backend configured: pass --fixtures-dir "
                "or set OWNER_REPORTS_FIXTURES_DIR.",
            )

        artifact_store = LocalArtifactStore(settings.storage.artifact_root)
        with _repository(settings) as repository:
            scheduler = ReportScheduler(
                repository=repository,
                pipeline=ReportPipeline(
                    repository=repository,
                    context=build_fixture_context(fixtures_dir, artifact_store),
                    options=_pipeline_options(settings),
                ),
                sweeper=_sweeper(settings, repository, artifact_store),
                worker_id=settings.scheduler.worker_id,
                poll_interval_seconds=settings.scheduler.poll_interval_seconds,
                sweep_interval_seconds=settings.scheduler.sweep_interval_seconds,
            )
            max_iterations = 1 if command.once else command.max_iterations
            summary = scheduler.run_loop(max_iterations=max_iterations)

        return [
            "Worker summary: "
            f"iterations={summary.iterations} processed={summary.processed} "
            f"completed={summary.completed} failed={summary.failed} "
            f"idle_polls={summary.idle_polls} sweeps={summary.sweeps} "
            f"purged={summary.purged} errors={summary.errors}",
        ]

    def sweep(self, command: SweepCommand) -> list[str]:
        settings = _settings(command.db_path)
        artifact_store = LocalArtifactStore(settings.storage.artifact_root)
        with _repository(settings) as repository:
            summary = _sweeper(settings, repository, artifact_store).sweep()
        return [
            f"Sweep cutoff: {summary.cutoff.isoformat()}",
            f"Expired: {summary.found} purged={summary.purged} failed={summary.failed}",
        ]


def _settings(db_path: Path | None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    return settings


@contextmanager
def _repository(settings: Settings) -> Iterator[JobRepository]:
    repository = JobRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


def _pipeline_options(settings: Settings) -> PipelineOptions:
    pipeline = settings.pipeline
    return PipelineOptions(
        output_dir=pipeline.output_dir,
        max_words=pipeline.max_words,
        max_photo_days=pipeline.max_photo_days,
        max_candidates=pipeline.max_candidates,
        min_candidates=pipeline.min_candidates,
        max_selected_images=pipeline.max_selected_images,
        thresholds=ValidationThresholds(
            min_notes=pipeline.min_notes,
            min_photos=pipeline.min_photos,
        ),
    )


def _sweeper(
    settings: Settings,
    repository: JobRepository,
    artifact_store: LocalArtifactStore,
) -> RetentionSweeper:
    return RetentionSweeper(
        repository=repository,
        artifact_store=artifact_store,
        retention=timedelta(days=settings.scheduler.retention_days),
    )


def _parse_status(value: str | None) -> JobStatus | None:
    if value is None:
        return None
    return JobStatus(value.strip().lower())
