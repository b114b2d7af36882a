"""CLI entrypoint for owner-reports."""

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TypeVar

import rich_click as click

from owner_reports import __version__
from owner_reports.worker.controllers import (
    JobEnqueueCommand,
    JobListCommand,
    JobShowCommand,
    ReportCliController,
    SweepCommand,
    WorkerCommand,
)

click.rich_click.USE_MARKDOWN = True
REPORT_CONTROLLER = ReportCliController()

CommandT = TypeVar("CommandT")

_DATE_TYPE = click.DateTime(formats=["%Y-%m-%d"])


@click.group()
@click.version_option(version=__version__, prog_name="owner-reports")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def owner_reports(log_level: str) -> None:
    """Owner report job worker CLI."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@owner_reports.group()
def jobs() -> None:
    """Report job queue commands."""


@jobs.command("enqueue")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--project-ref", required=True, help="Reference to the source project record.")
@click.option("--project-name", required=True, help="Human readable project name.")
@click.option("--period-start", type=_DATE_TYPE, required=True, help="First day (YYYY-MM-DD).")
@click.option("--period-end", type=_DATE_TYPE, required=True, help="Last day (YYYY-MM-DD).")
@click.option(
    "--external-project-id",
    default=None,
    help="Linked project id in the project-management system.",
)
@click.option("--organization-id", default=None, help="Optional organization scope.")
def jobs_enqueue(  # noqa: PLR0913
    db_path: Path | None,
    project_ref: str,
    project_name: str,
    period_start: datetime,
    period_end: datetime,
    external_project_id: str | None,
    organization_id: str | None,
) -> None:
    """Create a pending report job."""

    _run(
        REPORT_CONTROLLER.enqueue,
        JobEnqueueCommand(
            db_path=db_path,
            project_ref=project_ref,
            project_name=project_name,
            period_start=period_start.date(),
            period_end=period_end.date(),
            external_project_id=external_project_id,
            organization_id=organization_id,
        ),
    )


@jobs.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--status",
    type=click.Choice(["pending", "processing", "completed", "failed"], case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max jobs to print.",
)
def jobs_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List report jobs, newest first."""

    _run(
        REPORT_CONTROLLER.list_jobs,
        JobListCommand(db_path=db_path, status=status, limit=limit),
    )


@jobs.command("show")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--job-id", required=True, help="Job id.")
def jobs_show(db_path: Path | None, job_id: str) -> None:
    """Inspect one job with event history."""

    _run(REPORT_CONTROLLER.show_job, JobShowCommand(db_path=db_path, job_id=job_id))


@owner_reports.command("worker")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--once/--loop",
    default=True,
    show_default=True,
    help="Run one poll iteration or keep polling until stopped.",
)
@click.option(
    "--max-iterations",
    type=click.IntRange(min=1),
    default=None,
    help="Optional cap for poll iterations in loop mode.",
)
@click.option(
    "--fixtures-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory with offline project data for the fixture backend.",
)
def worker(
    db_path: Path | None,
    once: bool,
    max_iterations: int | None,
    fixtures_dir: Path | None,
) -> None:
    """Run the report worker."""

    _run(
        REPORT_CONTROLLER.run_worker,
        WorkerCommand(
            db_path=db_path,
            once=once,
            max_iterations=max_iterations,
            fixtures_dir=fixtures_dir,
        ),
    )


@owner_reports.command("sweep")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def sweep(db_path: Path | None) -> None:
    """Delete artifacts of completed reports past the retention window."""

    _run(REPORT_CONTROLLER.sweep, SweepCommand(db_path=db_path))


def _run(handler: Callable[[CommandT], list[str]], command: CommandT) -> None:
    try:
        lines = handler(command)
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    owner_reports()
