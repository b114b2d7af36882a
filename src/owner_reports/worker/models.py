"""Domain models for the report job queue and pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any


class JobStatus(str, Enum):
    """Durable job lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {JobStatus.COMPLETED, JobStatus.FAILED}


class FailureClass(str, Enum):
    """Normalized failure classes recorded with failed runs."""

    VALIDATION = "validation"
    COLLABORATOR = "collaborator"
    INTERNAL = "internal"


@dataclass(slots=True, frozen=True)
class ReportPeriod:
    """Inclusive date range a report covers."""

    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @property
    def label(self) -> str:
        return f"{self.start.isoformat()}_{self.end.isoformat()}"


@dataclass(slots=True)
class ReportJobCreate:
    """Input payload for enqueuing a report job."""

    project_ref: str
    project_name: str
    period_start: date
    period_end: date
    external_project_id: str | None = None
    organization_id: str | None = None
    job_id: str | None = None


@dataclass(slots=True)
class ReportJobView:
    """Readable job view for the scheduler, pipeline, and CLI."""

    job_id: str
    organization_id: str | None
    project_ref: str
    project_name: str
    external_project_id: str | None
    period_start: date
    period_end: date
    status: JobStatus
    error_message: str | None
    artifact_path: str | None
    worker_id: str | None
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    updated_at: datetime

    @property
    def period(self) -> ReportPeriod:
        return ReportPeriod(start=self.period_start, end=self.period_end)


@dataclass(slots=True)
class ReportJobEventView:
    """Job event entry for the audit trail."""

    event_id: int
    job_id: str
    event_type: str
    status_from: JobStatus | None
    status_to: JobStatus | None
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ReportJobDetails:
    """Job details with event stream."""

    job: ReportJobView
    events: list[ReportJobEventView]


@dataclass(slots=True, frozen=True)
class ExpiredArtifact:
    """Completed job whose artifact is past the retention window."""

    job_id: str
    artifact_path: str


@dataclass(slots=True)
class Note:
    """One daily log note."""

    note_id: int
    day: date
    comment: str
    author: str | None = None


@dataclass(slots=True)
class CandidateImage:
    """Image fetched for a period; `taken_on` is None when no date could be resolved."""

    image_id: int
    taken_on: date | None
    description: str | None = None
    size_bytes: int | None = None
    filename: str | None = None

    @property
    def has_description(self) -> bool:
        return bool(self.description and self.description.strip())


@dataclass(slots=True)
class PhotoDaySuggestion:
    """A visually significant day; priority 1 is highest, None sorts last."""

    day: date
    reason: str | None = None
    priority: int | None = None


@dataclass(slots=True)
class SummaryResult:
    """Summarizer output."""

    summary_bullets: list[str]
    photo_days: list[PhotoDaySuggestion] = field(default_factory=list)


@dataclass(slots=True)
class ReportImage:
    """Image chosen for the final report."""

    image_id: int
    day: date
    description: str | None = None
    filename: str | None = None


@dataclass(slots=True)
class ReportSpec:
    """Contract handed from the selection stages to rendering."""

    project_ref: str
    project_name: str
    period: ReportPeriod
    summary_bullets: list[str]
    photo_days: list[PhotoDaySuggestion]
    images: list[ReportImage]


class SlideKind(str, Enum):
    SUMMARY = "summary"
    PHOTO = "photo"
    LOOKAHEAD = "lookahead"
    CLOSING = "closing"


@dataclass(slots=True)
class LookaheadTask:
    name: str
    start: str = ""
    finish: str = ""
    is_subtask: bool = False


@dataclass(slots=True)
class LookaheadSlideData:
    """Schedule lookahead shown near the end of the deck."""

    label: str
    tasks: list[LookaheadTask] = field(default_factory=list)
    placeholder_message: str | None = None


@dataclass(slots=True)
class SlideDescriptor:
    """One slide to render, in deck order."""

    kind: SlideKind
    ordinal: int
    caption: str | None = None
    summary_bullets: list[str] = field(default_factory=list)
    image_path: Path | None = None
    image_id: int | None = None
    lookahead: LookaheadSlideData | None = None

    @property
    def file_stem(self) -> str:
        suffix = "" if self.kind is SlideKind.PHOTO else f"_{self.kind.value}"
        return f"slide_{self.ordinal:02d}{suffix}"


@dataclass(slots=True)
class RenderedSlide:
    """Slide descriptor together with its rendered file."""

    descriptor: SlideDescriptor
    path: Path
