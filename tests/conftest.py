"""Shared test fixtures."""

from __future__ import annotations

import json
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest

from owner_reports.worker.collaborators import PipelineContext
from owner_reports.worker.errors import CollaboratorError
from owner_reports.worker.models import (
    CandidateImage,
    LookaheadSlideData,
    Note,
    PhotoDaySuggestion,
    RenderedSlide,
    ReportImage,
    ReportJobCreate,
    ReportJobView,
    ReportPeriod,
    SlideDescriptor,
    SummaryResult,
)
from owner_reports.worker.repository import JobRepository

PERIOD = ReportPeriod(start=date(2026, 3, 2), end=date(2026, 3, 8))


class FrozenClock:
    """Controllable replacement for `utc_now`."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[JobRepository]:
    repo = JobRepository(tmp_path / "jobs.db")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def frozen_clock(monkeypatch: pytest.MonkeyPatch) -> FrozenClock:
    clock = FrozenClock(datetime(2026, 3, 9, 12, 0, tzinfo=UTC))
    monkeypatch.setattr("owner_reports.worker.repository.utc_now", clock)
    return clock


def make_job_payload(**overrides: object) -> ReportJobCreate:
    values: dict[str, object] = {
        "project_ref": "proj-ref-1",
        "project_name": "Harbor View Tower",
        "period_start": PERIOD.start,
        "period_end": PERIOD.end,
        "external_project_id": "ext-42",
    }
    values.update(overrides)
    return ReportJobCreate(**values)  # type: ignore[arg-type]


def claim_job(repository: JobRepository, **overrides: object) -> ReportJobView:
    """Enqueue a job and claim it so it is processing."""

    enqueued = repository.enqueue(make_job_payload(**overrides))
    claimed = repository.claim_next_pending(worker_id="test-worker")
    assert claimed is not None
    assert claimed.job_id == enqueued.job_id
    return claimed


def make_notes(count: int, *, start: date = PERIOD.start) -> list[Note]:
    return [
        Note(
            note_id=index + 1,
            day=start + timedelta(days=index % 7),
            comment=f"Crew poured slab section {index + 1}. Inspection passed.",
        )
        for index in range(count)
    ]


def make_images(count: int, *, start: date = PERIOD.start) -> list[CandidateImage]:
    return [
        CandidateImage(
            image_id=100 + index,
            taken_on=start + timedelta(days=index % 7),
            description=f"Progress photo {index}" if index % 2 == 0 else None,
            size_bytes=1000 + index,
            filename=f"photo_{index}.jpg",
        )
        for index in range(count)
    ]


class FakeNotes:
    def __init__(self, notes: list[Note]) -> None:
        self.notes = notes
        self.calls = 0
        self.error: Exception | None = None

    def fetch(self, project_ref: str, period: ReportPeriod) -> list[Note]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.notes)


class FakeImages:
    def __init__(self, images: list[CandidateImage]) -> None:
        self.images = images
        self.calls = 0
        self.error: Exception | None = None

    def fetch(self, project_ref: str, period: ReportPeriod) -> list[CandidateImage]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.images)


class FakeSummarizer:
    def __init__(self) -> None:
        self.calls = 0
        self.error: Exception | None = None
        self.photo_days = [PhotoDaySuggestion(day=PERIOD.start, priority=1)]

    def summarize(
        self,
        project_name: str,
        period: ReportPeriod,
        notes: Sequence[Note],
        max_words: int,
        max_photo_days: int,
    ) -> SummaryResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return SummaryResult(
            summary_bullets=[f"{len(notes)} log entries reviewed"],
            photo_days=list(self.photo_days),
        )


class FakeRanker:
    def __init__(self) -> None:
        self.calls = 0
        self.ranked_ids: list[int] | None = None

    def select_final(
        self,
        summary: SummaryResult,
        candidates: Sequence[CandidateImage],
        max_images: int,
    ) -> list[int]:
        self.calls += 1
        if self.ranked_ids is not None:
            return list(self.ranked_ids)
        return [candidate.image_id for candidate in candidates][:max_images]


class FakeCaptioner:
    def __init__(self) -> None:
        self.calls = 0
        self.captions: dict[int, str] | None = None

    def generate(self, images: Sequence[ReportImage], summary: SummaryResult) -> dict[int, str]:
        self.calls += 1
        if self.captions is not None:
            return dict(self.captions)
        return {image.image_id: f"Caption {image.image_id}" for image in images}


class FakeDownloader:
    def __init__(self) -> None:
        self.failing_ids: set[int] = set()

    def download(self, project_ref: str, image: ReportImage, destination: Path) -> Path:
        if image.image_id in self.failing_ids:
            raise CollaboratorError("timeout", collaborator="image_downloader")
        destination.write_bytes(f"image-{image.image_id}".encode())
        return destination


class FakeRenderer:
    def __init__(self) -> None:
        self.rendered: list[SlideDescriptor] = []

    def render(self, slide: SlideDescriptor, output_path: Path) -> Path:
        self.rendered.append(slide)
        target = output_path.with_suffix(".txt")
        target.write_text(f"{slide.kind.value}:{slide.caption or ''}", "utf-8")
        return target


class FakeAssembler:
    def __init__(self) -> None:
        self.calls = 0

    def assemble(self, slides: Sequence[RenderedSlide], output_path: Path) -> Path:
        self.calls += 1
        output_path.write_bytes(b"\n".join(slide.path.read_bytes() for slide in slides))
        return output_path


class FakeArtifactStore:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.failing_deletes: set[str] = set()
        self.upload_result: str | None = None

    def upload(self, data: bytes, key: str) -> str:
        self.objects[key] = data
        return key if self.upload_result is None else self.upload_result

    def delete(self, storage_path: str) -> None:
        if storage_path in self.failing_deletes:
            raise CollaboratorError("storage unavailable", collaborator="artifact_store")
        self.objects.pop(storage_path, None)
        self.deleted.append(storage_path)


class FakeLookahead:
    def __init__(self) -> None:
        self.result: LookaheadSlideData | None = None
        self.error: Exception | None = None

    def most_recent(self, project_ref: str) -> LookaheadSlideData | None:
        if self.error is not None:
            raise self.error
        return self.result


@dataclass(slots=True)
class FakeBackend:
    notes: FakeNotes = field(default_factory=lambda: FakeNotes(make_notes(6)))
    images: FakeImages = field(default_factory=lambda: FakeImages(make_images(8)))
    summarizer: FakeSummarizer = field(default_factory=FakeSummarizer)
    ranker: FakeRanker = field(default_factory=FakeRanker)
    captioner: FakeCaptioner = field(default_factory=FakeCaptioner)
    downloader: FakeDownloader = field(default_factory=FakeDownloader)
    renderer: FakeRenderer = field(default_factory=FakeRenderer)
    assembler: FakeAssembler = field(default_factory=FakeAssembler)
    artifact_store: FakeArtifactStore = field(default_factory=FakeArtifactStore)
    lookahead: FakeLookahead = field(default_factory=FakeLookahead)

    def context(self) -> PipelineContext:
        return PipelineContext(
            notes=self.notes,
            images=self.images,
            summarizer=self.summarizer,
            ranker=self.ranker,
            captioner=self.captioner,
            downloader=self.downloader,
            renderer=self.renderer,
            assembler=self.assembler,
            artifact_store=self.artifact_store,
            lookahead=self.lookahead,
        )


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


def write_fixture_project(
    root: Path,
    project_id: str = "ext-42",
    *,
    notes: int = 6,
    images: int = 8,
    lookahead: dict[str, object] | None = None,
) -> Path:
    """Lay out one project in the fixture backend's directory format."""

    project_dir = root / project_id
    (project_dir / "images").mkdir(parents=True, exist_ok=True)
    note_rows = [
        {
            "id": index + 1,
            "date": (PERIOD.start + timedelta(days=index % 7)).isoformat(),
            "comment": f"Crew poured slab section {index + 1}. Inspection passed.",
            "author": "Site Lead",
        }
        for index in range(notes)
    ]
    image_rows = []
    for index in range(images):
        filename = f"photo_{index}.jpg"
        (project_dir / "images" / filename).write_bytes(f"jpeg-{index}".encode())
        image_rows.append(
            {
                "id": 100 + index,
                "log_date": (PERIOD.start + timedelta(days=index % 7)).isoformat(),
                "created_at": None,
                "description": f"Progress photo {index}" if index % 2 == 0 else None,
                "size": 1000 + index,
                "filename": filename,
            },
        )
    (project_dir / "notes.json").write_text(json.dumps(note_rows), "utf-8")
    (project_dir / "images.json").write_text(json.dumps(image_rows), "utf-8")
    if lookahead is not None:
        (project_dir / "lookahead.json").write_text(json.dumps(lookahead), "utf-8")
    return project_dir
