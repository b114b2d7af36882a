from __future__ import annotations

import json
import zipfile
from datetime import date
from pathlib import Path

import allure
import pytest

from conftest import PERIOD, claim_job, make_notes, write_fixture_project
from owner_reports.worker.artifact_store import LocalArtifactStore
from owner_reports.worker.backend import (
    DescriptionCaptioner,
    ExtractiveSummarizer,
    FixtureImageProvider,
    FixtureLookaheadProvider,
    FixtureNotesProvider,
    build_fixture_context,
)
from owner_reports.worker.errors import CollaboratorError, CollaboratorNotFound
from owner_reports.worker.models import JobStatus, Note, ReportImage, SummaryResult
from owner_reports.worker.pipeline import PipelineOptions, ReportPipeline
from owner_reports.worker.repository import JobRepository

pytestmark = [
    allure.epic("Report Worker"),
    allure.feature("Fixture Backend"),
]


def test_notes_provider_filters_to_period(tmp_path: Path) -> None:
    project_dir = write_fixture_project(tmp_path, notes=3)
    rows = json.loads((project_dir / "notes.json").read_text("utf-8"))
    rows.append({"id": 99, "date": "2026-04-01", "comment": "Outside the window."})
    (project_dir / "notes.json").write_text(json.dumps(rows), "utf-8")

    notes = FixtureNotesProvider(tmp_path).fetch("ext-42", PERIOD)

    assert [note.note_id for note in notes] == [1, 2, 3]


def test_image_provider_keeps_undated_images(tmp_path: Path) -> None:
    project_dir = write_fixture_project(tmp_path, images=2)
    rows = json.loads((project_dir / "images.json").read_text("utf-8"))
    rows.append({"id": 500, "log_date": None, "created_at": None, "filename": "x.jpg"})
    (project_dir / "images.json").write_text(json.dumps(rows), "utf-8")

    images = FixtureImageProvider(tmp_path).fetch("ext-42", PERIOD)

    assert [image.image_id for image in images] == [100, 101, 500]
    assert images[-1].taken_on is None


def test_unknown_project_is_not_found(tmp_path: Path) -> None:
    with pytest.raises(CollaboratorNotFound):
        FixtureNotesProvider(tmp_path).fetch("missing", PERIOD)


def test_malformed_fixture_is_a_collaborator_error(tmp_path: Path) -> None:
    project_dir = write_fixture_project(tmp_path)
    (project_dir / "images.json").write_text("{not json", "utf-8")

    with pytest.raises(CollaboratorError) as excinfo:
        FixtureImageProvider(tmp_path).fetch("ext-42", PERIOD)

    assert not isinstance(excinfo.value, CollaboratorNotFound)


def test_lookahead_is_optional(tmp_path: Path) -> None:
    write_fixture_project(tmp_path)

    assert FixtureLookaheadProvider(tmp_path).most_recent("ext-42") is None


def test_summarizer_ranks_busiest_days_and_respects_word_budget() -> None:
    notes = make_notes(3) + [
        Note(note_id=10, day=date(2026, 3, 4), comment="Second entry for Wednesday."),
    ]

    result = ExtractiveSummarizer().summarize("Tower", PERIOD, notes, 8, 2)

    assert result.photo_days[0].day == date(2026, 3, 4)
    assert [suggestion.priority for suggestion in result.photo_days] == [1, 2]
    assert sum(len(bullet.split()) for bullet in result.summary_bullets) <= 8


def test_captioner_uses_description_then_filename() -> None:
    images = [
        ReportImage(image_id=1, day=PERIOD.start, description="x" * 120),
        ReportImage(image_id=2, day=PERIOD.start, filename="east_facade-level3.jpg"),
        ReportImage(image_id=3, day=PERIOD.start),
    ]

    captions = DescriptionCaptioner().generate(images, SummaryResult(summary_bullets=[]))

    assert captions == {1: "x" * 80, 2: "east facade level3"}


def test_fixture_backend_runs_full_pipeline(
    repository: JobRepository,
    tmp_path: Path,
) -> None:
    fixtures = tmp_path / "fixtures"
    write_fixture_project(
        fixtures,
        lookahead={"label": "3-Week Lookahead", "tasks": [{"name": "Glazing"}]},
    )
    store = LocalArtifactStore(tmp_path / "artifacts")
    pipeline = ReportPipeline(
        repository=repository,
        context=build_fixture_context(fixtures, store),
        options=PipelineOptions(output_dir=tmp_path / "output"),
    )
    job = claim_job(repository)

    outcome = pipeline.run(job)

    assert outcome.status is JobStatus.COMPLETED
    assert outcome.artifact_path is not None
    with zipfile.ZipFile(tmp_path / "artifacts" / outcome.artifact_path) as archive:
        manifest = json.loads(archive.read("manifest.json"))
        names = set(archive.namelist())
    kinds = [entry["kind"] for entry in manifest]
    assert kinds[0] == "summary"
    assert kinds[-2:] == ["lookahead", "closing"]
    assert kinds.count("photo") == 8
    assert all(entry["media"] in names for entry in manifest if "media" in entry)
