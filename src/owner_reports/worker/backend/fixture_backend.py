"""Offline collaborators that read project data from a fixtures directory.

Layout, one directory per external project id::

    <fixtures_dir>/<project_id>/notes.json      [{"id", "date", "comment", "author"}]
    <fixtures_dir>/<project_id>/images.json     [{"id", "log_date", "created_at",
                                                  "description", "size", "filename"}]
    <fixtures_dir>/<project_id>/lookahead.json  {"label", "tasks": [...]}  (optional)
    <fixtures_dir>/<project_id>/images/<filename>

The AI collaborators are deterministic heuristics, and rendering writes JSON
slide files packed into a zip document, so a full pipeline run needs neither
network access nor credentials.
"""

from __future__ import annotations

import json
import logging
import shutil
import zipfile
from collections import Counter
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from owner_reports.worker.candidates import normalize_image_date
from owner_reports.worker.collaborators import ArtifactStore, PipelineContext
from owner_reports.worker.errors import CollaboratorError, CollaboratorNotFound
from owner_reports.worker.models import (
    CandidateImage,
    LookaheadSlideData,
    LookaheadTask,
    Note,
    PhotoDaySuggestion,
    RenderedSlide,
    ReportImage,
    ReportPeriod,
    SlideDescriptor,
    SummaryResult,
)

logger = logging.getLogger(__name__)

MAX_CAPTION_CHARS = 80


class _FixtureProjects:
    def __init__(self, root: Path) -> None:
        self.root = root

    def project_dir(self, project_ref: str) -> Path:
        path = self.root / project_ref
        if not path.is_dir():
            raise CollaboratorNotFound(
                f"No fixtures for project {project_ref!r}",
                collaborator="fixtures",
            )
        return path

    def load(self, project_ref: str, name: str, *, required: bool = True) -> Any:
        path = self.project_dir(project_ref) / name
        if not path.exists():
            if required:
                raise CollaboratorNotFound(
                    f"{name} missing for project {project_ref!r}",
                    collaborator="fixtures",
                )
            return None
        try:
            return json.loads(path.read_text("utf-8"))
        except (OSError, json.JSONDecodeError) as error:
            raise CollaboratorError(
                f"Malformed fixture {path}: {error}",
                collaborator="fixtures",
            ) from error


class FixtureNotesProvider:
    def __init__(self, root: Path) -> None:
        self._projects = _FixtureProjects(root)

    def fetch(self, project_ref: str, period: ReportPeriod) -> list[Note]:
        notes: list[Note] = []
        for raw in _as_list(self._projects.load(project_ref, "notes.json"), "notes.json"):
            day = normalize_image_date(raw.get("date"), raw.get("created_at"))
            if day is None or not period.contains(day):
                continue
            notes.append(
                Note(
                    note_id=int(raw["id"]),
                    day=day,
                    comment=str(raw.get("comment") or ""),
                    author=raw.get("author"),
                ),
            )
        return notes


class FixtureImageProvider:
    def __init__(self, root: Path) -> None:
        self._projects = _FixtureProjects(root)

    def fetch(self, project_ref: str, period: ReportPeriod) -> list[CandidateImage]:
        images: list[CandidateImage] = []
        for raw in _as_list(self._projects.load(project_ref, "images.json"), "images.json"):
            taken_on = normalize_image_date(raw.get("log_date"), raw.get("created_at"))
            if taken_on is not None and not period.contains(taken_on):
                continue
            images.append(
                CandidateImage(
                    image_id=int(raw["id"]),
                    taken_on=taken_on,
                    description=raw.get("description"),
                    size_bytes=raw.get("size"),
                    filename=raw.get("filename"),
                ),
            )
        return images


class FixtureImageDownloader:
    def __init__(self, root: Path) -> None:
        self._projects = _FixtureProjects(root)

    def download(self, project_ref: str, image: ReportImage, destination: Path) -> Path:
        if not image.filename:
            raise CollaboratorError(
                f"Image {image.image_id} has no filename",
                collaborator="image_downloader",
            )
        source = self._projects.project_dir(project_ref) / "images" / image.filename
        try:
            shutil.copyfile(source, destination)
        except OSError as error:
            raise CollaboratorError(
                f"Failed to copy image {image.image_id}: {error}",
                collaborator="image_downloader",
            ) from error
        return destination


class FixtureLookaheadProvider:
    def __init__(self, root: Path) -> None:
        self._projects = _FixtureProjects(root)

    def most_recent(self, project_ref: str) -> LookaheadSlideData | None:
        raw = self._projects.load(project_ref, "lookahead.json", required=False)
        if not raw:
            return None
        return LookaheadSlideData(
            label=str(raw.get("label") or "3-Week Lookahead"),
            tasks=[
                LookaheadTask(
                    name=str(task.get("name") or ""),
                    start=str(task.get("start") or ""),
                    finish=str(task.get("finish") or ""),
                    is_subtask=bool(task.get("is_subtask", False)),
                )
                for task in raw.get("tasks") or []
            ],
        )


class ExtractiveSummarizer:
    """One bullet per note (first sentence), photo days ranked by note volume."""

    def summarize(
        self,
        project_name: str,
        period: ReportPeriod,
        notes: Sequence[Note],
        max_words: int,
        max_photo_days: int,
    ) -> SummaryResult:
        bullets: list[str] = []
        words_left = max_words
        for note in sorted(notes, key=lambda item: (item.day, item.note_id)):
            sentence = _first_sentence(note.comment)
            words = sentence.split()
            if not words or words_left <= 0:
                continue
            bullets.append(" ".join(words[:words_left]))
            words_left -= len(words)

        counts = Counter(note.day for note in notes)
        busiest = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:max_photo_days]
        photo_days = [
            PhotoDaySuggestion(day=day, reason=f"{count} log entries", priority=rank)
            for rank, (day, count) in enumerate(busiest, start=1)
        ]
        logger.debug(
            "Summarized %d notes for %s (%s) into %d bullets",
            len(notes),
            project_name,
            period.label,
            len(bullets),
        )
        return SummaryResult(summary_bullets=bullets, photo_days=photo_days)


class HeuristicImageRanker:
    """Described images first, then larger files."""

    def select_final(
        self,
        summary: SummaryResult,
        candidates: Sequence[CandidateImage],
        max_images: int,
    ) -> list[int]:
        ranked = sorted(
            candidates,
            key=lambda image: (not image.has_description, -(image.size_bytes or 0)),
        )
        return [image.image_id for image in ranked[:max_images]]


class DescriptionCaptioner:
    """Caption from the image description, else from its file name."""

    def generate(self, images: Sequence[ReportImage], summary: SummaryResult) -> dict[int, str]:
        captions: dict[int, str] = {}
        for image in images:
            text = (image.description or "").strip()
            if not text and image.filename:
                text = Path(image.filename).stem.replace("_", " ").replace("-", " ").strip()
            if text:
                captions[image.image_id] = text[:MAX_CAPTION_CHARS]
        return captions


class JsonSlideRenderer:
    """Writes each slide descriptor as a JSON file."""

    def render(self, slide: SlideDescriptor, output_path: Path) -> Path:
        target = output_path.with_suffix(".json")
        payload: dict[str, Any] = {
            "kind": slide.kind.value,
            "ordinal": slide.ordinal,
            "caption": slide.caption,
            "summary_bullets": slide.summary_bullets,
            "image_id": slide.image_id,
            "image_file": slide.image_path.name if slide.image_path is not None else None,
        }
        if slide.lookahead is not None:
            payload["lookahead"] = {
                "label": slide.lookahead.label,
                "placeholder_message": slide.lookahead.placeholder_message,
                "tasks": [
                    {
                        "name": task.name,
                        "start": task.start,
                        "finish": task.finish,
                        "is_subtask": task.is_subtask,
                    }
                    for task in slide.lookahead.tasks
                ],
            }
        target.write_text(json.dumps(payload, ensure_ascii=False, indent=2), "utf-8")
        return target


class ZipDocumentAssembler:
    """Packs rendered slides, their photos, and a manifest into one archive."""

    def assemble(self, slides: Sequence[RenderedSlide], output_path: Path) -> Path:
        manifest: list[dict[str, Any]] = []
        with zipfile.ZipFile(output_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for slide in slides:
                archive.write(slide.path, arcname=f"slides/{slide.path.name}")
                entry: dict[str, Any] = {
                    "kind": slide.descriptor.kind.value,
                    "slide": f"slides/{slide.path.name}",
                }
                image_path = slide.descriptor.image_path
                if image_path is not None:
                    archive.write(image_path, arcname=f"media/{image_path.name}")
                    entry["media"] = f"media/{image_path.name}"
                manifest.append(entry)
            archive.writestr("manifest.json", json.dumps(manifest, indent=2))
        return output_path


def build_fixture_context(fixtures_dir: Path, artifact_store: ArtifactStore) -> PipelineContext:
    """Wire every fixture collaborator into a pipeline context."""

    return PipelineContext(
        notes=FixtureNotesProvider(fixtures_dir),
        images=FixtureImageProvider(fixtures_dir),
        summarizer=ExtractiveSummarizer(),
        ranker=HeuristicImageRanker(),
        captioner=DescriptionCaptioner(),
        downloader=FixtureImageDownloader(fixtures_dir),
        renderer=JsonSlideRenderer(),
        assembler=ZipDocumentAssembler(),
        artifact_store=artifact_store,
        lookahead=FixtureLookaheadProvider(fixtures_dir),
    )


def _as_list(value: Any, name: str) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        raise CollaboratorError(f"{name} must contain a JSON list", collaborator="fixtures")
    return [item for item in value if isinstance(item, dict)]


def _first_sentence(text: str) -> str:
    stripped = " ".join(text.split())
    for terminator in (". ", "! ", "? "):
        index = stripped.find(terminator)
        if index != -1:
            return stripped[: index + 1]
    return stripped
