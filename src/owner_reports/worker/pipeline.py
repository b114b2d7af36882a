"""Report pipeline: ordered stages from raw project data to an uploaded deck."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

from owner_reports.worker.candidates import select_candidate_images
from owner_reports.worker.collaborators import PipelineContext, ProgressSink, empty_on_not_found
from owner_reports.worker.errors import CollaboratorError, StoreError, ValidationError
from owner_reports.worker.failure_classifier import classify_pipeline_failure
from owner_reports.worker.models import (
    CandidateImage,
    FailureClass,
    JobStatus,
    LookaheadSlideData,
    Note,
    RenderedSlide,
    ReportJobView,
    ReportSpec,
    SlideDescriptor,
    SlideKind,
    SummaryResult,
)
from owner_reports.worker.report_spec import build_report_spec, filter_ranked_ids
from owner_reports.worker.repository import JobRepository
from owner_reports.worker.validation import ValidationThresholds, assert_valid_report_data

logger = logging.getLogger(__name__)

T = TypeVar("T")

STAGE_FETCH_NOTES = "fetch-notes"
STAGE_FETCH_IMAGES = "fetch-images"
STAGE_VALIDATE = "validate"
STAGE_SUMMARIZE = "summarize"
STAGE_SELECT_CANDIDATES = "select-candidates"
STAGE_SELECT_FINAL_IMAGES = "select-final-images"
STAGE_DOWNLOAD_IMAGES = "download-images"
STAGE_GENERATE_CAPTIONS = "generate-captions"
STAGE_RENDER_SLIDES = "render-slides"
STAGE_ASSEMBLE_ARTIFACT = "assemble-artifact"
STAGE_UPLOAD_ARTIFACT = "upload-artifact"

PIPELINE_STAGES: tuple[str, ...] = (
    STAGE_FETCH_NOTES,
    STAGE_FETCH_IMAGES,
    STAGE_VALIDATE,
    STAGE_SUMMARIZE,
    STAGE_SELECT_CANDIDATES,
    STAGE_SELECT_FINAL_IMAGES,
    STAGE_DOWNLOAD_IMAGES,
    STAGE_GENERATE_CAPTIONS,
    STAGE_RENDER_SLIDES,
    STAGE_ASSEMBLE_ARTIFACT,
    STAGE_UPLOAD_ARTIFACT,
)

NOT_LINKED_MESSAGE = (
    "Job is not linked to an external project. Link a project to generate reports."
)
DEFAULT_CAPTION = "Project Progress"
LOOKAHEAD_LABEL = "3-Week Lookahead"
LOOKAHEAD_PLACEHOLDER = (
    "No valid lookahead exists. Create one and place it here, or delete this slide."
)

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


@dataclass(slots=True)
class PipelineOptions:
    """Tunable limits for one pipeline run."""

    output_dir: Path = Path("output")
    max_words: int = 250
    max_photo_days: int = 6
    max_candidates: int = 60
    min_candidates: int = 20
    max_selected_images: int = 20
    thresholds: ValidationThresholds = field(default_factory=ValidationThresholds)


@dataclass(slots=True)
class PipelineRunOutcome:
    """Result of driving one claimed job to a terminal state."""

    job_id: str
    status: JobStatus
    last_stage: str | None
    artifact_path: str | None = None
    error_message: str | None = None
    failure_class: FailureClass | None = None
    notes_count: int = 0
    photos_count: int = 0
    store_write_ok: bool = True


@dataclass(slots=True)
class _RunState:
    job: ReportJobView
    project_id: str
    run_dir: Path
    notes: list[Note] = field(default_factory=list)
    images: list[CandidateImage] = field(default_factory=list)
    summary: SummaryResult | None = None
    candidates: list[CandidateImage] = field(default_factory=list)
    report_spec: ReportSpec | None = None
    downloaded: dict[int, Path] = field(default_factory=dict)
    captions: dict[int, str] = field(default_factory=dict)
    slides: list[RenderedSlide] = field(default_factory=list)
    artifact_file: Path | None = None
    storage_path: str | None = None


_StageHandler = Callable[[_RunState], str]


class ReportPipeline:
    """Runs the fixed stage sequence for a claimed job and records its outcome.

    This is the only place that converts a stage exception into a terminal
    status write, and it performs exactly one such write per run.
    """

    def __init__(
        self,
        *,
        repository: JobRepository,
        context: PipelineContext,
        options: PipelineOptions | None = None,
    ) -> None:
        self.repository = repository
        self.context = context
        self.options = options or PipelineOptions()
        self._stages: tuple[tuple[str, str, _StageHandler], ...] = (
            (STAGE_FETCH_NOTES, "Fetching daily log notes...", self._fetch_notes),
            (STAGE_FETCH_IMAGES, "Fetching images...", self._fetch_images),
            (STAGE_VALIDATE, "Validating report data...", self._validate),
            (STAGE_SUMMARIZE, "Generating AI summary...", self._summarize),
            (STAGE_SELECT_CANDIDATES, "Selecting candidate images...", self._select_candidates),
            (STAGE_SELECT_FINAL_IMAGES, "AI selecting final images...", self._select_final),
            (STAGE_DOWNLOAD_IMAGES, "Downloading images...", self._download_images),
            (STAGE_GENERATE_CAPTIONS, "Generating AI captions...", self._generate_captions),
            (STAGE_RENDER_SLIDES, "Creating slides...", self._render_slides),
            (STAGE_ASSEMBLE_ARTIFACT, "Assembling presentation...", self._assemble),
            (STAGE_UPLOAD_ARTIFACT, "Uploading to storage...", self._upload),
        )

    def run(self, job: ReportJobView, progress: ProgressSink | None = None) -> PipelineRunOutcome:
        """Drive a processing job through every stage to completed or failed."""

        logger.info(
            "Processing report %s (project=%s, period=%s..%s)",
            job.job_id,
            job.project_name,
            job.period_start.isoformat(),
            job.period_end.isoformat(),
        )
        state: _RunState | None = None
        current_stage: str | None = None
        try:
            state = _RunState(
                job=job,
                project_id=_require_linked_project(job),
                run_dir=self.options.output_dir / _run_dir_name(job),
            )
            for name, start_message, handler in self._stages:
                current_stage = name
                self._emit(progress, name, start_message)
                done_message = handler(state)
                self._emit(progress, name, done_message)
        except Exception as error:  # noqa: BLE001
            return self._record_failure(
                job=job,
                state=state,
                stage=current_stage,
                error=error,
            )

        return self._record_success(
            job=job,
            state=_require(state, "run state"),
            stage=current_stage,
        )

    def _record_failure(
        self,
        *,
        job: ReportJobView,
        state: _RunState | None,
        stage: str | None,
        error: Exception,
    ) -> PipelineRunOutcome:
        classification = classify_pipeline_failure(error, stage=stage)
        if classification.failure_class is FailureClass.VALIDATION:
            logger.warning("Report %s rejected at %s: %s", job.job_id, stage, error)
        else:
            logger.exception("Report %s failed at %s", job.job_id, stage, exc_info=error)

        written = self.repository.mark_failed(
            job_id=job.job_id,
            message=classification.user_message,
            details=classification.to_event_details(),
        )
        return PipelineRunOutcome(
            job_id=job.job_id,
            status=JobStatus.FAILED if written else JobStatus.PROCESSING,
            last_stage=stage,
            error_message=classification.user_message,
            failure_class=classification.failure_class,
            notes_count=len(state.notes) if state is not None else 0,
            photos_count=len(state.images) if state is not None else 0,
            store_write_ok=written,
        )

    def _record_success(
        self,
        *,
        job: ReportJobView,
        state: _RunState,
        stage: str | None,
    ) -> PipelineRunOutcome:
        storage_path = _require(state.storage_path, "storage path")
        outcome = PipelineRunOutcome(
            job_id=job.job_id,
            status=JobStatus.COMPLETED,
            last_stage=stage,
            artifact_path=storage_path,
            notes_count=len(state.notes),
            photos_count=len(state.images),
        )
        try:
            self.repository.mark_completed(job_id=job.job_id, artifact_path=storage_path)
        except StoreError:
            logger.exception(
                "Report %s uploaded to %s but the completed status was not recorded",
                job.job_id,
                storage_path,
            )
            outcome.status = JobStatus.PROCESSING
            outcome.store_write_ok = False
            return outcome

        logger.info("Report %s completed: %s", job.job_id, storage_path)
        return outcome

    def _emit(self, progress: ProgressSink | None, stage: str, message: str) -> None:
        logger.info("[%s] %s", stage, message)
        if progress is None:
            return
        try:
            progress(stage, message)
        except Exception:  # noqa: BLE001
            logger.warning("Progress sink raised for stage %s", stage, exc_info=True)

    def _fetch_notes(self, state: _RunState) -> str:
        state.notes = empty_on_not_found(
            lambda: self.context.notes.fetch(state.project_id, state.job.period),
            what=f"Daily log notes for project {state.project_id}",
        )
        return f"Found {len(state.notes)} notes"

    def _fetch_images(self, state: _RunState) -> str:
        state.images = empty_on_not_found(
            lambda: self.context.images.fetch(state.project_id, state.job.period),
            what=f"Images for project {state.project_id}",
        )
        return f"Found {len(state.images)} images"

    def _validate(self, state: _RunState) -> str:
        result = assert_valid_report_data(
            len(state.notes),
            len(state.images),
            self.options.thresholds,
        )
        return f"Valid: {result.notes_count} notes, {result.photos_count} photos"

    def _summarize(self, state: _RunState) -> str:
        summary = self.context.summarizer.summarize(
            state.job.project_name,
            state.job.period,
            state.notes,
            self.options.max_words,
            self.options.max_photo_days,
        )
        state.summary = summary
        return (
            f"Generated {len(summary.summary_bullets)} bullets, "
            f"{len(summary.photo_days)} photo days"
        )

    def _select_candidates(self, state: _RunState) -> str:
        summary = _require(state.summary, "summary")
        state.candidates = select_candidate_images(
            state.images,
            summary.photo_days,
            max_candidates=self.options.max_candidates,
            min_candidates=self.options.min_candidates,
        )
        return f"Selected {len(state.candidates)} candidates"

    def _select_final(self, state: _RunState) -> str:
        summary = _require(state.summary, "summary")
        ranked = self.context.ranker.select_final(
            summary,
            state.candidates,
            self.options.max_selected_images,
        )
        selected_ids = filter_ranked_ids(
            ranked,
            state.candidates,
            max_images=self.options.max_selected_images,
        )
        state.report_spec = build_report_spec(
            job=state.job,
            summary=summary,
            candidates=state.candidates,
            selected_ids=selected_ids,
        )
        return f"AI selected {len(state.report_spec.images)} images"

    def _download_images(self, state: _RunState) -> str:
        report_spec = _require(state.report_spec, "report spec")
        raw_dir = state.run_dir / "raw"
        raw_dir.mkdir(parents=True, exist_ok=True)
        for index, image in enumerate(report_spec.images, start=1):
            extension = _file_extension(image.filename)
            destination = raw_dir / f"{index:02d}_{image.image_id}.{extension}"
            try:
                state.downloaded[image.image_id] = self.context.downloader.download(
                    state.project_id,
                    image,
                    destination,
                )
            except CollaboratorError as error:
                logger.warning("Skipping image %s: download failed (%s)", image.image_id, error)
        return f"Downloaded {len(state.downloaded)} of {len(report_spec.images)} images"

    def _generate_captions(self, state: _RunState) -> str:
        report_spec = _require(state.report_spec, "report spec")
        summary = _require(state.summary, "summary")
        generated = self.context.captioner.generate(report_spec.images, summary)
        captions: dict[int, str] = {}
        fallback = 0
        for image in report_spec.images:
            caption = (generated.get(image.image_id) or "").strip()
            if not caption:
                caption = DEFAULT_CAPTION
                fallback += 1
            captions[image.image_id] = caption
        state.captions = captions
        return f"Generated {len(captions) - fallback} captions ({fallback} fallback)"

    def _render_slides(self, state: _RunState) -> str:
        report_spec = _require(state.report_spec, "report spec")
        slides_dir = state.run_dir / "slides"
        slides_dir.mkdir(parents=True, exist_ok=True)

        descriptors = [
            SlideDescriptor(
                kind=SlideKind.SUMMARY,
                ordinal=0,
                summary_bullets=list(report_spec.summary_bullets),
            ),
        ]
        for index, image in enumerate(report_spec.images, start=1):
            image_path = state.downloaded.get(image.image_id)
            if image_path is None:
                continue
            descriptors.append(
                SlideDescriptor(
                    kind=SlideKind.PHOTO,
                    ordinal=index,
                    caption=state.captions.get(image.image_id, DEFAULT_CAPTION),
                    image_path=image_path,
                    image_id=image.image_id,
                ),
            )
        tail = len(report_spec.images)
        descriptors.append(
            SlideDescriptor(
                kind=SlideKind.LOOKAHEAD,
                ordinal=tail + 1,
                lookahead=self._load_lookahead(state.project_id),
            ),
        )
        descriptors.append(SlideDescriptor(kind=SlideKind.CLOSING, ordinal=tail + 2))

        state.slides = [
            RenderedSlide(
                descriptor=descriptor,
                path=self.context.renderer.render(descriptor, slides_dir / descriptor.file_stem),
            )
            for descriptor in descriptors
        ]
        return f"Rendered {len(state.slides)} slides"

    def _load_lookahead(self, project_id: str) -> LookaheadSlideData:
        provider = self.context.lookahead
        lookahead: LookaheadSlideData | None = None
        if provider is not None:
            try:
                lookahead = provider.most_recent(project_id)
            except Exception:  # noqa: BLE001
                logger.warning(
                    "Lookahead fetch failed for project %s; using placeholder",
                    project_id,
                    exc_info=True,
                )
        if lookahead is not None:
            return lookahead
        return LookaheadSlideData(label=LOOKAHEAD_LABEL, placeholder_message=LOOKAHEAD_PLACEHOLDER)

    def _assemble(self, state: _RunState) -> str:
        filename = f"{_safe_name(state.job.project_name)}_{state.job.period.label}_report.pptx"
        state.artifact_file = self.context.assembler.assemble(
            state.slides,
            state.run_dir / filename,
        )
        return f"Created: {state.artifact_file.name}"

    def _upload(self, state: _RunState) -> str:
        artifact_file = _require(state.artifact_file, "assembled artifact")
        key = f"reports/{state.job.job_id}/{artifact_file.name}"
        storage_path = self.context.artifact_store.upload(artifact_file.read_bytes(), key)
        if not storage_path:
            raise CollaboratorError(
                "Artifact store returned an empty storage path.",
                collaborator="artifact_store",
            )
        state.storage_path = storage_path
        return f"Stored at {state.storage_path}"


def _require_linked_project(job: ReportJobView) -> str:
    project_id = (job.external_project_id or "").strip()
    if not project_id:
        raise ValidationError(NOT_LINKED_MESSAGE)
    return project_id


def _require(value: T | None, what: str) -> T:
    if value is None:
        raise RuntimeError(f"Pipeline stage ran before {what} was available.")
    return value


def _safe_name(value: str) -> str:
    return _UNSAFE_NAME_CHARS.sub("_", value)


def _run_dir_name(job: ReportJobView) -> str:
    return f"{_safe_name(job.project_name)}_{job.period.label}_{job.job_id[:8]}"


def _file_extension(filename: str | None) -> str:
    if filename and "." in filename:
        extension = filename.rsplit(".", 1)[1].strip().lower()
        if extension:
            return extension
    return "jpg"
