"""Contracts for the external services the pipeline depends on."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, TypeVar

from owner_reports.worker.errors import CollaboratorNotFound
from owner_reports.worker.models import (
    CandidateImage,
    LookaheadSlideData,
    Note,
    RenderedSlide,
    ReportImage,
    ReportPeriod,
    SlideDescriptor,
    SummaryResult,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressSink = Callable[[str, str], None]


class NotesProvider(Protocol):
    def fetch(self, project_ref: str, period: ReportPeriod) -> list[Note]:
        """Return daily log notes for the period."""


class ImageProvider(Protocol):
    def fetch(self, project_ref: str, period: ReportPeriod) -> list[CandidateImage]:
        """Return every image recorded for the period."""


class Summarizer(Protocol):
    def summarize(
        self,
        project_name: str,
        period: ReportPeriod,
        notes: Sequence[Note],
        max_words: int,
        max_photo_days: int,
    ) -> SummaryResult:
        """Summarize notes into bullets and suggest photo days."""


class ImageRanker(Protocol):
    def select_final(
        self,
        summary: SummaryResult,
        candidates: Sequence[CandidateImage],
        max_images: int,
    ) -> list[int]:
        """Return ids of the images to include, best first."""


class Captioner(Protocol):
    def generate(self, images: Sequence[ReportImage], summary: SummaryResult) -> dict[int, str]:
        """Return a caption per image id; omissions are allowed."""


class ImageDownloader(Protocol):
    def download(self, project_ref: str, image: ReportImage, destination: Path) -> Path:
        """Store the image at `destination` and return the written path."""


class SlideRenderer(Protocol):
    def render(self, slide: SlideDescriptor, output_path: Path) -> Path:
        """Render one slide to `output_path`."""


class Assembler(Protocol):
    def assemble(self, slides: Sequence[RenderedSlide], output_path: Path) -> Path:
        """Assemble rendered slides into one document."""


class LookaheadProvider(Protocol):
    def most_recent(self, project_ref: str) -> LookaheadSlideData | None:
        """Return the latest schedule lookahead, or None when there is none."""


class ArtifactStore(Protocol):
    def upload(self, data: bytes, key: str) -> str:
        """Persist `data` under `key` and return its durable storage path."""

    def delete(self, storage_path: str) -> None:
        """Remove a previously uploaded artifact."""


@dataclass(slots=True)
class PipelineContext:
    """Collaborators injected into one pipeline run."""

    notes: NotesProvider
    images: ImageProvider
    summarizer: Summarizer
    ranker: ImageRanker
    captioner: Captioner
    downloader: ImageDownloader
    renderer: SlideRenderer
    assembler: Assembler
    artifact_store: ArtifactStore
    lookahead: LookaheadProvider | None = None


def empty_on_not_found(fetch: Callable[[], list[T]], *, what: str) -> list[T]:
    """Run `fetch`, mapping a not-found response to an empty list.

    Only `CollaboratorNotFound` is mapped; every other failure propagates.
    The mapping is logged so that an outage hidden behind a 404 stays visible.
    """

    try:
        return fetch()
    except CollaboratorNotFound as error:
        logger.info("%s not found; treating as empty (%s)", what, error)
        return []
