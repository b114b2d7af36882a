"""Collaborator implementations for the report pipeline."""

from owner_reports.worker.backend.fixture_backend import (
    DescriptionCaptioner,
    ExtractiveSummarizer,
    FixtureImageDownloader,
    FixtureImageProvider,
    FixtureLookaheadProvider,
    FixtureNotesProvider,
    HeuristicImageRanker,
    JsonSlideRenderer,
    ZipDocumentAssembler,
    build_fixture_context,
)

__all__ = [
    "DescriptionCaptioner",
    "ExtractiveSummarizer",
    "FixtureImageDownloader",
    "FixtureImageProvider",
    "FixtureLookaheadProvider",
    "FixtureNotesProvider",
    "HeuristicImageRanker",
    "JsonSlideRenderer",
    "ZipDocumentAssembler",
    "build_fixture_context",
]
