"""Retention sweep for completed report artifacts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from owner_reports.storage.common import utc_now
from owner_reports.worker.collaborators import ArtifactStore
from owner_reports.worker.repository import JobRepository

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(days=5)


@dataclass(slots=True)
class SweepSummary:
    """Counters for one sweep."""

    cutoff: datetime
    found: int = 0
    purged: int = 0
    failed: int = 0


class RetentionSweeper:
    """Deletes artifacts of completed jobs older than the retention window.

    A job's artifact path is cleared only after the store confirms deletion,
    so anything that fails here stays eligible for the next sweep.
    """

    def __init__(
        self,
        *,
        repository: JobRepository,
        artifact_store: ArtifactStore,
        retention: timedelta = DEFAULT_RETENTION,
    ) -> None:
        self.repository = repository
        self.artifact_store = artifact_store
        self.retention = retention

    def sweep(self, *, now: datetime | None = None) -> SweepSummary:
        cutoff = (now or utc_now()) - self.retention
        summary = SweepSummary(cutoff=cutoff)
        logger.info("Running cleanup for reports completed before %s", cutoff.isoformat())

        try:
            expired = self.repository.list_expired_completed(older_than=cutoff)
        except SQLAlchemyError:
            logger.exception("Cleanup fetch failed")
            return summary

        summary.found = len(expired)
        if not expired:
            logger.info("No expired reports to clean up.")
            return summary

        logger.info("Found %d expired report(s) to clean up.", len(expired))
        for entry in expired:
            try:
                self.artifact_store.delete(entry.artifact_path)
                self.repository.clear_artifact_path(job_id=entry.job_id)
            except Exception:  # noqa: BLE001
                summary.failed += 1
                logger.exception(
                    "Failed to clean up report %s (%s)",
                    entry.job_id,
                    entry.artifact_path,
                )
                continue
            summary.purged += 1
            logger.info("Cleaned up report %s", entry.job_id)

        logger.info(
            "Cleanup complete: purged=%d failed=%d",
            summary.purged,
            summary.failed,
        )
        return summary
