"""Runtime configuration for the report worker."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class SchedulerSettings:
    """Poll loop and retention timers."""

    worker_id: str = field(default_factory=lambda: f"{socket.gethostname()}-{os.getpid()}")
    poll_interval_seconds: float = 30.0
    sweep_interval_seconds: float = 3600.0
    retention_days: float = 5.0


@dataclass(slots=True)
class PipelineSettings:
    """Limits applied to every pipeline run."""

    output_dir: Path = Path("output")
    max_words: int = 250
    max_photo_days: int = 6
    max_candidates: int = 60
    min_candidates: int = 20
    max_selected_images: int = 20
    min_notes: int = 4
    min_photos: int = 5


@dataclass(slots=True)
class StorageSettings:
    """Artifact storage and collaborator data locations."""

    artifact_root: Path = Path("artifacts")
    fixtures_dir: Path | None = None


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".owner_reports.db")
    sqlite_busy_timeout_ms: int = 5000
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        scheduler_defaults = SchedulerSettings()
        fixtures_dir = os.getenv("OWNER_REPORTS_FIXTURES_DIR", "").strip()
        return cls(
            db_path=db_path or Path(os.getenv("OWNER_REPORTS_DB_PATH", ".owner_reports.db")),
            sqlite_busy_timeout_ms=int(os.getenv("OWNER_REPORTS_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            scheduler=SchedulerSettings(
                worker_id=os.getenv("OWNER_REPORTS_WORKER_ID", scheduler_defaults.worker_id),
                poll_interval_seconds=float(
                    os.getenv("OWNER_REPORTS_POLL_INTERVAL_SECONDS", "30"),
                ),
                sweep_interval_seconds=float(
                    os.getenv("OWNER_REPORTS_SWEEP_INTERVAL_SECONDS", "3600"),
                ),
                retention_days=float(os.getenv("OWNER_REPORTS_RETENTION_DAYS", "5")),
            ),
            pipeline=PipelineSettings(
                output_dir=Path(os.getenv("OWNER_REPORTS_OUTPUT_DIR", "output")),
                max_words=int(os.getenv("OWNER_REPORTS_MAX_WORDS", "250")),
                max_photo_days=int(os.getenv("OWNER_REPORTS_MAX_PHOTO_DAYS", "6")),
                max_candidates=int(os.getenv("OWNER_REPORTS_MAX_CANDIDATES", "60")),
                min_candidates=int(os.getenv("OWNER_REPORTS_MIN_CANDIDATES", "20")),
                max_selected_images=int(os.getenv("OWNER_REPORTS_MAX_SELECTED_IMAGES", "20")),
                min_notes=int(os.getenv("OWNER_REPORTS_MIN_NOTES", "4")),
                min_photos=int(os.getenv("OWNER_REPORTS_MIN_PHOTOS", "5")),
            ),
            storage=StorageSettings(
                artifact_root=Path(os.getenv("OWNER_REPORTS_ARTIFACT_ROOT", "artifacts")),
                fixtures_dir=Path(fixtures_dir) if fixtures_dir else None,
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("OWNER_REPORTS_SQLITE_BUSY_TIMEOUT_MS must be > 0.")
        if not self.scheduler.worker_id.strip():
            raise ValueError("OWNER_REPORTS_WORKER_ID must not be empty.")
        if self.scheduler.poll_interval_seconds < 0:
            raise ValueError("OWNER_REPORTS_POLL_INTERVAL_SECONDS must be >= 0.")
        if self.scheduler.sweep_interval_seconds <= 0:
            raise ValueError("OWNER_REPORTS_SWEEP_INTERVAL_SECONDS must be > 0.")
        if self.scheduler.retention_days < 0:
            raise ValueError("OWNER_REPORTS_RETENTION_DAYS must be >= 0.")

        pipeline = self.pipeline
        for name, value in (
            ("OWNER_REPORTS_MAX_WORDS", pipeline.max_words),
            ("OWNER_REPORTS_MAX_PHOTO_DAYS", pipeline.max_photo_days),
            ("OWNER_REPORTS_MAX_CANDIDATES", pipeline.max_candidates),
            ("OWNER_REPORTS_MAX_SELECTED_IMAGES", pipeline.max_selected_images),
        ):
            if value <= 0:
                raise ValueError(f"{name} must be a positive integer.")
        if pipeline.min_candidates < 0 or pipeline.min_candidates > pipeline.max_candidates:
            raise ValueError(
                "OWNER_REPORTS_MIN_CANDIDATES must be between 0 and OWNER_REPORTS_MAX_CANDIDATES.",
            )
        if pipeline.min_notes < 0 or pipeline.min_photos < 0:
            raise ValueError("OWNER_REPORTS_MIN_NOTES and OWNER_REPORTS_MIN_PHOTOS must be >= 0.")
