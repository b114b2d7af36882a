"""Filesystem-backed artifact store."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from owner_reports.worker.errors import CollaboratorError

logger = logging.getLogger(__name__)


class LocalArtifactStore:
    """Stores artifacts under `root`; storage paths are POSIX keys relative to it."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def upload(self, data: bytes, key: str) -> str:
        target = self._resolve(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as error:
            raise CollaboratorError(
                f"Failed to store artifact {key}: {error}",
                collaborator="artifact_store",
            ) from error
        logger.debug("Stored %d bytes at %s", len(data), target)
        return key

    def delete(self, storage_path: str) -> None:
        target = self._resolve(storage_path)
        try:
            target.unlink()
        except FileNotFoundError:
            logger.debug("Artifact %s already absent", storage_path)
        except OSError as error:
            raise CollaboratorError(
                f"Failed to delete artifact {storage_path}: {error}",
                collaborator="artifact_store",
            ) from error

    def _resolve(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise CollaboratorError(
                f"Invalid artifact key: {key!r}",
                collaborator="artifact_store",
            )
        return self.root.joinpath(*relative.parts)
