"""Error taxonomy shared by the pipeline, the job store, and collaborators."""

from __future__ import annotations


class ReportWorkerError(Exception):
    """Base class for worker errors."""


class ValidationError(ReportWorkerError):
    """Input data is insufficient or a required linkage is missing.

    The message is shown to users verbatim, so keep it short and actionable.
    """


class CollaboratorError(ReportWorkerError):
    """An external dependency failed (network, timeout, malformed response)."""

    def __init__(self, message: str, *, collaborator: str | None = None) -> None:
        super().__init__(message)
        self.collaborator = collaborator


class CollaboratorNotFound(CollaboratorError):
    """The collaborator reported that the requested resource does not exist."""


class StoreError(ReportWorkerError):
    """The job store rejected or failed a status write."""
