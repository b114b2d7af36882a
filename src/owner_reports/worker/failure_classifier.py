"""Deterministic classification of pipeline failures into user-facing messages."""

from __future__ import annotations

from dataclasses import dataclass

from owner_reports.worker.errors import CollaboratorError, ValidationError
from owner_reports.worker.models import FailureClass

GENERIC_FAILURE_MESSAGE = (
    "Report generation unable to complete. Suggest manually creating report."
)


@dataclass(slots=True)
class PipelineFailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    user_message: str
    stage: str | None
    reason_code: str

    def to_event_details(self) -> dict[str, object]:
        """Serialize diagnostics for the failed event."""

        return {
            "failure_class": self.failure_class.value,
            "stage": self.stage,
            "reason_code": self.reason_code,
        }


def classify_pipeline_failure(
    error: BaseException,
    *,
    stage: str | None,
) -> PipelineFailureClassification:
    """Only validation messages reach users verbatim; everything else is generalized."""

    stage_code = stage or "precondition"
    if isinstance(error, ValidationError):
        return PipelineFailureClassification(
            failure_class=FailureClass.VALIDATION,
            user_message=str(error),
            stage=stage,
            reason_code=f"{stage_code}_validation",
        )
    if isinstance(error, CollaboratorError):
        collaborator = error.collaborator or "collaborator"
        return PipelineFailureClassification(
            failure_class=FailureClass.COLLABORATOR,
            user_message=GENERIC_FAILURE_MESSAGE,
            stage=stage,
            reason_code=f"{stage_code}_{collaborator}_error",
        )
    return PipelineFailureClassification(
        failure_class=FailureClass.INTERNAL,
        user_message=GENERIC_FAILURE_MESSAGE,
        stage=stage,
        reason_code=f"{stage_code}_{type(error).__name__}",
    )
