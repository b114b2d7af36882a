"""Minimum input volume checks run before any expensive stage."""

from __future__ import annotations

from dataclasses import dataclass

from owner_reports.worker.errors import ValidationError

MIN_NOTES_COUNT = 4
MIN_PHOTOS_COUNT = 5


@dataclass(slots=True, frozen=True)
class ValidationThresholds:
    min_notes: int = MIN_NOTES_COUNT
    min_photos: int = MIN_PHOTOS_COUNT


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    notes_count: int
    photos_count: int
    error: str | None = None


def validate_report_data(
    notes_count: int,
    photos_count: int,
    thresholds: ValidationThresholds | None = None,
) -> ValidationResult:
    """Check notes first, then photos; report only the first violation."""

    limits = thresholds or ValidationThresholds()
    if notes_count < limits.min_notes:
        return ValidationResult(
            valid=False,
            notes_count=notes_count,
            photos_count=photos_count,
            error=(
                f"Insufficient daily log data (found {notes_count} notes, "
                f"minimum {limits.min_notes} required). Suggest manually creating report."
            ),
        )
    if photos_count < limits.min_photos:
        return ValidationResult(
            valid=False,
            notes_count=notes_count,
            photos_count=photos_count,
            error=(
                f"Insufficient photos (found {photos_count} photos, "
                f"minimum {limits.min_photos} required). Suggest manually creating report."
            ),
        )
    return ValidationResult(valid=True, notes_count=notes_count, photos_count=photos_count)


def assert_valid_report_data(
    notes_count: int,
    photos_count: int,
    thresholds: ValidationThresholds | None = None,
) -> ValidationResult:
    """Raise ValidationError when the data does not meet the thresholds."""

    result = validate_report_data(notes_count, photos_count, thresholds)
    if not result.valid:
        raise ValidationError(result.error or "Insufficient data to generate report.")
    return result
