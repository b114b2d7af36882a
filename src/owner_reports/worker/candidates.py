"""Candidate image selection around suggested photo days.

Pass 1 walks the photo-day suggestions in priority order and collects images
taken on each suggested day and the days immediately before and after it.
Pass 2 tops the selection up to a minimum with described and larger images.
The result is always ordered by date and id so identical inputs produce
identical output.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from datetime import date, datetime, timedelta

from owner_reports.worker.models import CandidateImage, PhotoDaySuggestion

DEFAULT_MAX_CANDIDATES = 60
DEFAULT_MIN_CANDIDATES = 20

_NEIGHBOUR_OFFSETS: tuple[int, ...] = (0, -1, 1)


def normalize_image_date(log_date: str | None, created_at: str | None) -> date | None:
    """Prefer the explicit log date, fall back to the creation timestamp date."""

    for raw in (log_date, created_at):
        parsed = _parse_day(raw)
        if parsed is not None:
            return parsed
    return None


def select_candidate_images(
    pool: Sequence[CandidateImage],
    photo_days: Sequence[PhotoDaySuggestion],
    *,
    max_candidates: int = DEFAULT_MAX_CANDIDATES,
    min_candidates: int = DEFAULT_MIN_CANDIDATES,
) -> list[CandidateImage]:
    """Select a bounded, date-ordered subset of `pool`."""

    if not pool or max_candidates <= 0:
        return []

    dated = [image for image in pool if image.taken_on is not None]
    by_day: dict[date, list[CandidateImage]] = defaultdict(list)
    for image in dated:
        by_day[image.taken_on].append(image)  # type: ignore[index]

    selected: dict[int, CandidateImage] = {}
    for suggestion in sorted(photo_days, key=_suggestion_order):
        for offset in _NEIGHBOUR_OFFSETS:
            day = suggestion.day + timedelta(days=offset)
            for image in by_day.get(day, ()):
                if image.image_id in selected:
                    continue
                selected[image.image_id] = image
                if len(selected) >= max_candidates:
                    return _finalize(selected)

    target = min(min_candidates, max_candidates)
    if len(selected) < target:
        remaining = [image for image in dated if image.image_id not in selected]
        remaining.sort(key=lambda image: (not image.has_description, -(image.size_bytes or 0)))
        for image in remaining:
            if len(selected) >= target:
                break
            selected[image.image_id] = image

    return _finalize(selected)


def _suggestion_order(suggestion: PhotoDaySuggestion) -> tuple[bool, int, date]:
    missing = suggestion.priority is None
    return (missing, suggestion.priority or 0, suggestion.day)


def _finalize(selected: dict[int, CandidateImage]) -> list[CandidateImage]:
    return sorted(
        selected.values(),
        key=lambda image: (image.taken_on, image.image_id),
    )


def _parse_day(raw: str | None) -> date | None:
    if not raw:
        return None
    value = raw.strip()
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        return None
