from __future__ import annotations

from datetime import date, timedelta

import allure

from owner_reports.worker.candidates import normalize_image_date, select_candidate_images
from owner_reports.worker.models import CandidateImage, PhotoDaySuggestion

pytestmark = [
    allure.epic("Report Pipeline"),
    allure.feature("Candidate Selection"),
]


def _image(
    image_id: int,
    day: date | None,
    *,
    description: str | None = None,
    size: int | None = None,
) -> CandidateImage:
    return CandidateImage(
        image_id=image_id,
        taken_on=day,
        description=description,
        size_bytes=size,
        filename=f"{image_id}.jpg",
    )


def test_suggested_day_includes_neighbouring_days_only() -> None:
    pool = [
        _image(1, date(2024, 1, 9)),
        _image(2, date(2024, 1, 10)),
        _image(3, date(2024, 1, 11)),
        _image(4, date(2024, 1, 12)),
    ]

    selected = select_candidate_images(
        pool,
        [PhotoDaySuggestion(day=date(2024, 1, 10), priority=1)],
        max_candidates=60,
        min_candidates=0,
    )

    assert [image.image_id for image in selected] == [1, 2, 3]


def test_selection_is_deterministic_and_date_ordered() -> None:
    pool = [_image(index, date(2024, 1, 1) + timedelta(days=index % 5)) for index in range(30)]
    suggestions = [
        PhotoDaySuggestion(day=date(2024, 1, 4), priority=2),
        PhotoDaySuggestion(day=date(2024, 1, 2), priority=1),
    ]

    first = select_candidate_images(pool, suggestions, max_candidates=10, min_candidates=5)
    second = select_candidate_images(pool, suggestions, max_candidates=10, min_candidates=5)

    keys = [(image.taken_on, image.image_id) for image in first]
    assert keys == sorted(keys)
    assert [image.image_id for image in second] == [image.image_id for image in first]


def test_selection_is_capped_at_max_candidates() -> None:
    day = date(2024, 2, 1)
    pool = [_image(index, day + timedelta(days=index % 3)) for index in range(200)]

    selected = select_candidate_images(
        pool,
        [PhotoDaySuggestion(day=day + timedelta(days=1), priority=1)],
    )

    assert len(selected) == 60
    assert len({image.image_id for image in selected}) == 60


def test_higher_priority_suggestion_is_served_first_when_cap_is_hit() -> None:
    pool = [
        _image(1, date(2024, 3, 1)),
        _image(2, date(2024, 3, 1)),
        _image(3, date(2024, 3, 20)),
        _image(4, date(2024, 3, 20)),
    ]
    suggestions = [
        PhotoDaySuggestion(day=date(2024, 3, 1), priority=2),
        PhotoDaySuggestion(day=date(2024, 3, 20), priority=1),
    ]

    selected = select_candidate_images(pool, suggestions, max_candidates=2, min_candidates=0)

    assert [image.image_id for image in selected] == [3, 4]


def test_suggestions_without_priority_come_last() -> None:
    pool = [_image(1, date(2024, 3, 1)), _image(2, date(2024, 3, 20))]
    suggestions = [
        PhotoDaySuggestion(day=date(2024, 3, 1)),
        PhotoDaySuggestion(day=date(2024, 3, 20), priority=5),
    ]

    selected = select_candidate_images(pool, suggestions, max_candidates=1, min_candidates=0)

    assert [image.image_id for image in selected] == [2]


def test_empty_suggestions_fill_from_described_and_larger_images() -> None:
    day = date(2024, 4, 1)
    pool = [
        _image(1, day, size=10),
        _image(2, day, description="Framing", size=5),
        _image(3, day, size=500),
        _image(4, day, description="Roofing", size=50),
    ]

    selected = select_candidate_images(pool, [], max_candidates=60, min_candidates=3)

    assert {image.image_id for image in selected} == {2, 3, 4}


def test_pass_two_tops_up_to_minimum() -> None:
    day = date(2024, 5, 1)
    pool = [_image(1, day)] + [_image(10 + index, day + timedelta(days=10)) for index in range(5)]

    selected = select_candidate_images(
        pool,
        [PhotoDaySuggestion(day=day, priority=1)],
        max_candidates=60,
        min_candidates=4,
    )

    assert len(selected) == 4
    assert selected[0].image_id == 1


def test_minimum_never_exceeds_maximum() -> None:
    day = date(2024, 5, 1)
    pool = [_image(index, day + timedelta(days=20)) for index in range(10)]

    selected = select_candidate_images(pool, [], max_candidates=3, min_candidates=20)

    assert len(selected) == 3


def test_undated_images_are_never_selected() -> None:
    day = date(2024, 6, 1)
    pool = [_image(1, None, description="Undated", size=10_000), _image(2, day)]

    selected = select_candidate_images(pool, [], max_candidates=60, min_candidates=20)

    assert [image.image_id for image in selected] == [2]


def test_empty_pool_returns_empty_list() -> None:
    assert (
        select_candidate_images([], [PhotoDaySuggestion(day=date(2024, 1, 1), priority=1)]) == []
    )


def test_normalize_image_date_prefers_log_date() -> None:
    assert normalize_image_date("2024-01-10", "2024-01-12T08:00:00Z") == date(2024, 1, 10)
    assert normalize_image_date(None, "2024-01-12T23:59:00Z") == date(2024, 1, 12)
    assert normalize_image_date("", "garbage") is None
