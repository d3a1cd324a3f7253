from __future__ import annotations

from datetime import date

import pytest

from src.booking.errors import ValidationError
from src.booking.models import (
    BookingRequest,
    EditTarget,
    IndividualLesson,
    Recurrence,
    Session,
    StudentSelection,
)
from src.booking.selection import allocate_members, expand_selection, validate_request
from tests.fakes import TZ, at

MONDAY = date(2025, 3, 10)
TUESDAY = date(2025, 3, 11)


def _request(**overrides) -> BookingRequest:
    data = {
        "student_selections": (
            StudentSelection(student_id="s1", subjects=("piano", "math")),
            StudentSelection(student_id="s2", subjects=("math",)),
        ),
        "dates": (MONDAY,),
        "hour": 15,
        "minute": 0,
        "duration_minutes": 60,
    }
    data.update(overrides)
    return BookingRequest(**data)


def test_cross_product_in_selection_order():
    candidates = expand_selection(_request(), [MONDAY], tz=TZ)

    assert all(isinstance(c, IndividualLesson) for c in candidates)
    assert [(c.student_id, c.subject_id) for c in candidates] == [
        ("s1", "piano"),
        ("s1", "math"),
        ("s2", "math"),
    ]
    assert all(c.scheduled_at == at(MONDAY, 15) for c in candidates)
    assert all(c.duration_minutes == 60 for c in candidates)


def test_dates_ascend_before_students():
    candidates = expand_selection(_request(), [TUESDAY, MONDAY], tz=TZ)

    assert [c.day for c in candidates] == [MONDAY] * 3 + [TUESDAY] * 3
    assert [(c.student_id, c.subject_id) for c in candidates[3:]] == [
        ("s1", "piano"),
        ("s1", "math"),
        ("s2", "math"),
    ]


def test_combined_session_groups_members_per_date():
    candidates = expand_selection(_request(combined_session=True), [MONDAY, TUESDAY], tz=TZ)

    assert len(candidates) == 2
    first, second = candidates
    assert isinstance(first, Session)
    assert first.scheduled_at == at(MONDAY, 15)
    assert second.scheduled_at == at(TUESDAY, 15)
    assert [(m.student_id, m.subject_id) for m in first.members] == [
        ("s1", "piano"),
        ("s1", "math"),
        ("s2", "math"),
    ]


def test_combined_session_with_single_member_falls_back_to_lesson():
    request = _request(
        student_selections=(StudentSelection(student_id="s1", subjects=("piano",)),),
        combined_session=True,
    )

    candidates = expand_selection(request, [MONDAY], tz=TZ)

    assert len(candidates) == 1
    assert isinstance(candidates[0], IndividualLesson)


def test_notes_and_recurrence_tag_are_carried():
    request = _request(notes="  bring scales book  ")

    candidates = expand_selection(request, [MONDAY], tz=TZ, recurrence_tag="weekly:abc")

    assert {c.notes for c in candidates} == {"bring scales book"}
    assert {c.recurrence_tag for c in candidates} == {"weekly:abc"}


def test_empty_selection_is_rejected():
    with pytest.raises(ValidationError, match="at least one student"):
        expand_selection(_request(student_selections=()), [MONDAY], tz=TZ)


def test_selection_without_subjects_is_rejected():
    request = _request(
        student_selections=(
            StudentSelection(student_id="s1", subjects=("piano",)),
            StudentSelection(student_id="s2", subjects=()),
        )
    )

    with pytest.raises(ValidationError, match="subject for s2"):
        expand_selection(request, [MONDAY], tz=TZ)


def test_missing_dates_are_rejected():
    with pytest.raises(ValidationError, match="at least one date"):
        expand_selection(_request(dates=()), [], tz=TZ)
    with pytest.raises(ValidationError, match="at least one date"):
        expand_selection(_request(), [], tz=TZ)


@pytest.mark.parametrize("duration", [14, 241])
def test_duration_out_of_range_is_rejected(duration):
    with pytest.raises(ValidationError, match="between 15 and 240"):
        expand_selection(_request(duration_minutes=duration), [MONDAY], tz=TZ)


@pytest.mark.parametrize("duration", [15, 240])
def test_duration_bounds_are_inclusive(duration):
    candidates = expand_selection(_request(duration_minutes=duration), [MONDAY], tz=TZ)

    assert candidates[0].duration_minutes == duration


def test_configured_duration_range():
    with pytest.raises(ValidationError, match="between 30 and 90"):
        expand_selection(
            _request(duration_minutes=20), [MONDAY], tz=TZ, min_duration=30, max_duration=90
        )


def test_edit_requires_single_lesson():
    editing = EditTarget(lesson_id="lesson-1")

    with pytest.raises(ValidationError, match="one student and one subject"):
        validate_request(_request(editing=editing))

    single = _request(
        student_selections=(StudentSelection(student_id="s1", subjects=("piano",)),),
        editing=editing,
    )
    validate_request(single)

    with pytest.raises(ValidationError, match="exactly one date"):
        validate_request(single.model_copy(update={"dates": (MONDAY, TUESDAY)}))
    with pytest.raises(ValidationError, match="recurring"):
        validate_request(single.model_copy(update={"recurrence": Recurrence.WEEKLY}))


def test_group_lesson_gives_every_member_full_duration():
    members, total = allocate_members([("s1", "math"), ("s2", "math")], 60)

    assert total == 60
    assert [m.duration_minutes for m in members] == [60, 60]


def test_sequential_lessons_share_session_time():
    members, total = allocate_members([("s1", "piano"), ("s2", "speech")], 60)

    assert total == 60
    assert [m.duration_minutes for m in members] == [30, 30]


def test_multi_subject_student_uses_subject_base_durations():
    members, total = allocate_members(
        [("s1", "piano"), ("s1", "reading")], 60, {"piano": 30, "reading": 60}
    )

    assert total == 90
    assert [m.duration_minutes for m in members] == [30, 60]


def test_multi_subject_student_without_base_durations_shares_time():
    members, total = allocate_members([("s1", "piano"), ("s1", "reading")], 60, {"piano": 30})

    assert total == 60
    assert [m.duration_minutes for m in members] == [30, 30]


def test_session_duration_follows_allocation():
    candidates = expand_selection(
        _request(combined_session=True),
        [MONDAY],
        tz=TZ,
        subject_durations={"piano": 30, "math": 45},
    )

    session = candidates[0]
    assert session.duration_minutes == 120
    assert [m.duration_minutes for m in session.members] == [30, 45, 45]


def test_session_longer_than_maximum_is_rejected():
    request = _request(
        student_selections=(StudentSelection(student_id="s1", subjects=("piano", "math", "art")),),
        combined_session=True,
    )

    with pytest.raises(ValidationError, match="would last 360 minutes"):
        expand_selection(
            request,
            [MONDAY],
            tz=TZ,
            subject_durations={"piano": 120, "math": 120, "art": 120},
        )


def test_session_shorter_than_minimum_is_rejected():
    request = _request(
        student_selections=(StudentSelection(student_id="s1", subjects=("piano", "math")),),
        combined_session=True,
    )

    with pytest.raises(ValidationError, match="between 15 and 240"):
        expand_selection(request, [MONDAY], tz=TZ, subject_durations={"piano": 5, "math": 5})
