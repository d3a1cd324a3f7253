from __future__ import annotations

from datetime import date

import pytest

from src.booking.conflicts import ConflictChecker, find_conflict, group_by_day, is_edited_lesson
from src.booking.errors import TransientError
from src.booking.models import EditTarget, IndividualLesson, SlotType
from tests.fakes import TZ, FakeCalendar, at, busy

MONDAY = date(2025, 3, 10)
TUESDAY = date(2025, 3, 11)
WEDNESDAY = date(2025, 3, 12)


def lesson(day: date, hour: int = 15, minute: int = 0, minutes: int = 30, student: str = "s1"):
    return IndividualLesson(
        student_id=student,
        subject_id="piano",
        scheduled_at=at(day, hour, minute),
        duration_minutes=minutes,
    )


def checker(calendar: FakeCalendar, **kwargs) -> ConflictChecker:
    kwargs.setdefault("retry_wait_seconds", 0)
    return ConflictChecker(calendar, tz=TZ, **kwargs)


@pytest.mark.asyncio
async def test_no_busy_slots_is_ok():
    calendar = FakeCalendar()

    result = await checker(calendar).check([lesson(MONDAY), lesson(TUESDAY)])

    assert result is None
    assert calendar.calls == [MONDAY, TUESDAY]


@pytest.mark.asyncio
async def test_non_overlapping_slots_are_ok():
    calendar = FakeCalendar(
        slots={MONDAY: [busy(MONDAY, 14, 0, 60), busy(MONDAY, 15, 30, 30)]}
    )

    assert await checker(calendar).check([lesson(MONDAY)]) is None


@pytest.mark.asyncio
async def test_overlap_returns_candidate_and_slot():
    slot = busy(MONDAY, 15, 15, 30)
    calendar = FakeCalendar(slots={MONDAY: [slot]})
    candidate = lesson(MONDAY)

    conflict = await checker(calendar).check([candidate])

    assert conflict is not None
    assert conflict.candidate == candidate
    assert conflict.slot == slot


@pytest.mark.asyncio
async def test_back_to_back_slots_do_not_conflict():
    calendar = FakeCalendar(slots={MONDAY: [busy(MONDAY, 14, 30, 30), busy(MONDAY, 15, 30, 60)]})

    assert await checker(calendar).check([lesson(MONDAY)]) is None


@pytest.mark.asyncio
async def test_one_query_per_distinct_day():
    calendar = FakeCalendar()
    candidates = [lesson(MONDAY, student="s1"), lesson(MONDAY, student="s2"), lesson(TUESDAY)]

    await checker(calendar).check(candidates)

    assert calendar.calls == [MONDAY, TUESDAY]


@pytest.mark.asyncio
async def test_stops_at_first_conflict_without_querying_later_days():
    calendar = FakeCalendar(
        slots={
            MONDAY: [busy(MONDAY, 15, 0, 30)],
            TUESDAY: [busy(TUESDAY, 15, 0, 30)],
        }
    )
    first = lesson(MONDAY, student="s1")
    candidates = [first, lesson(MONDAY, student="s2"), lesson(TUESDAY), lesson(WEDNESDAY)]

    conflict = await checker(calendar).check(candidates)

    assert conflict.candidate == first
    assert calendar.calls == [MONDAY]


@pytest.mark.asyncio
async def test_reports_first_candidate_in_order_within_a_day():
    calendar = FakeCalendar(slots={MONDAY: [busy(MONDAY, 16, 0, 30)]})
    early = lesson(MONDAY, 15, 0, 30, student="s1")
    late_one = lesson(MONDAY, 16, 0, 30, student="s2")
    late_two = lesson(MONDAY, 16, 0, 30, student="s3")

    conflict = await checker(calendar).check([early, late_one, late_two])

    assert conflict.candidate == late_one


@pytest.mark.asyncio
async def test_concurrent_queries_keep_reporting_order():
    calendar = FakeCalendar(
        slots={
            MONDAY: [busy(MONDAY, 15, 0, 30)],
            TUESDAY: [busy(TUESDAY, 15, 0, 30)],
        }
    )
    # Candidates arrive out of date order; Monday is still reported
    candidates = [lesson(TUESDAY), lesson(MONDAY)]

    conflict = await checker(calendar, concurrent_queries=True).check(candidates)

    assert conflict.candidate.day == MONDAY
    assert sorted(calendar.calls) == [MONDAY, TUESDAY]


@pytest.mark.asyncio
async def test_failed_query_permits_booking():
    calendar = FakeCalendar(failures={MONDAY: [RuntimeError("rpc unavailable")]})

    result = await checker(calendar).check([lesson(MONDAY)])

    assert result is None
    assert calendar.calls == [MONDAY]


@pytest.mark.asyncio
async def test_transient_failure_is_retried():
    calendar = FakeCalendar(
        slots={MONDAY: [busy(MONDAY, 15, 0, 30)]},
        failures={MONDAY: [TransientError("503")]},
    )

    conflict = await checker(calendar, retry_attempts=2).check([lesson(MONDAY)])

    assert conflict is not None
    assert calendar.calls == [MONDAY, MONDAY]


@pytest.mark.asyncio
async def test_exhausted_retries_permit_booking():
    calendar = FakeCalendar(
        slots={MONDAY: [busy(MONDAY, 15, 0, 30)]},
        failures={MONDAY: [TransientError("503"), TransientError("503")]},
    )

    result = await checker(calendar, retry_attempts=2).check([lesson(MONDAY)])

    assert result is None
    assert calendar.calls == [MONDAY, MONDAY]


@pytest.mark.asyncio
async def test_edited_lesson_does_not_conflict_with_itself():
    calendar = FakeCalendar(slots={MONDAY: [busy(MONDAY, 15, 0, 30)]})
    editing = EditTarget(lesson_id="lesson-1", scheduled_at=at(MONDAY, 15), duration_minutes=30)

    assert await checker(calendar).check([lesson(MONDAY)], editing) is None


@pytest.mark.asyncio
async def test_edited_lesson_still_conflicts_with_others():
    other = busy(MONDAY, 15, 15, 30)
    calendar = FakeCalendar(slots={MONDAY: [busy(MONDAY, 15, 0, 30), other]})
    editing = EditTarget(lesson_id="lesson-1", scheduled_at=at(MONDAY, 15), duration_minutes=30)

    conflict = await checker(calendar).check([lesson(MONDAY)], editing)

    assert conflict.slot == other


@pytest.mark.asyncio
async def test_exact_match_without_edit_mode_conflicts():
    calendar = FakeCalendar(slots={MONDAY: [busy(MONDAY, 15, 0, 30)]})

    assert await checker(calendar).check([lesson(MONDAY)]) is not None


def test_slot_tagged_with_edited_lesson_id_is_skipped():
    slot = busy(MONDAY, 15, 0, 30, lesson_id="lesson-1")

    assert is_edited_lesson(slot, EditTarget(lesson_id="lesson-1"))
    assert not is_edited_lesson(slot, EditTarget(lesson_id="lesson-2"))
    assert not is_edited_lesson(slot, None)


def test_breaks_block_bookings():
    slot = busy(MONDAY, 15, 0, 15, slot_type=SlotType.BREAK)

    conflict = find_conflict([lesson(MONDAY)], [slot])

    assert conflict.slot.slot_type is SlotType.BREAK
    assert "already a break" in conflict.message


def test_group_by_day_orders_days_and_keeps_candidate_order():
    a, b, c = lesson(TUESDAY, student="a"), lesson(MONDAY, student="b"), lesson(TUESDAY, student="c")

    grouped = group_by_day([a, b, c], TZ)

    assert list(grouped) == [MONDAY, TUESDAY]
    assert grouped[TUESDAY] == [a, c]


@pytest.mark.asyncio
async def test_empty_candidate_list_makes_no_queries():
    calendar = FakeCalendar()

    assert await checker(calendar).check([]) is None
    assert calendar.calls == []
