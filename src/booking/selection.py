"""Selection expansion: students x subjects x dates -> candidate bookings.

Candidate order is part of the contract. Dates ascend, then students in the
order they were selected, then each student's subjects in selection order.
The conflict checker and submitter walk candidates in this order and report
the first conflict or failure verbatim.
"""

from collections.abc import Iterable, Mapping
from datetime import date, tzinfo

from src.booking.errors import ValidationError
from src.booking.logging import get_logger
from src.booking.models import (
    BookingRequest,
    CandidateBooking,
    IndividualLesson,
    LessonMember,
    Session,
)
from src.booking.timeslots import to_interval

log = get_logger(__name__)


def validate_request(
    request: BookingRequest, min_duration: int = 15, max_duration: int = 240
) -> None:
    """Reject requests that cannot produce a booking.

    Raises:
        ValidationError: With a message suitable for showing to the tutor.
    """
    if not request.student_selections:
        raise ValidationError("Please select at least one student")
    for selection in request.student_selections:
        if not selection.subjects:
            raise ValidationError(
                f"Please select at least one subject for {selection.student_id}"
            )
    if not request.dates:
        raise ValidationError("Please select at least one date and time")
    if not min_duration <= request.duration_minutes <= max_duration:
        raise ValidationError(
            f"Duration must be between {min_duration} and {max_duration} minutes"
        )
    if request.editing is not None:
        if len(request.student_selections) != 1 or request.lesson_count != 1:
            raise ValidationError("Editing a lesson requires exactly one student and one subject")
        if len(request.dates) != 1:
            raise ValidationError("Editing a lesson requires exactly one date")
        if request.is_recurring:
            raise ValidationError("A lesson being edited cannot be made recurring")


def member_pairs(request: BookingRequest) -> list[tuple[str, str]]:
    """Flattened (student_id, subject_id) pairs in selection order."""
    return [
        (selection.student_id, subject)
        for selection in request.student_selections
        for subject in selection.subjects
    ]


def allocate_members(
    pairs: list[tuple[str, str]],
    duration_minutes: int,
    subject_durations: Mapping[str, int] | None = None,
) -> tuple[tuple[LessonMember, ...], int]:
    """Split a session's time among its members.

    - Everyone on the same subject is a group lesson: each member attends the
      whole session.
    - A student taking several subjects uses each subject's base duration when
      one is configured for every subject; the session lasts their sum.
    - Otherwise the lessons run back to back and share the session equally.

    Returns:
        (members, session duration in minutes)
    """
    students = [student_id for student_id, _ in pairs]
    subjects = {subject for _, subject in pairs}
    has_multi_subject_student = len(set(students)) < len(students)

    if has_multi_subject_student and subject_durations and subjects <= subject_durations.keys():
        members = tuple(
            LessonMember(
                student_id=student_id,
                subject_id=subject,
                duration_minutes=subject_durations[subject],
            )
            for student_id, subject in pairs
        )
        return members, sum(m.duration_minutes for m in members)

    if len(subjects) == 1:
        per_member = duration_minutes
    else:
        per_member = max(1, duration_minutes // len(pairs))
    members = tuple(
        LessonMember(student_id=student_id, subject_id=subject, duration_minutes=per_member)
        for student_id, subject in pairs
    )
    return members, duration_minutes


def expand_selection(
    request: BookingRequest,
    dates: Iterable[date],
    *,
    tz: tzinfo,
    min_duration: int = 15,
    max_duration: int = 240,
    subject_durations: Mapping[str, int] | None = None,
    recurrence_tag: str | None = None,
) -> list[CandidateBooking]:
    """Cross students, subjects and dates into candidate bookings.

    Args:
        request: Validated selection, time, duration and notes.
        dates: Occurrence dates to book (the manual dates, or the recurrence
            expansion of the anchor).
        tz: Business time zone.
        min_duration: Shortest allowed duration.
        max_duration: Longest allowed duration.
        subject_durations: Base duration per subject for multi-subject sessions.
        recurrence_tag: Series tag stamped on every candidate.

    Raises:
        ValidationError: If the request or dates cannot produce a booking, or
            a combined session's allocated length is outside the duration range.
    """
    validate_request(request, min_duration, max_duration)
    days = sorted(set(dates))
    if not days:
        raise ValidationError("Please select at least one date and time")

    pairs = member_pairs(request)
    combine = request.combined_session and len(pairs) > 1
    if request.combined_session and not combine:
        log.debug("combined_session_skipped", reason="single_member")

    candidates: list[CandidateBooking] = []
    for day in days:
        start = to_interval(day, request.hour, request.minute, request.duration_minutes, tz).start
        if combine:
            members, session_minutes = allocate_members(
                pairs, request.duration_minutes, subject_durations
            )
            if not min_duration <= session_minutes <= max_duration:
                raise ValidationError(
                    f"Combined session would last {session_minutes} minutes; "
                    f"duration must be between {min_duration} and {max_duration} minutes"
                )
            candidates.append(
                Session(
                    scheduled_at=start,
                    duration_minutes=session_minutes,
                    notes=request.notes,
                    members=members,
                    recurrence_tag=recurrence_tag,
                )
            )
            continue
        for student_id, subject in pairs:
            candidates.append(
                IndividualLesson(
                    student_id=student_id,
                    subject_id=subject,
                    scheduled_at=start,
                    duration_minutes=request.duration_minutes,
                    notes=request.notes,
                    recurrence_tag=recurrence_tag,
                )
            )

    log.debug(
        "selection_expanded",
        dates=len(days),
        candidates=len(candidates),
        combined=combine,
    )
    return candidates
