"""Pydantic models for booking requests, candidate bookings and results.

All data structures use Pydantic v2 for validation, serialization, and type
safety. Requests and candidates are frozen: a BookingRequest is built once
from user input and passed by value through expansion, conflict checking and
submission.
"""

from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from src.booking.errors import BookingError, SchedulingConflict, ValidationError


class Recurrence(str, Enum):
    NONE = "none"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class SlotType(str, Enum):
    """Origin of a busy slot, as reported by the calendar."""

    LESSON = "lesson"
    SESSION = "session"
    RECURRING_LESSON = "recurring_lesson"
    RECURRING_SESSION = "recurring_session"
    BREAK = "break"


class SubmissionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    EXPANDING = "expanding"
    CONFLICT_CHECKING = "conflict_checking"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    FAILED = "failed"


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError("datetime must be timezone-aware")
    return value


class TimeInterval(BaseModel):
    """Half-open interval [start, end) between two timezone-aware datetimes."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _aware_bounds(cls, value: datetime) -> datetime:
        return _require_aware(value)

    @model_validator(mode="after")
    def _ordered(self) -> "TimeInterval":
        if self.end < self.start:
            raise ValueError("interval end precedes its start")
        return self

    @classmethod
    def starting_at(cls, start: datetime, duration_minutes: int) -> "TimeInterval":
        """Interval of duration_minutes of elapsed time beginning at start.

        The end is computed in UTC and converted back, so an interval that
        crosses a DST change still lasts exactly duration_minutes.
        """
        _require_aware(start)
        end = (start.astimezone(timezone.utc) + timedelta(minutes=duration_minutes)).astimezone(
            start.tzinfo
        )
        return cls(start=start, end=end)

    def same_span(self, other: "TimeInterval") -> bool:
        return self.start == other.start and self.end == other.end


class BusySlot(TimeInterval):
    """A committed interval on the tutor's calendar."""

    slot_type: SlotType = SlotType.LESSON
    lesson_id: str | None = None  # booking the slot belongs to, when the calendar knows it


class StudentSelection(BaseModel):
    """One selected student and the subjects booked for them, in selection order."""

    model_config = ConfigDict(frozen=True)

    student_id: str = Field(min_length=1)
    subjects: tuple[str, ...] = ()

    @field_validator("subjects")
    @classmethod
    def _dedupe_subjects(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(value))


class EditTarget(BaseModel):
    """The lesson being moved in edit mode.

    scheduled_at/duration_minutes describe where the lesson currently sits, so
    its own busy slot can be recognised even when the calendar does not tag
    slots with lesson ids.
    """

    model_config = ConfigDict(frozen=True)

    lesson_id: str = Field(min_length=1)
    scheduled_at: datetime | None = None
    duration_minutes: int | None = Field(default=None, gt=0)

    @field_validator("scheduled_at")
    @classmethod
    def _aware_current_start(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        return _require_aware(value)

    @property
    def interval(self) -> TimeInterval | None:
        if self.scheduled_at is None or self.duration_minutes is None:
            return None
        return TimeInterval.starting_at(self.scheduled_at, self.duration_minutes)


class BookingRequest(BaseModel):
    """Everything the tutor selected for one submission.

    Only structural rules are enforced here (time-of-day ranges, no duplicate
    students). Business rules such as "at least one subject per student" and
    the duration range are checked by the selection expander so that every
    user-facing validation failure is reported the same way.
    """

    model_config = ConfigDict(frozen=True)

    student_selections: tuple[StudentSelection, ...] = ()
    dates: tuple[date, ...] = ()
    hour: int = Field(ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)
    duration_minutes: int
    recurrence: Recurrence = Recurrence.NONE
    recurrence_end_date: date | None = None
    combined_session: bool = False
    notes: str | None = None
    editing: EditTarget | None = None

    @field_validator("dates")
    @classmethod
    def _sorted_unique_dates(cls, value: tuple[date, ...]) -> tuple[date, ...]:
        return tuple(sorted(set(value)))

    @field_validator("notes")
    @classmethod
    def _strip_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @model_validator(mode="after")
    def _unique_students(self) -> "BookingRequest":
        seen: set[str] = set()
        for selection in self.student_selections:
            if selection.student_id in seen:
                raise ValueError(f"student {selection.student_id!r} is selected twice")
            seen.add(selection.student_id)
        return self

    @property
    def time_of_day(self) -> time:
        return time(self.hour, self.minute)

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not Recurrence.NONE

    @property
    def lesson_count(self) -> int:
        """Student x subject pairs booked per date."""
        return sum(len(s.subjects) for s in self.student_selections)


def parse_request(data: Mapping[str, Any]) -> BookingRequest:
    """Build a BookingRequest from raw input (JSON, form data).

    Raises:
        ValidationError: If the input does not describe a well-formed request.
    """
    try:
        return BookingRequest.model_validate(data)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid booking request: {problems}") from e


class LessonMember(BaseModel):
    """A student+subject pairing inside a session."""

    model_config = ConfigDict(frozen=True)

    student_id: str
    subject_id: str
    duration_minutes: int = Field(gt=0)


class _Booking(BaseModel):
    model_config = ConfigDict(frozen=True)

    scheduled_at: datetime
    duration_minutes: int = Field(gt=0)
    notes: str | None = None
    recurrence_tag: str | None = None

    @field_validator("scheduled_at")
    @classmethod
    def _aware_start(cls, value: datetime) -> datetime:
        return _require_aware(value)

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval.starting_at(self.scheduled_at, self.duration_minutes)

    @property
    def day(self) -> date:
        """Calendar day in the zone scheduled_at was expressed in."""
        return self.scheduled_at.date()


class IndividualLesson(_Booking):
    kind: Literal["lesson"] = "lesson"
    student_id: str
    subject_id: str

    def describe(self) -> str:
        return f"{self.subject_id} for {self.student_id} at {self.scheduled_at:%Y-%m-%d %H:%M}"


class Session(_Booking):
    kind: Literal["session"] = "session"
    members: tuple[LessonMember, ...] = Field(min_length=2)

    def describe(self) -> str:
        return f"session of {len(self.members)} lessons at {self.scheduled_at:%Y-%m-%d %H:%M}"


CandidateBooking = Annotated[Union[IndividualLesson, Session], Field(discriminator="kind")]


def _clock(moment: datetime) -> str:
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"


class Conflict(BaseModel):
    """First candidate found overlapping a busy slot, and that slot."""

    model_config = ConfigDict(frozen=True)

    candidate: CandidateBooking
    slot: BusySlot

    @property
    def message(self) -> str:
        tz = self.candidate.scheduled_at.tzinfo
        start = self.slot.start.astimezone(tz)
        end = self.slot.end.astimezone(tz)
        when = self.candidate.scheduled_at
        return (
            f"Scheduling conflict: There is already a {_slot_noun(self.slot.slot_type)} "
            f"from {_clock(start)} to {_clock(end)} on {when:%a, %b} {when.day}. "
            "Please choose a different time."
        )


def _slot_noun(slot_type: SlotType) -> str:
    if slot_type is SlotType.BREAK:
        return "break"
    return "session"


class BookingResult(BaseModel):
    """Outcome of one submission, returned instead of raised.

    created_ids is filled even on failure: a persistence error part way
    through leaves earlier bookings in place. In edit mode (edited) created_ids
    holds the id of the lesson that was moved.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    state: SubmissionState
    candidates: tuple[CandidateBooking, ...] = ()
    created_ids: tuple[str, ...] = ()
    error: BookingError | None = None
    dry_run: bool = False
    edited: bool = False

    @property
    def ok(self) -> bool:
        return self.state is SubmissionState.COMPLETED

    @property
    def conflict(self) -> Conflict | None:
        if isinstance(self.error, SchedulingConflict):
            return self.error.conflict
        return None

    @property
    def summary(self) -> str:
        total = len(self.candidates)
        if self.dry_run and self.ok:
            if self.edited:
                return "Lesson can be moved"
            return f"{total} bookings can be created"
        if self.edited:
            return "Lesson updated" if self.ok else f"Lesson not updated: {self.error}"
        if self.ok:
            return f"{len(self.created_ids)} of {total} bookings created"
        return f"{len(self.created_ids)} of {total} bookings created: {self.error}"
