"""Lesson booking engine for the tutoring app.

Turns a tutor's selection (students, subjects, dates, time, duration and an
optional recurrence rule) into validated lesson and session bookings, rejects
anything that overlaps the tutor's calendar, and persists the rest through a
host-supplied store.
"""

from src.booking.engine import BookingEngine
from src.booking.errors import (
    BookingError,
    PersistenceError,
    SchedulingConflict,
    ValidationError,
)
from src.booking.models import (
    BookingRequest,
    BookingResult,
    BusySlot,
    EditTarget,
    IndividualLesson,
    Recurrence,
    Session,
    StudentSelection,
    SubmissionState,
    parse_request,
)
from src.booking.store import BusySlotProvider, LessonStore

__all__ = [
    "BookingEngine",
    "BookingError",
    "BookingRequest",
    "BookingResult",
    "BusySlot",
    "BusySlotProvider",
    "EditTarget",
    "IndividualLesson",
    "LessonStore",
    "PersistenceError",
    "Recurrence",
    "SchedulingConflict",
    "Session",
    "StudentSelection",
    "SubmissionState",
    "ValidationError",
    "parse_request",
]
