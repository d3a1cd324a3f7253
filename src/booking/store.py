"""Interfaces the host application supplies to the booking engine.

The engine reads the tutor's calendar through a BusySlotProvider and writes
bookings through a LessonStore. Implementations signal failure by raising;
TransientError marks failures worth retrying.
"""

from datetime import date, datetime
from typing import Protocol, runtime_checkable

from src.booking.models import BusySlot, LessonMember


@runtime_checkable
class BusySlotProvider(Protocol):
    async def get_busy_slots(self, day: date) -> list[BusySlot]:
        """All committed lesson, session and break intervals on day.

        A point-in-time snapshot in the business time zone; nothing is locked
        or reserved.
        """
        ...


@runtime_checkable
class LessonStore(Protocol):
    async def create_lesson(
        self,
        student_id: str,
        subject_id: str,
        scheduled_at: datetime,
        duration_minutes: int,
        notes: str | None,
        recurrence_tag: str | None = None,
    ) -> str:
        """Persist one individual lesson and return its id."""
        ...

    async def create_session(
        self,
        scheduled_at: datetime,
        duration_minutes: int,
        notes: str | None,
        members: tuple[LessonMember, ...],
        recurrence_tag: str | None = None,
    ) -> str:
        """Persist a session with its member lessons and return the session id."""
        ...

    async def update_lesson(
        self,
        lesson_id: str,
        scheduled_at: datetime,
        duration_minutes: int,
        notes: str | None,
    ) -> None:
        """Move or resize an existing lesson."""
        ...
