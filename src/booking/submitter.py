"""Sequential persistence of validated candidate bookings."""

from collections.abc import Sequence

from src.booking.errors import PersistenceError, ValidationError
from src.booking.logging import get_logger
from src.booking.models import CandidateBooking, EditTarget, IndividualLesson, Session
from src.booking.store import LessonStore

log = get_logger(__name__)


class BookingSubmitter:
    """Writes candidate bookings to a LessonStore one at a time.

    Calls are strictly sequential and stop at the first failure. Bookings
    already written stay written; the store offers no cross-object
    transaction to roll them back.
    """

    def __init__(self, store: LessonStore) -> None:
        self.store = store

    async def _persist(self, candidate: CandidateBooking) -> str:
        if isinstance(candidate, Session):
            return await self.store.create_session(
                scheduled_at=candidate.scheduled_at,
                duration_minutes=candidate.duration_minutes,
                notes=candidate.notes,
                members=candidate.members,
                recurrence_tag=candidate.recurrence_tag,
            )
        return await self.store.create_lesson(
            student_id=candidate.student_id,
            subject_id=candidate.subject_id,
            scheduled_at=candidate.scheduled_at,
            duration_minutes=candidate.duration_minutes,
            notes=candidate.notes,
            recurrence_tag=candidate.recurrence_tag,
        )

    async def _update(self, candidates: Sequence[CandidateBooking], editing: EditTarget) -> list[str]:
        if len(candidates) != 1 or not isinstance(candidates[0], IndividualLesson):
            raise ValidationError("Editing a lesson requires exactly one individual lesson")
        candidate = candidates[0]
        try:
            await self.store.update_lesson(
                lesson_id=editing.lesson_id,
                scheduled_at=candidate.scheduled_at,
                duration_minutes=candidate.duration_minutes,
                notes=candidate.notes,
            )
        except Exception as e:
            log.error(
                "booking_update_failed",
                lesson_id=editing.lesson_id,
                error=str(e),
                type=type(e).__name__,
            )
            raise PersistenceError(candidate, 0, [], 1, cause=e) from e
        log.info("booking_updated", lesson_id=editing.lesson_id, scheduled_at=candidate.scheduled_at)
        return [editing.lesson_id]

    async def submit(
        self,
        candidates: Sequence[CandidateBooking],
        editing: EditTarget | None = None,
    ) -> list[str]:
        """Persist every candidate in order.

        Args:
            candidates: Conflict-checked candidates in expansion order.
            editing: Lesson being moved; switches to a single update call.

        Returns:
            Ids of the created (or updated) bookings, in candidate order.

        Raises:
            PersistenceError: On the first store failure, listing what was
                created before it.
        """
        if editing is not None:
            return await self._update(candidates, editing)

        created: list[str] = []
        total = len(candidates)
        for index, candidate in enumerate(candidates):
            try:
                booking_id = await self._persist(candidate)
            except Exception as e:
                log.error(
                    "booking_persist_failed",
                    index=index,
                    total=total,
                    created=len(created),
                    candidate=candidate.describe(),
                    error=str(e),
                    type=type(e).__name__,
                )
                raise PersistenceError(candidate, index, created, total, cause=e) from e
            created.append(booking_id)
            log.info(
                "booking_persisted",
                kind=candidate.kind,
                booking_id=booking_id,
                index=index,
                total=total,
            )
        return created
