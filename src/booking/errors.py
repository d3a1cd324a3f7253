"""Error hierarchy for lesson booking.

User-correctable failures (ValidationError, SchedulingConflict) are kept apart
from collaborator failures, which are further split into transient (should
retry) and permanent (should not retry) so tenacity decorators can classify
them automatically.

Example usage with tenacity:
    @retry(retry=retry_if_exception_type(TransientError), stop=stop_after_attempt(3))
    async def get_busy_slots(day: date):
        ...
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.booking.models import CandidateBooking, Conflict


class BookingError(Exception):
    """Base exception for all booking errors."""

    pass


class ValidationError(BookingError):
    """The booking request is invalid and nothing was sent to a collaborator.

    Examples: no students selected, a student with no subjects, no dates,
    duration outside the allowed range.
    """

    pass


class SchedulingConflict(BookingError):
    """A candidate booking overlaps a busy slot on the tutor's calendar."""

    def __init__(self, conflict: "Conflict") -> None:
        super().__init__(conflict.message)
        self.conflict = conflict


class CollaboratorError(BookingError):
    """Failure signalled by an external collaborator (calendar or store)."""

    pass


class TransientError(CollaboratorError):
    """Temporary failure that may succeed on retry.

    Examples: network timeouts, 503 Service Unavailable, 429 Too Many Requests.
    """

    pass


class PermanentError(CollaboratorError):
    """Failure that won't succeed on retry.

    Examples: rejected row, missing table, row-level security denial.
    """

    pass


class AvailabilityUnknown(CollaboratorError):
    """Busy slots for a day could not be read.

    Never surfaced to the user: the conflict checker logs it and treats the
    day as free.
    """

    pass


class PersistenceError(BookingError):
    """A create or update call failed part way through a submission.

    Bookings created before the failing one are not rolled back; created_ids
    lists them so the caller can report "N of M" and retry the remainder.
    """

    def __init__(
        self,
        candidate: "CandidateBooking",
        index: int,
        created_ids: list[str],
        total: int,
        cause: BaseException | None = None,
    ) -> None:
        self.candidate = candidate
        self.index = index
        self.created_ids = list(created_ids)
        self.total = total
        self.cause = cause
        reason = f": {cause}" if cause is not None else ""
        super().__init__(
            f"Failed to save booking {index + 1} of {total} "
            f"({candidate.describe()}){reason}. "
            f"{len(self.created_ids)} of {total} bookings were created."
        )
