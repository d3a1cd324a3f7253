"""Booking engine: validate, expand, conflict-check and submit a BookingRequest.

One call walks the submission state machine

    idle -> validating -> expanding -> conflict_checking -> submitting -> completed | failed

and returns a BookingResult. Nothing is kept between calls. Validation and
conflict failures happen before any write, so nothing is persisted; a
persistence failure may leave earlier bookings in place, listed in
BookingResult.created_ids.
"""

from datetime import date
from uuid import uuid4

from structlog.contextvars import bound_contextvars

from src.booking.config import BookingConfig, get_config
from src.booking.conflicts import ConflictChecker
from src.booking.errors import PersistenceError, SchedulingConflict, ValidationError
from src.booking.logging import get_logger
from src.booking.models import BookingRequest, BookingResult, CandidateBooking, SubmissionState
from src.booking.recurrence import expand_recurrence
from src.booking.selection import expand_selection, validate_request
from src.booking.store import BusySlotProvider, LessonStore
from src.booking.submitter import BookingSubmitter

log = get_logger(__name__)


class BookingEngine:
    """Turns a tutor's selection into persisted lessons and sessions."""

    def __init__(
        self,
        provider: BusySlotProvider,
        store: LessonStore,
        config: BookingConfig | None = None,
    ) -> None:
        """Initialize BookingEngine.

        Args:
            provider: Calendar the conflict checker reads busy slots from.
            store: Destination for created and updated bookings.
            config: Engine settings; defaults to the environment configuration.
        """
        self.config = config or get_config()
        self.tz = self.config.tz
        self.checker = ConflictChecker(
            provider,
            tz=self.tz,
            retry_attempts=self.config.busy_slot_retry_attempts,
            retry_wait_seconds=self.config.busy_slot_retry_wait_seconds,
            concurrent_queries=self.config.concurrent_busy_slot_queries,
        )
        self.submitter = BookingSubmitter(store)

    def dates_for(self, request: BookingRequest) -> list[date]:
        """Occurrence dates for a request.

        A recurring request is anchored on its single selected date and the
        recurrence rule produces every other occurrence.

        Raises:
            ValidationError: If a recurring request selects several dates and
                strict_recurrence_anchor is on.
        """
        if not request.is_recurring or not request.dates:
            return list(request.dates)

        anchor = request.dates[0]
        if len(request.dates) > 1:
            if self.config.strict_recurrence_anchor:
                raise ValidationError(
                    "Recurring lessons repeat from a single start date. "
                    "Select one date or turn off recurrence."
                )
            log.warning(
                "recurrence_dates_ignored",
                anchor=anchor,
                ignored=[d.isoformat() for d in request.dates[1:]],
            )

        max_occurrences = None
        if request.recurrence_end_date is None:
            max_occurrences = self.config.max_recurrence_occurrences
        return expand_recurrence(
            anchor,
            request.recurrence,
            end_date=request.recurrence_end_date,
            max_occurrences=max_occurrences,
        )

    def expand(self, request: BookingRequest) -> list[CandidateBooking]:
        """Validated candidate bookings for a request, in submission order."""
        validate_request(request, self.config.min_duration_minutes, self.config.max_duration_minutes)
        dates = self.dates_for(request)
        tag = f"{request.recurrence.value}:{uuid4().hex}" if request.is_recurring else None
        return expand_selection(
            request,
            dates,
            tz=self.tz,
            min_duration=self.config.min_duration_minutes,
            max_duration=self.config.max_duration_minutes,
            subject_durations=self.config.subject_durations,
            recurrence_tag=tag,
        )

    async def schedule(self, request: BookingRequest) -> BookingResult:
        """Validate, conflict-check and persist every booking in request."""
        return await self._run(request, dry_run=False)

    async def plan(self, request: BookingRequest) -> BookingResult:
        """Validate and conflict-check request without writing anything."""
        return await self._run(request, dry_run=True)

    async def _run(self, request: BookingRequest, *, dry_run: bool) -> BookingResult:
        with bound_contextvars(submission_id=uuid4().hex[:12], dry_run=dry_run):
            state = SubmissionState.IDLE
            candidates: tuple[CandidateBooking, ...] = ()
            edited = request.editing is not None

            def advance(next_state: SubmissionState) -> SubmissionState:
                log.debug("submission_state", previous=state.value, state=next_state.value)
                return next_state

            try:
                state = advance(SubmissionState.VALIDATING)
                validate_request(
                    request, self.config.min_duration_minutes, self.config.max_duration_minutes
                )

                state = advance(SubmissionState.EXPANDING)
                candidates = tuple(self.expand(request))

                state = advance(SubmissionState.CONFLICT_CHECKING)
                conflict = await self.checker.check(candidates, request.editing)
                if conflict is not None:
                    raise SchedulingConflict(conflict)

                if dry_run:
                    log.info("submission_planned", candidates=len(candidates))
                    return BookingResult(
                        state=SubmissionState.COMPLETED,
                        candidates=candidates,
                        dry_run=True,
                        edited=edited,
                    )

                state = advance(SubmissionState.SUBMITTING)
                created = await self.submitter.submit(candidates, request.editing)
            except (ValidationError, SchedulingConflict) as e:
                log.info("submission_rejected", state=state.value, reason=str(e))
                return BookingResult(
                    state=SubmissionState.FAILED,
                    candidates=candidates,
                    error=e,
                    dry_run=dry_run,
                    edited=edited,
                )
            except PersistenceError as e:
                log.error(
                    "submission_failed",
                    created=len(e.created_ids),
                    total=e.total,
                    failed_index=e.index,
                )
                return BookingResult(
                    state=SubmissionState.FAILED,
                    candidates=candidates,
                    created_ids=tuple(e.created_ids),
                    error=e,
                    edited=edited,
                )

            log.info("submission_completed", created=len(created), mode="edit" if request.editing else "create")
            return BookingResult(
                state=SubmissionState.COMPLETED,
                candidates=candidates,
                created_ids=tuple(created),
                edited=edited,
            )
