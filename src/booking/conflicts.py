"""Conflict checking of candidate bookings against the tutor's busy slots.

Busy slots are fetched once per distinct calendar day. Candidates are then
evaluated day by day, in expansion order, and checking stops at the first
overlap so the tutor sees a single unambiguous conflict.

A day whose busy slots cannot be read is treated as free: tutors must be able
to book while the calendar is unreachable, at the risk of an undetected
double booking. The degradation is logged as availability_unknown.
"""

import asyncio
from collections import defaultdict
from collections.abc import Sequence
from datetime import date, tzinfo

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from src.booking.errors import AvailabilityUnknown, TransientError
from src.booking.logging import get_logger
from src.booking.models import BusySlot, CandidateBooking, Conflict, EditTarget
from src.booking.store import BusySlotProvider
from src.booking.timeslots import local_day, overlaps

log = get_logger(__name__)


def is_edited_lesson(slot: BusySlot, editing: EditTarget | None) -> bool:
    """True if slot is the lesson being moved, which cannot conflict with itself."""
    if editing is None:
        return False
    if slot.lesson_id is not None and slot.lesson_id == editing.lesson_id:
        return True
    current = editing.interval
    return current is not None and slot.same_span(current)


def group_by_day(
    candidates: Sequence[CandidateBooking], tz: tzinfo
) -> dict[date, list[CandidateBooking]]:
    """Candidates keyed by business-zone day, days ascending, order kept within a day."""
    grouped: dict[date, list[CandidateBooking]] = defaultdict(list)
    for candidate in candidates:
        grouped[local_day(candidate.scheduled_at, tz)].append(candidate)
    return dict(sorted(grouped.items()))


def find_conflict(
    candidates: Sequence[CandidateBooking],
    slots: Sequence[BusySlot],
    editing: EditTarget | None = None,
) -> Conflict | None:
    """First (candidate, slot) overlap, walking candidates then slots in order."""
    for candidate in candidates:
        interval = candidate.interval
        for slot in slots:
            if is_edited_lesson(slot, editing):
                continue
            if overlaps(interval, slot):
                return Conflict(candidate=candidate, slot=slot)
    return None


class ConflictChecker:
    """Checks candidate bookings against busy slots from a BusySlotProvider."""

    def __init__(
        self,
        provider: BusySlotProvider,
        *,
        tz: tzinfo,
        retry_attempts: int = 2,
        retry_wait_seconds: float = 1.0,
        concurrent_queries: bool = False,
    ) -> None:
        """Initialize ConflictChecker.

        Args:
            provider: Source of busy slots for a calendar day.
            tz: Business time zone used to assign candidates to days.
            retry_attempts: Attempts per day on TransientError.
            retry_wait_seconds: Fixed wait between attempts.
            concurrent_queries: Fetch every day's slots up front with
                asyncio.gather instead of one day at a time.
        """
        self.provider = provider
        self.tz = tz
        self.retry_attempts = max(1, retry_attempts)
        self.retry_wait_seconds = retry_wait_seconds
        self.concurrent_queries = concurrent_queries

    async def _fetch_busy_slots(self, day: date) -> list[BusySlot]:
        """Busy slots for day, retrying transient failures.

        Raises:
            AvailabilityUnknown: If the slots could not be read.
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_fixed(self.retry_wait_seconds),
                retry=retry_if_exception_type(TransientError),
                reraise=True,
            ):
                with attempt:
                    return list(await self.provider.get_busy_slots(day))
        except Exception as e:
            raise AvailabilityUnknown(f"Busy slots for {day.isoformat()} unavailable: {e}") from e
        raise AvailabilityUnknown(f"Busy slots for {day.isoformat()} unavailable")

    async def busy_slots(self, day: date) -> list[BusySlot]:
        """Busy slots for day, or no slots when availability is unknown."""
        try:
            return await self._fetch_busy_slots(day)
        except AvailabilityUnknown as e:
            log.warning(
                "availability_unknown",
                day=day,
                error=str(e.__cause__ or e),
                type=type(e.__cause__ or e).__name__,
                policy="permit",
            )
            return []

    async def check(
        self,
        candidates: Sequence[CandidateBooking],
        editing: EditTarget | None = None,
    ) -> Conflict | None:
        """Find the first candidate that overlaps a busy slot.

        Args:
            candidates: Candidate bookings in expansion order.
            editing: Lesson being moved, whose own slot is ignored.

        Returns:
            The first conflict, or None when every candidate fits.
        """
        by_day = group_by_day(candidates, self.tz)
        if not by_day:
            return None

        prefetched: dict[date, list[BusySlot]] = {}
        if self.concurrent_queries:
            days = list(by_day)
            results = await asyncio.gather(*(self.busy_slots(day) for day in days))
            prefetched = dict(zip(days, results))

        for day, day_candidates in by_day.items():
            slots = prefetched[day] if day in prefetched else await self.busy_slots(day)
            conflict = find_conflict(day_candidates, slots, editing)
            if conflict is not None:
                log.warning(
                    "conflict_detected",
                    day=day,
                    candidate=conflict.candidate.describe(),
                    slot_start=conflict.slot.start,
                    slot_end=conflict.slot.end,
                    slot_type=conflict.slot.slot_type.value,
                )
                return conflict
            log.debug("day_clear", day=day, candidates=len(day_candidates), busy_slots=len(slots))

        return None
