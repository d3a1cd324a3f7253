"""Supabase (PostgREST) implementation of BusySlotProvider and LessonStore.

Tables and functions used:
    rpc get_busy_slots_for_date(check_date)  -> rows {start_time, end_time, slot_type}
    scheduled_lessons                        -> individual lessons and session members
    lesson_sessions                          -> combined sessions

HTTP calls go through a blocking requests.Session and are moved off the
event loop with asyncio.to_thread. Reads, updates and deletes are retried on
TransientError; inserts are sent once because a retried insert whose first
attempt reached the database would create a duplicate lesson.
"""

import asyncio
from datetime import date, datetime
from typing import Any

import requests
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.booking.config import BookingConfig
from src.booking.errors import PermanentError, TransientError
from src.booking.logging import get_logger
from src.booking.models import BusySlot, LessonMember, SlotType

log = get_logger(__name__)

BUSY_SLOTS_RPC = "/rpc/get_busy_slots_for_date"
LESSONS_TABLE = "/scheduled_lessons"
SESSIONS_TABLE = "/lesson_sessions"

_SLOT_TYPES = {t.value for t in SlotType}


class SupabaseCalendar:
    """Tutor calendar backed by a Supabase project's REST API."""

    def __init__(
        self,
        url: str,
        key: str,
        *,
        timeout: float = 30.0,
        retry_attempts: int = 3,
        series_column: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize SupabaseCalendar.

        Args:
            url: Project URL, e.g. https://xyz.supabase.co.
            key: API key, sent as both apikey and bearer token.
            timeout: Per-request timeout in seconds.
            retry_attempts: Attempts for retryable calls.
            series_column: Column that stores the recurrence tag, if the
                schema has one.
            session: Preconfigured requests.Session (tests, connection reuse).
        """
        if not url:
            raise ValueError("Supabase URL is not configured")
        self.rest_url = f"{url.rstrip('/')}/rest/v1"
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.series_column = series_column
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
            }
        )

    @classmethod
    def from_config(cls, config: BookingConfig) -> "SupabaseCalendar":
        return cls(
            config.supabase_url,
            config.supabase_key,
            timeout=config.http_timeout_seconds,
            retry_attempts=config.http_retry_attempts,
            series_column=config.supabase_series_column,
        )

    def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, str] | None = None,
        prefer: str | None = None,
    ) -> Any:
        """Send one request and classify failures.

        Raises:
            TransientError: Connection problems, timeouts, 429 and 5xx responses.
            PermanentError: Any other 4xx response.
        """
        headers = {"Prefer": prefer} if prefer else None
        try:
            resp = self.session.request(
                method,
                f"{self.rest_url}{path}",
                json=json,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            log.warning("supabase_unreachable", method=method, path=path, error=str(e))
            raise TransientError(f"{method} {path} failed: {e}") from e

        if resp.status_code == 429 or resp.status_code >= 500:
            log.warning("supabase_transient_error", method=method, path=path, status=resp.status_code)
            raise TransientError(f"{method} {path} failed: {resp.status_code} {resp.text[:200]}")
        if resp.status_code >= 400:
            log.error("supabase_request_rejected", method=method, path=path, status=resp.status_code)
            raise PermanentError(f"{method} {path} rejected: {resp.status_code} {resp.text[:200]}")

        if not resp.content:
            return None
        return resp.json()

    def _send_with_retry(self, method: str, path: str, **kwargs: Any) -> Any:
        retrying = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=0.5, max=5),
            retry=retry_if_exception_type(TransientError),
            reraise=True,
        )
        return retrying(self._send, method, path, **kwargs)

    def _insert(self, path: str, rows: Any) -> list[dict[str, Any]]:
        created = self._send("POST", path, json=rows, prefer="return=representation")
        if not created:
            raise PermanentError(f"POST {path} returned no rows")
        return created

    def _tagged(self, row: dict[str, Any], recurrence_tag: str | None) -> dict[str, Any]:
        if self.series_column and recurrence_tag:
            row[self.series_column] = recurrence_tag
        return row

    @staticmethod
    def _slot(row: dict[str, Any]) -> BusySlot:
        slot_type = row.get("slot_type") or SlotType.LESSON.value
        return BusySlot(
            start=datetime.fromisoformat(row["start_time"]),
            end=datetime.fromisoformat(row["end_time"]),
            slot_type=slot_type if slot_type in _SLOT_TYPES else SlotType.LESSON,
            lesson_id=row.get("lesson_id"),
        )

    # BusySlotProvider

    def fetch_busy_slots(self, day: date) -> list[BusySlot]:
        rows = self._send_with_retry("POST", BUSY_SLOTS_RPC, json={"check_date": day.isoformat()})
        slots = [self._slot(row) for row in rows or []]
        log.debug("busy_slots_fetched", day=day, count=len(slots))
        return slots

    async def get_busy_slots(self, day: date) -> list[BusySlot]:
        return await asyncio.to_thread(self.fetch_busy_slots, day)

    # LessonStore

    def insert_lesson(
        self,
        student_id: str,
        subject_id: str,
        scheduled_at: datetime,
        duration_minutes: int,
        notes: str | None,
        recurrence_tag: str | None = None,
    ) -> str:
        row = self._tagged(
            {
                "student_id": student_id,
                "subject": subject_id,
                "scheduled_at": scheduled_at.isoformat(),
                "duration_min": duration_minutes,
                "notes": notes,
                "status": "scheduled",
            },
            recurrence_tag,
        )
        return str(self._insert(LESSONS_TABLE, row)[0]["id"])

    def insert_session(
        self,
        scheduled_at: datetime,
        duration_minutes: int,
        notes: str | None,
        members: tuple[LessonMember, ...],
        recurrence_tag: str | None = None,
    ) -> str:
        session_row = self._tagged(
            {
                "scheduled_at": scheduled_at.isoformat(),
                "duration_min": duration_minutes,
                "notes": notes,
            },
            recurrence_tag,
        )
        session_id = str(self._insert(SESSIONS_TABLE, session_row)[0]["id"])

        member_rows = [
            self._tagged(
                {
                    "student_id": member.student_id,
                    "subject": member.subject_id,
                    "scheduled_at": scheduled_at.isoformat(),
                    "duration_min": member.duration_minutes,
                    "session_id": session_id,
                    "status": "scheduled",
                },
                recurrence_tag,
            )
            for member in members
        ]
        try:
            self._insert(LESSONS_TABLE, member_rows)
        except (TransientError, PermanentError):
            # A session without member lessons is never shown; remove it
            try:
                self._send_with_retry("DELETE", SESSIONS_TABLE, params={"id": f"eq.{session_id}"})
            except (TransientError, PermanentError) as cleanup_error:
                log.error(
                    "session_cleanup_failed",
                    session_id=session_id,
                    error=str(cleanup_error),
                )
            raise
        return session_id

    def patch_lesson(
        self,
        lesson_id: str,
        scheduled_at: datetime,
        duration_minutes: int,
        notes: str | None,
    ) -> None:
        self._send_with_retry(
            "PATCH",
            LESSONS_TABLE,
            json={
                "scheduled_at": scheduled_at.isoformat(),
                "duration_min": duration_minutes,
                "notes": notes,
            },
            params={"id": f"eq.{lesson_id}"},
        )

    async def create_lesson(
        self,
        student_id: str,
        subject_id: str,
        scheduled_at: datetime,
        duration_minutes: int,
        notes: str | None,
        recurrence_tag: str | None = None,
    ) -> str:
        return await asyncio.to_thread(
            self.insert_lesson,
            student_id,
            subject_id,
            scheduled_at,
            duration_minutes,
            notes,
            recurrence_tag,
        )

    async def create_session(
        self,
        scheduled_at: datetime,
        duration_minutes: int,
        notes: str | None,
        members: tuple[LessonMember, ...],
        recurrence_tag: str | None = None,
    ) -> str:
        return await asyncio.to_thread(
            self.insert_session,
            scheduled_at,
            duration_minutes,
            notes,
            members,
            recurrence_tag,
        )

    async def update_lesson(
        self,
        lesson_id: str,
        scheduled_at: datetime,
        duration_minutes: int,
        notes: str | None,
    ) -> None:
        await asyncio.to_thread(self.patch_lesson, lesson_id, scheduled_at, duration_minutes, notes)
