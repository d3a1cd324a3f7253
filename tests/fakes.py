from __future__ import annotations

from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from src.booking.config import BookingConfig
from src.booking.models import BusySlot, SlotType, TimeInterval

TZ = ZoneInfo("America/Los_Angeles")


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=TZ)


def busy(day: date, hour: int, minute: int, minutes: int, **kwargs) -> BusySlot:
    interval = TimeInterval.starting_at(at(day, hour, minute), minutes)
    return BusySlot(start=interval.start, end=interval.end, **kwargs)


def make_config(**overrides) -> BookingConfig:
    settings = {
        "business_timezone": "America/Los_Angeles",
        "busy_slot_retry_wait_seconds": 0,
        "_env_file": None,
    }
    settings.update(overrides)
    return BookingConfig(**settings)


class FakeCalendar:
    """BusySlotProvider returning canned slots and recording every query."""

    def __init__(
        self,
        slots: dict[date, list[BusySlot]] | None = None,
        failures: dict[date, list[Exception]] | None = None,
    ) -> None:
        self.slots = slots or {}
        self.failures = failures or {}
        self.calls: list[date] = []

    async def get_busy_slots(self, day: date) -> list[BusySlot]:
        self.calls.append(day)
        pending = self.failures.get(day)
        if pending:
            raise pending.pop(0)
        return list(self.slots.get(day, []))


class FakeStore:
    """LessonStore recording calls; fail_at lists 0-based call numbers that raise."""

    def __init__(self, fail_at: set[int] | None = None) -> None:
        self.fail_at = fail_at or set()
        self.calls: list[tuple[str, dict]] = []

    def _record(self, name: str, params: dict) -> str:
        index = len(self.calls)
        self.calls.append((name, params))
        if index in self.fail_at:
            raise RuntimeError(f"insert {index + 1} rejected")
        return f"{name}-{index + 1}"

    async def create_lesson(self, **params) -> str:
        return self._record("lesson", params)

    async def create_session(self, **params) -> str:
        return self._record("session", params)

    async def update_lesson(self, **params) -> None:
        self._record("update", params)


__all__ = [
    "TZ",
    "FakeCalendar",
    "FakeStore",
    "SlotType",
    "at",
    "busy",
    "make_config",
]
