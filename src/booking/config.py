"""Booking engine configuration loaded from environment variables.

For local development, create a .env file in the project root.
"""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class BookingConfig(BaseSettings):
    """Booking engine configuration loaded from environment variables.

    Settings are loaded from environment variables with sensible defaults.
    """

    # Calendar
    business_timezone: str = Field(
        default="America/Los_Angeles",
        description="IANA zone in which dates, times and busy slots are interpreted",
    )

    # Lesson rules
    min_duration_minutes: int = Field(
        default=15,
        description="Shortest lesson or session that can be booked",
    )
    max_duration_minutes: int = Field(
        default=240,
        description="Longest lesson or session that can be booked",
    )
    max_recurrence_occurrences: int = Field(
        default=52,
        description="Occurrences materialised for a recurring booking with no end date",
    )
    strict_recurrence_anchor: bool = Field(
        default=True,
        description=(
            "Reject recurring requests that also select several dates. "
            "If False, only the earliest date is used and a warning is logged."
        ),
    )
    subject_durations: dict[str, int] = Field(
        default_factory=dict,
        description="Base duration per subject, used when one student books several subjects in a session",
    )

    # Conflict checking
    busy_slot_retry_attempts: int = Field(
        default=2,
        description="Attempts per busy-slot query before treating the day as free",
    )
    busy_slot_retry_wait_seconds: float = Field(
        default=1.0,
        description="Fixed wait between busy-slot query attempts",
    )
    concurrent_busy_slot_queries: bool = Field(
        default=False,
        description="Fetch busy slots for all dates at once instead of day by day",
    )

    # Supabase (PostgREST) store
    supabase_url: str = Field(
        default="",
        description="Supabase project URL, e.g. https://xyz.supabase.co",
    )
    supabase_key: str = Field(
        default="",
        description="Supabase API key sent as apikey and bearer token",
    )
    supabase_series_column: str | None = Field(
        default=None,
        description="Optional scheduled_lessons/lesson_sessions column that stores the series tag",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for each HTTP request to Supabase",
    )
    http_retry_attempts: int = Field(
        default=3,
        description="Attempts per Supabase request on transient failures",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("business_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown time zone {value!r}") from e
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.business_timezone)


_config: BookingConfig | None = None


def get_config() -> BookingConfig:
    """Get the booking configuration singleton.

    Returns:
        BookingConfig: Booking configuration instance
    """
    global _config
    if _config is None:
        _config = BookingConfig()
    return _config
