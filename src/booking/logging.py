"""Structured logging for the booking engine, using structlog.

Events are snake_case (conflict_detected, booking_persisted, ...) with
key/value context. Dates and datetimes may be passed as values directly; they
are rendered as ISO strings so console and JSON output agree.
"""

import logging
import sys
from datetime import date, datetime
from typing import Any

import structlog

# HTTP client loggers that are only useful when debugging the Supabase adapter
_CHATTY_LOGGERS = ("urllib3", "requests")


def render_calendar_values(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor: date and datetime values -> ISO 8601 strings."""
    for key, value in event_dict.items():
        if isinstance(value, (date, datetime)):
            event_dict[key] = value.isoformat()
    return event_dict


def setup_logging(json_output: bool = False, log_level: str = "INFO") -> None:
    """Configure structlog processors and output format.

    Output goes to stderr so the booking CLI can print its table or JSON
    result on stdout.

    Args:
        json_output: If True, output JSON (production). If False, console format (dev).
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        render_calendar_values,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors += [structlog.dev.set_exc_info, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers = [logging.StreamHandler(sys.stderr)]
    root.setLevel(numeric_level)
    http_level = numeric_level if numeric_level <= logging.DEBUG else max(numeric_level, logging.WARNING)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(http_level)


def setup_logging_from_config(config) -> None:
    """Configure logging from a BookingConfig's log_json / log_level fields."""
    setup_logging(json_output=config.log_json, log_level=config.log_level)


def get_logger(name: str) -> structlog.BoundLogger:
    """Logger for a booking module (pass __name__)."""
    return structlog.get_logger(name)
