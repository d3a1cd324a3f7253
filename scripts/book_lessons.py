"""Book lessons on the tutor's Supabase calendar from a JSON request file.

Expands the request (students x subjects x dates, or a recurring series),
checks every booking against the tutor's busy slots and, with --execute,
creates the lessons or combined sessions.

Run with: python scripts/book_lessons.py request.json              # dry-run (default)
Execute:  python scripts/book_lessons.py request.json --execute
JSON:     python scripts/book_lessons.py request.json --json

Request file example:
    {
      "student_selections": [
        {"student_id": "6c1f...", "subjects": ["piano", "math"]},
        {"student_id": "9a2e...", "subjects": ["math"]}
      ],
      "dates": ["2025-03-10"],
      "time": "15:00",
      "duration_minutes": 60,
      "recurrence": "weekly",
      "recurrence_end_date": "2025-05-31",
      "combined_session": true
    }

"time" ("HH:MM") may be given instead of "hour" and "minute".
"recurrence_weeks" (4, 8 or 12) may be given instead of "recurrence_end_date".

Exit codes:
  0 = every booking planned (dry-run) or created (--execute)
  1 = invalid request, scheduling conflict or store failure (message on stderr)
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.booking.config import get_config  # noqa: E402
from src.booking.engine import BookingEngine  # noqa: E402
from src.booking.errors import ValidationError  # noqa: E402
from src.booking.logging import setup_logging_from_config  # noqa: E402
from src.booking.models import (  # noqa: E402
    BookingRequest,
    BookingResult,
    IndividualLesson,
    parse_request,
)
from src.booking.recurrence import HORIZON_PRESETS_WEEKS, recurrence_horizon  # noqa: E402
from src.booking.supabase import SupabaseCalendar  # noqa: E402


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments using argparse."""
    parser = argparse.ArgumentParser(
        description="Book lessons from a JSON request file.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("request", type=str, help="Path to the booking request JSON file")
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Create the bookings (default is a dry run)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON instead of a table",
    )
    return parser.parse_args(argv)


def load_request(raw: dict[str, Any]) -> BookingRequest:
    """Build a BookingRequest from request-file JSON.

    Raises:
        ValidationError: If the file content is not a valid request.
    """
    data = dict(raw)
    clock = data.pop("time", None)
    if clock is not None:
        try:
            hour, minute = (int(part) for part in str(clock).split(":"))
        except ValueError as e:
            raise ValidationError(f"Invalid time {clock!r}, expected HH:MM") from e
        data.setdefault("hour", hour)
        data.setdefault("minute", minute)
    weeks = data.pop("recurrence_weeks", None)
    request = parse_request(data)
    if weeks is None:
        return request

    if weeks not in HORIZON_PRESETS_WEEKS:
        presets = ", ".join(str(w) for w in HORIZON_PRESETS_WEEKS)
        raise ValidationError(f"recurrence_weeks must be one of {presets}, got {weeks!r}")
    if request.recurrence_end_date is not None:
        raise ValidationError("Give either recurrence_weeks or recurrence_end_date, not both")
    if not request.is_recurring or not request.dates:
        raise ValidationError("recurrence_weeks needs a recurrence and a start date")
    end_date = recurrence_horizon(request.dates[0], weeks)
    return request.model_copy(update={"recurrence_end_date": end_date})


def format_table(result: BookingResult) -> str:
    """Human-readable listing of the bookings in a result."""
    lines = []
    for index, candidate in enumerate(result.candidates):
        when = f"{candidate.scheduled_at:%a %Y-%m-%d %H:%M}"
        if isinstance(candidate, IndividualLesson):
            who = f"{candidate.student_id} / {candidate.subject_id}"
        else:
            who = ", ".join(f"{m.student_id} / {m.subject_id} ({m.duration_minutes}m)" for m in candidate.members)
        status = ""
        if index < len(result.created_ids):
            status = f"  -> {result.created_ids[index]}"
        lines.append(f"  {when}  {candidate.duration_minutes:>3} min  {who}{status}")
    lines.append(result.summary if result.ok else f"FAILED: {result.summary}")
    return "\n".join(lines)


def result_to_json(result: BookingResult) -> dict[str, Any]:
    return {
        "state": result.state.value,
        "dry_run": result.dry_run,
        "candidates": [c.model_dump(mode="json") for c in result.candidates],
        "created_ids": list(result.created_ids),
        "error": str(result.error) if result.error else None,
        "summary": result.summary,
    }


async def main(args: argparse.Namespace) -> int:
    config = get_config()
    setup_logging_from_config(config)

    raw = json.loads(Path(args.request).read_text(encoding="utf-8"))
    request = load_request(raw)

    calendar = SupabaseCalendar.from_config(config)
    engine = BookingEngine(calendar, calendar, config)
    if args.execute:
        result = await engine.schedule(request)
    else:
        result = await engine.plan(request)

    if args.json:
        print(json.dumps(result_to_json(result), indent=2))
    else:
        print(format_table(result))

    if not result.ok:
        print(f"ERROR: {result.error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    args = _parse_args()
    try:
        sys.exit(asyncio.run(main(args)))
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
