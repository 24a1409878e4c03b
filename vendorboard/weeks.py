"""Week arithmetic for the weekly report.

Reports and feedback are keyed by the Monday that starts their week. Display
dates use the Friday of that week.
"""
from __future__ import annotations

import calendar
from datetime import MAXYEAR, MINYEAR, date, datetime, timedelta


def monday_of(d: date | datetime) -> date:
    """Return the Monday of the week containing *d*."""
    if isinstance(d, datetime):
        d = d.date()
    return d - timedelta(days=d.weekday())


def current_monday(today: date | None = None) -> date:
    return monday_of(today or date.today())


def friday_of(monday: date) -> date:
    return monday + timedelta(days=4)


def weeks_overlapping_month(year: int, month: int) -> list[date]:
    """Mondays whose Mon-Sun span touches any day of the given month.

    The first entry may fall in the previous month; the last week may spill
    into the next one.
    """
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1-12, got {month}")
    # The last week of December 9999 would run past date.max
    if not MINYEAR <= year < MAXYEAR:
        raise ValueError(f"year must be {MINYEAR}-{MAXYEAR - 1}, got {year}")
    first_day = date(year, month, 1)
    last_day = date(year, month, calendar.monthrange(year, month)[1])

    weeks: list[date] = []
    monday = monday_of(first_day)
    while monday <= last_day:
        if monday + timedelta(days=6) >= first_day:
            weeks.append(monday)
        monday += timedelta(days=7)
    return weeks


def is_same_week(a: date | datetime, b: date | datetime) -> bool:
    return monday_of(a) == monday_of(b)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_date(d: date) -> str:
    return d.strftime("%Y-%m-%d")


def week_label(monday: date) -> str:
    """e.g. ``Week of Jan 6``."""
    return f"Week of {monday.strftime('%b')} {monday.day}"


def ordinal_suffix(day: int) -> str:
    if 11 <= day % 100 <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")


def format_report_date(d: date) -> str:
    """e.g. ``16th January 2026``."""
    return f"{d.day}{ordinal_suffix(d.day)} {d.strftime('%B')} {d.year}"


def parse_week_start(value: str | None, today: date | None = None) -> date:
    """Parse a ``YYYY-MM-DD`` week key and snap it to its Monday.

    Missing or blank values resolve to the current week. Raises ValueError
    for anything else that is not an ISO date.
    """
    if value is None or not value.strip():
        return current_monday(today)
    text = value.strip()
    try:
        parsed = date.fromisoformat(text)
    except ValueError:
        # Full ISO timestamps are accepted too
        try:
            parsed = datetime.fromisoformat(text).date()
        except ValueError as exc:
            raise ValueError(f"Invalid week_start '{value}' (expected YYYY-MM-DD)") from exc
    return monday_of(parsed)
