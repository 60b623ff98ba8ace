"""
Weekday numbering bridge between the backend and the UI.

Backend: 0=Monday .. 6=Sunday (same as ``date.weekday()``).
UI:      0=Sunday .. 6=Saturday.

Each conversion is applied exactly once at its boundary: backend payloads
are converted to the UI convention when preferences are normalized, and back
when the save payload is built. Everything in between speaks UI days.
"""

from datetime import date
from typing import Iterable

DAYS_IN_WEEK = 7

UI_DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


def _check_day(day: int) -> None:
    if not isinstance(day, int) or isinstance(day, bool) or not 0 <= day < DAYS_IN_WEEK:
        raise ValueError(f"Weekday must be an integer in 0..6, got {day!r}")


def to_ui_day(api_day: int) -> int:
    """Convert a backend weekday (Mon=0) to the UI convention (Sun=0)."""
    _check_day(api_day)
    return 0 if api_day == 6 else api_day + 1


def to_api_day(ui_day: int) -> int:
    """Convert a UI weekday (Sun=0) to the backend convention (Mon=0)."""
    _check_day(ui_day)
    return 6 if ui_day == 0 else ui_day - 1


def to_ui_days(api_days: Iterable[int]) -> list[int]:
    return sorted({to_ui_day(d) for d in api_days})


def to_api_days(ui_days: Iterable[int]) -> list[int]:
    return sorted({to_api_day(d) for d in ui_days})


def ui_weekday(day: date) -> int:
    """UI weekday of a calendar date."""
    return to_ui_day(day.weekday())
