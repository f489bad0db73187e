"""
dates.py — Calendar helpers

Weeks start on Monday. All comparisons are on calendar dates only; any
time-of-day component is dropped on the way in (to_date) so a visit at
23:30 and one at 00:15 on the same day compare equal.
"""

from datetime import date, datetime, timedelta
from typing import Any, Iterable, List, Optional

from hospice_scheduler.schedule_config import DAY_NAMES, WEEK_LENGTH


def to_date(value: Any) -> Optional[date]:
    """
    Normalise a date-like value to a datetime.date.

    Accepts date, datetime (time dropped), and strings in ISO form
    ("2026-03-02", "2026-03-02T14:00:00Z", "2026-03-02 08:00").
    Returns None for None / empty / NaN-ish values.
    Raises ValueError for unparseable strings.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, float):
        # pandas hands back NaN for empty cells
        return None
    s = str(value).strip()
    if not s or s.lower() in ("nan", "nat", "none", "null"):
        return None
    s = s.split("T")[0].split(" ")[0]
    return date.fromisoformat(s)


def week_start(d: date) -> date:
    """Monday on or before d (Sunday goes back six days)."""
    return d - timedelta(days=d.weekday())


def week_dates(start: date, offset_weeks: int = 0, length: int = WEEK_LENGTH) -> List[date]:
    """
    Return `length` consecutive dates from the Monday on/before `start`,
    shifted by offset_weeks × 7 days. length=5 gives Monday–Friday.
    """
    monday = week_start(start) + timedelta(days=7 * offset_weeks)
    return [monday + timedelta(days=i) for i in range(length)]


def weekday_dates(dates: Iterable[date]) -> List[date]:
    """Keep Monday–Friday dates, preserving order."""
    return [d for d in dates if d.weekday() < 5]


def days_between(a: date, b: date) -> int:
    """Whole days from a to b (negative when b is earlier)."""
    return (b - a).days


def day_name(d: date) -> str:
    return DAY_NAMES[d.weekday()]
