"""Calendar-month keys and week-of-month arithmetic.

Month keys are ``"YYYY-MM"`` strings. Weeks follow the Gregorian
week-of-month convention: week 1 is the (possibly partial) week containing the
first day of the month, and weeks start on ``first_weekday`` (Sunday unless
configured otherwise).
"""

from __future__ import annotations

import calendar
import re
from datetime import date

_MONTH_KEY_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def is_month_key(value: object) -> bool:
    return isinstance(value, str) and _MONTH_KEY_RE.fullmatch(value) is not None


def parse_month_key(key: str) -> tuple[int, int]:
    """Return ``(year, month)`` for a ``YYYY-MM`` key or raise ``ValueError``."""

    m = _MONTH_KEY_RE.fullmatch(key) if isinstance(key, str) else None
    if m is None:
        raise ValueError(f"Invalid month key: {key!r} (expected YYYY-MM)")
    return int(m.group(1)), int(m.group(2))


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def shift_month(key: str, delta: int) -> str:
    """Return the month key ``delta`` months after ``key`` (negative = before)."""

    year, month = parse_month_key(key)
    idx = year * 12 + (month - 1) + delta
    return f"{idx // 12:04d}-{idx % 12 + 1:02d}"


def month_range(start: str, end: str) -> list[str]:
    """Inclusive list of month keys from ``start`` to ``end``.

    Returns an empty list when ``end`` precedes ``start``.
    """

    sy, sm = parse_month_key(start)
    ey, em = parse_month_key(end)
    count = (ey * 12 + em) - (sy * 12 + sm) + 1
    return [shift_month(start, i) for i in range(max(count, 0))]


def previous_months(key: str, count: int) -> list[str]:
    """The ``count`` months before ``key``, most recent first."""

    return [shift_month(key, -i) for i in range(1, count + 1)]


def month_contains(key: str, d: date) -> bool:
    return month_key(d) == key


def weeks_in_month(key: str, *, first_weekday: int = calendar.SUNDAY) -> int:
    """Number of (partial or full) weeks spanned by the month."""

    year, month = parse_month_key(key)
    return len(calendar.Calendar(firstweekday=first_weekday).monthdayscalendar(year, month))


def week_of_month(d: date, *, first_weekday: int = calendar.SUNDAY) -> int:
    """1-indexed week of the month that contains ``d``."""

    # Days of week 1 that precede the 1st of the month.
    offset = (date(d.year, d.month, 1).weekday() - first_weekday) % 7
    return (d.day + offset - 1) // 7 + 1


__all__ = [
    "is_month_key",
    "parse_month_key",
    "month_key",
    "shift_month",
    "month_range",
    "previous_months",
    "month_contains",
    "weeks_in_month",
    "week_of_month",
]
