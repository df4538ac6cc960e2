"""Calendar-day arithmetic.

All cycle math runs on :class:`datetime.date` values: day granularity, no
time of day, no time zone. The only place a clock is consulted is
:func:`today_provider`, which decides which midnight starts a day.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterator, Literal

DayBoundary = Literal["local", "utc"]

TodayProvider = Callable[[], date]


def parse_day(value: date | datetime | str) -> date:
    """Coerce a date-like value to a calendar day.

    Accepts ``date`` objects, ``datetime`` objects (date part), ``YYYY-MM-DD``
    strings and full ISO 8601 timestamps (date part, as written by the logging
    screen's ``toISOString()``).

    Raises:
        ValueError: If the value cannot be read as a day.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if len(text) > 10 and text[10] in ("T", " "):
            text = text[:10]
        return date.fromisoformat(text)
    raise ValueError(f"Not a calendar day: {value!r}")


def add_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


def days_between(start: date, end: date) -> int:
    """Whole days from ``start`` to ``end`` (negative when ``end`` is earlier)."""
    return (end - start).days


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every day in the closed range ``[start, end]``; empty if reversed."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def month_bounds(month: date | tuple[int, int] | str) -> tuple[date, date]:
    """Return the first and last day of a month.

    ``month`` may be any day inside the month, a ``(year, month)`` tuple, or a
    ``"YYYY-MM"`` / ``"YYYY-MM-DD"`` string.
    """
    if isinstance(month, tuple):
        year, month_number = month
    elif isinstance(month, str):
        parts = month.strip().split("-")
        if len(parts) < 2:
            raise ValueError(f"Not a month: {month!r}")
        year, month_number = int(parts[0]), int(parts[1])
    else:
        year, month_number = month.year, month.month
    last = calendar.monthrange(year, month_number)[1]
    return date(year, month_number, 1), date(year, month_number, last)


def today_provider(boundary: DayBoundary = "local") -> TodayProvider:
    """Build a callable returning the current calendar day.

    ``"local"`` uses device-local midnight; ``"utc"`` uses UTC midnight.
    """
    if boundary == "utc":
        return lambda: datetime.now(timezone.utc).date()
    return date.today
