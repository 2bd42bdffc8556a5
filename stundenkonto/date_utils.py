"""Calendar and time helpers shared by the timesheet logic.

Everything here is pure. Dates may be passed as :class:`datetime.date` or as
ISO ``YYYY-MM-DD`` strings; holiday containers may hold either form as well.
Months are 1-indexed throughout.
"""

from __future__ import annotations

import os
import re
from calendar import monthrange
from datetime import date, datetime, time, timedelta, timezone
from typing import Collection, Iterator, List, Optional, Union

from zoneinfo import ZoneInfo

DateLike = Union[date, str]
TimeLike = Union[time, str]

DISPLAY_TIMEZONE = os.environ.get("STUNDENKONTO_TIMEZONE", "Europe/Berlin")

MONTH_NAMES = [
    "Januar",
    "Februar",
    "März",
    "April",
    "Mai",
    "Juni",
    "Juli",
    "August",
    "September",
    "Oktober",
    "November",
    "Dezember",
]

# Monday first, matching date.weekday()
DAY_NAMES = ["Mo", "Di", "Mi", "Do", "Fr", "Sa", "So"]

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")
_YEAR_MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")
_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def to_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value.strip())


def _parse_clock(value: TimeLike | None) -> Optional[tuple[int, int]]:
    if value is None:
        return None
    if isinstance(value, time):
        return value.hour, value.minute
    if not isinstance(value, str):
        return None
    text = value.strip()
    # HH:MM:SS -> HH:MM
    if len(text) >= 5:
        text = text[:5]
    match = _TIME_PATTERN.match(text)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours, minutes


def parse_time(value: TimeLike | None) -> Optional[time]:
    """Parse ``HH:MM`` or ``HH:MM:SS`` into a :class:`time`, dropping seconds."""
    parsed = _parse_clock(value)
    if parsed is None:
        return None
    return time(parsed[0], parsed[1])


def calculate_hours(time_from: TimeLike | None, time_to: TimeLike | None, pause_minutes) -> Optional[float]:
    """Return the worked hours between two same-day times minus the pause.

    ``None`` signals that the input cannot be computed: an unparseable time,
    a negative or non-numeric pause, an end that is not after the start, or a
    pause longer than the span. Overnight spans are not supported.
    """
    start = _parse_clock(time_from)
    end = _parse_clock(time_to)
    if start is None or end is None:
        return None
    if isinstance(pause_minutes, bool):
        return None
    try:
        pause = float(pause_minutes)
    except (TypeError, ValueError):
        return None
    if pause != pause or pause < 0:
        return None
    start_total = start[0] * 60 + start[1]
    end_total = end[0] * 60 + end[1]
    if end_total <= start_total:
        return None
    worked = end_total - start_total - pause
    if worked < 0:
        return None
    return worked / 60


def normalize_time(value: TimeLike | None) -> str:
    """Return ``HH:MM`` for display and comparison, or an empty string."""
    if value is None:
        return ""
    if isinstance(value, time):
        return value.strftime("%H:%M")
    text = value.strip()
    if len(text) == 8:
        return text[:5]
    return text


def format_time(value: TimeLike | None) -> str:
    parsed = parse_time(value)
    if parsed is None:
        return ""
    return parsed.strftime("%H:%M")


def is_sunday(day: DateLike) -> bool:
    return to_date(day).weekday() == 6


def is_weekend(day: DateLike) -> bool:
    return to_date(day).weekday() >= 5


def is_weekday(day: DateLike) -> bool:
    return not is_weekend(day)


def is_holiday(day: DateLike, holidays: Collection | None) -> bool:
    if not holidays:
        return False
    value = to_date(day)
    return value in holidays or value.isoformat() in holidays


def is_weekday_holiday(day: DateLike, holidays: Collection | None) -> bool:
    return is_holiday(day, holidays) and is_weekday(day)


def is_blocked_day(day: DateLike, holidays: Collection | None) -> bool:
    """Sundays and holidays falling on Monday to Friday block new entries.

    Saturday holidays stay bookable even though reports highlight them.
    """
    if is_sunday(day):
        return True
    return is_weekday_holiday(day, holidays)


def holiday_paid_hours(day: DateLike, holidays: Collection | None) -> int:
    if is_weekday_holiday(day, holidays):
        return 8
    return 0


def day_highlight(day: DateLike, holidays: Collection | None) -> Optional[str]:
    """Colour class used by the reports: ``"weekend"``, ``"holiday"`` or ``None``."""
    if is_sunday(day):
        return "weekend"
    if is_holiday(day, holidays):
        return "holiday"
    if is_weekend(day):
        return "weekend"
    return None


def days_in_month(year: int, month: int) -> int:
    return monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def iterate_dates(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def get_calendar_grid(year: int, month: int) -> List[List[Optional[int]]]:
    """Return the weeks of ``month`` as Monday-first rows of seven cells."""
    offset = date(year, month, 1).weekday()
    grid: List[List[Optional[int]]] = []
    week: List[Optional[int]] = [None] * offset
    for day in range(1, days_in_month(year, month) + 1):
        week.append(day)
        if len(week) == 7:
            grid.append(week)
            week = []
    if week:
        week.extend([None] * (7 - len(week)))
        grid.append(week)
    return grid


def get_month_name(month: int) -> str:
    return MONTH_NAMES[month - 1]


def get_day_name(day: DateLike) -> str:
    return DAY_NAMES[to_date(day).weekday()]


def format_date_iso(year: int, month: int, day: int) -> str:
    return f"{year:04d}-{month:02d}-{day:02d}"


def format_date_de(value: DateLike) -> str:
    return to_date(value).strftime("%d.%m.%Y")


def format_datetime_de(value: datetime | str | None) -> str:
    """Format a timestamp as ``dd.MM.yyyy, HH:mm`` in the display timezone.

    Naive timestamps are taken as UTC, which is how the models store them.
    """
    if not value:
        return ""
    moment = datetime.fromisoformat(value.replace("Z", "+00:00")) if isinstance(value, str) else value
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local = moment.astimezone(ZoneInfo(DISPLAY_TIMEZONE))
    return local.strftime("%d.%m.%Y, %H:%M")


def format_hours(hours: float) -> str:
    return f"{hours:.2f}".replace(".", ",")


def format_minutes_de(minutes: int) -> str:
    hours, remainder = divmod(int(minutes), 60)
    if hours == 0:
        return f"{remainder} min"
    if remainder == 0:
        return f"{hours} h"
    return f"{hours} h {remainder} min"


def parse_year_month(value: str) -> Optional[tuple[int, int]]:
    match = _YEAR_MONTH_PATTERN.match(value or "")
    if not match:
        return None
    year, month = int(match.group(1)), int(match.group(2))
    if month < 1 or month > 12:
        return None
    return year, month


def parse_date(value: str) -> Optional[date]:
    match = _DATE_PATTERN.match(value or "")
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None
