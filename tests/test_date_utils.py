from __future__ import annotations

from datetime import date, datetime, time

import pytest

from stundenkonto import date_utils


@pytest.mark.parametrize(
    "time_from, time_to, pause, expected",
    [
        ("08:00", "17:00", 30, 8.5),
        ("08:00:00", "16:00:59", 0, 8.0),
        ("8:00", "17:00:00", 0, 9.0),
        (time(7, 15), time(12, 0), 45, 4.0),
        ("17:00", "08:00", 0, None),
        ("08:00", "08:00", 0, None),
        ("08:00", "09:00", 61, None),
        ("08:00", "17:00", -5, None),
        ("08:00", "17:00", "abc", None),
        ("8", "17:00", 0, None),
        ("25:00", "26:00", 0, None),
        (None, "17:00", 0, None),
    ],
)
def test_calculate_hours(time_from, time_to, pause, expected):
    assert date_utils.calculate_hours(time_from, time_to, pause) == expected


def test_calculate_hours_rejects_bool_and_nan_pause():
    assert date_utils.calculate_hours("08:00", "17:00", True) is None
    assert date_utils.calculate_hours("08:00", "17:00", float("nan")) is None


def test_calculate_hours_accepts_numeric_string_pause():
    assert date_utils.calculate_hours("08:00", "17:00", "60") == 8.0


def test_blocked_days():
    holidays = {date(2026, 1, 6), date(2026, 10, 3), "2026-12-26"}
    # Sunday without holiday
    assert date_utils.is_blocked_day(date(2026, 1, 11), holidays)
    # Tuesday holiday
    assert date_utils.is_blocked_day("2026-01-06", holidays)
    # Saturday holidays stay bookable
    assert not date_utils.is_blocked_day(date(2026, 10, 3), holidays)
    assert not date_utils.is_blocked_day(date(2026, 12, 26), holidays)
    # ordinary Saturday and Monday
    assert not date_utils.is_blocked_day(date(2026, 1, 10), holidays)
    assert not date_utils.is_blocked_day(date(2026, 1, 5), holidays)
    assert not date_utils.is_blocked_day(date(2026, 1, 5), None)


def test_day_highlight_differs_from_blocking_on_saturday_holidays():
    holidays = {date(2026, 10, 3)}
    assert date_utils.day_highlight(date(2026, 10, 3), holidays) == "holiday"
    assert date_utils.day_highlight(date(2026, 10, 4), holidays) == "weekend"
    assert date_utils.day_highlight(date(2026, 10, 10), holidays) == "weekend"
    assert date_utils.day_highlight(date(2026, 10, 5), holidays) is None


def test_holiday_paid_hours_only_on_weekdays():
    holidays = {date(2026, 1, 6), date(2026, 10, 3)}
    assert date_utils.holiday_paid_hours(date(2026, 1, 6), holidays) == 8
    assert date_utils.holiday_paid_hours(date(2026, 10, 3), holidays) == 0
    assert date_utils.holiday_paid_hours(date(2026, 1, 7), holidays) == 0


def test_calendar_grid_is_monday_first():
    # February 2026 starts on a Sunday
    grid = date_utils.get_calendar_grid(2026, 2)
    assert grid[0] == [None, None, None, None, None, None, 1]
    assert grid[-1] == [23, 24, 25, 26, 27, 28, None]
    assert all(len(week) == 7 for week in grid)


def test_calendar_grid_without_padding_at_start():
    # June 2026 starts on a Monday
    grid = date_utils.get_calendar_grid(2026, 6)
    assert grid[0] == [1, 2, 3, 4, 5, 6, 7]
    assert grid[-1] == [29, 30, None, None, None, None, None]


def test_formatting_helpers():
    assert date_utils.format_date_iso(2026, 3, 7) == "2026-03-07"
    assert date_utils.format_date_de("2026-03-07") == "07.03.2026"
    assert date_utils.format_hours(8.5) == "8,50"
    assert date_utils.format_hours(0) == "0,00"
    assert date_utils.format_time("07:05:30") == "07:05"
    assert date_utils.normalize_time("07:05:00") == "07:05"
    assert date_utils.format_minutes_de(510) == "8 h 30 min"
    assert date_utils.get_month_name(3) == "März"
    assert date_utils.get_day_name(date(2026, 1, 5)) == "Mo"


def test_format_datetime_de_uses_berlin_time():
    # naive timestamps are stored as UTC
    assert date_utils.format_datetime_de(datetime(2026, 1, 15, 12, 30)) == "15.01.2026, 13:30"
    assert date_utils.format_datetime_de("2026-07-01T06:00:00Z") == "01.07.2026, 08:00"
    assert date_utils.format_datetime_de(None) == ""


def test_parse_helpers():
    assert date_utils.parse_year_month("2026-02") == (2026, 2)
    assert date_utils.parse_year_month("2026-13") is None
    assert date_utils.parse_date("2026-02-30") is None
    assert date_utils.parse_date("2026-02-28") == date(2026, 2, 28)
