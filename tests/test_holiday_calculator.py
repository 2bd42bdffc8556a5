from __future__ import annotations

from datetime import date

from stundenkonto import crud, holiday_calculator


def test_normalize_state():
    assert holiday_calculator.normalize_state("by") == "BY"
    assert holiday_calculator.normalize_state("DE") is None
    assert holiday_calculator.normalize_state("") is None
    assert holiday_calculator.normalize_state("XX") is None


def test_calculate_german_holidays_marks_national_days():
    holidays = {item.date: item for item in holiday_calculator.calculate_german_holidays(2026, "BY")}
    assert holidays[date(2026, 1, 1)].region is None
    assert holidays[date(2026, 1, 1)].name == "Neujahr"
    assert holidays[date(2026, 1, 6)].region == "BY"
    assert date(2026, 10, 3) in holidays


def test_nationwide_calculation_has_no_state_days():
    holidays = {item.date for item in holiday_calculator.calculate_german_holidays(2026, "DE")}
    assert date(2026, 1, 1) in holidays
    assert date(2026, 1, 6) not in holidays


def test_synced_holidays_are_filtered_by_state(db_session):
    holiday_calculator.ensure_holidays(db_session, 2026, "BY")
    bavaria = holiday_calculator.get_holiday_dates_for_month(db_session, 2026, 1, state="BY")
    berlin = holiday_calculator.get_holiday_dates_for_month(db_session, 2026, 1, state="BE")
    assert bavaria == {date(2026, 1, 1), date(2026, 1, 6)}
    assert berlin == {date(2026, 1, 1)}


def test_sync_is_repeatable(db_session):
    first = holiday_calculator.ensure_holidays(db_session, 2026, "BY")
    second = holiday_calculator.ensure_holidays(db_session, 2026, "BY")
    assert len(first) == len(second)
    stored = crud.get_holidays_in_range(db_session, date(2026, 1, 1), date(2026, 12, 31), include_all_regions=True)
    assert len(stored) == len(second)


def test_fallback_table_when_nothing_is_stored(db_session):
    holidays = holiday_calculator.get_holidays_for_month(db_session, 2026, 1)
    assert [item.date for item in holidays] == [date(2026, 1, 1), date(2026, 1, 6)]
    assert holiday_calculator.get_holidays_for_month(db_session, 2024, 1) == []


def test_employee_exclusions_remove_holidays(db_session, employee, admin):
    crud.upsert_holiday_exclusion(db_session, employee.id, date(2026, 1, 6), admin.id)
    dates = holiday_calculator.get_holiday_dates_for_month(db_session, 2026, 1, employee_id=employee.id)
    assert dates == {date(2026, 1, 1)}
    others = holiday_calculator.get_holiday_dates_for_month(db_session, 2026, 1, employee_id=admin.id)
    assert date(2026, 1, 6) in others
