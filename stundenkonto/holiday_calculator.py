from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List, Optional, Set

import holidays
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, schemas
from .date_utils import month_bounds

logger = logging.getLogger(__name__)


GERMAN_STATES = {
    "DE": "Deutschland (gesamt)",
    "BW": "Baden-Württemberg",
    "BY": "Bayern",
    "BE": "Berlin",
    "BB": "Brandenburg",
    "HB": "Bremen",
    "HH": "Hamburg",
    "HE": "Hessen",
    "MV": "Mecklenburg-Vorpommern",
    "NI": "Niedersachsen",
    "NW": "Nordrhein-Westfalen",
    "RP": "Rheinland-Pfalz",
    "SL": "Saarland",
    "SN": "Sachsen",
    "ST": "Sachsen-Anhalt",
    "SH": "Schleswig-Holstein",
    "TH": "Thüringen",
}


FALLBACK_HOLIDAYS_2025 = [
    schemas.HolidayInfo(date=date(2025, 11, 1), name="Allerheiligen"),
    schemas.HolidayInfo(date=date(2025, 12, 25), name="1. Weihnachtstag"),
    schemas.HolidayInfo(date=date(2025, 12, 26), name="2. Weihnachtstag"),
]

FALLBACK_HOLIDAYS_2026 = [
    schemas.HolidayInfo(date=date(2026, 1, 1), name="Neujahr"),
    schemas.HolidayInfo(date=date(2026, 1, 6), name="Heilige Drei Könige"),
    schemas.HolidayInfo(date=date(2026, 4, 3), name="Karfreitag"),
    schemas.HolidayInfo(date=date(2026, 4, 6), name="Ostermontag"),
    schemas.HolidayInfo(date=date(2026, 5, 1), name="Tag der Arbeit"),
    schemas.HolidayInfo(date=date(2026, 5, 14), name="Christi Himmelfahrt"),
    schemas.HolidayInfo(date=date(2026, 5, 25), name="Pfingstmontag"),
    schemas.HolidayInfo(date=date(2026, 6, 4), name="Fronleichnam"),
    schemas.HolidayInfo(date=date(2026, 8, 15), name="Mariä Himmelfahrt"),
    schemas.HolidayInfo(date=date(2026, 10, 3), name="Tag der Deutschen Einheit"),
    schemas.HolidayInfo(date=date(2026, 12, 25), name="1. Weihnachtstag"),
    schemas.HolidayInfo(date=date(2026, 12, 26), name="2. Weihnachtstag"),
]

FALLBACK_HOLIDAYS = {
    2025: FALLBACK_HOLIDAYS_2025,
    2026: FALLBACK_HOLIDAYS_2026,
}


def normalize_state(state: Optional[str]) -> Optional[str]:
    """Return a known state code, or ``None`` for nationwide/unknown input."""
    code = (state or "").strip().upper()
    if not code or code == "DE" or code not in GERMAN_STATES:
        return None
    return code


def calculate_german_holidays(year: int, state: Optional[str] = "BY") -> Iterable[schemas.HolidayCreate]:
    """Return German public holidays for a given year and federal state.

    Holidays observed nationwide are returned with ``region=None`` so a single
    stored row serves every state.
    """
    subdiv = normalize_state(state)
    national = holidays.Germany(years=year, language="de")
    holiday_set = holidays.Germany(years=year, subdiv=subdiv, language="de") if subdiv else national
    for holiday_date, name in sorted(holiday_set.items()):
        region = None if holiday_date in national else subdiv
        yield schemas.HolidayCreate(name=name, date=holiday_date, region=region)


def ensure_holidays(db: Session, year: int, state: Optional[str] = "BY"):
    holiday_models = list(calculate_german_holidays(year, state))
    return crud.replace_holidays_for_year(db, year, normalize_state(state), holiday_models)


def _fallback_for_month(year: int, month: int) -> List[schemas.HolidayInfo]:
    return [holiday for holiday in FALLBACK_HOLIDAYS.get(year, []) if holiday.date.month == month]


def get_holidays_for_month(
    db: Session,
    year: int,
    month: int,
    state: Optional[str] = None,
    employee_id: Optional[int] = None,
) -> List[schemas.HolidayInfo]:
    """Return the holidays of one month.

    With a state, nationwide holidays plus that state's are returned; without
    one every stored holiday counts. When the store fails or has nothing for
    the month the built-in table for 2025/2026 is used. Holidays an admin
    removed for ``employee_id`` are filtered out.
    """
    start, end = month_bounds(year, month)
    region = normalize_state(state)
    try:
        stored = crud.get_holidays_in_range(db, start, end, region=region, include_all_regions=region is None)
    except SQLAlchemyError:
        logger.exception("Feiertage für %04d-%02d konnten nicht geladen werden", year, month)
        db.rollback()
        stored = []
    result = [schemas.HolidayInfo.model_validate(holiday) for holiday in stored]
    if not result:
        result = _fallback_for_month(year, month)
        if result:
            logger.info(
                "Verwende hinterlegte Feiertage für %04d-%02d: %s",
                year,
                month,
                ", ".join(item.date.isoformat() for item in result),
            )
    if employee_id is not None and result:
        excluded = crud.get_excluded_holiday_dates(db, employee_id, start, end)
        result = [holiday for holiday in result if holiday.date not in excluded]
    unique: dict[date, schemas.HolidayInfo] = {}
    for holiday in result:
        unique.setdefault(holiday.date, holiday)
    return sorted(unique.values(), key=lambda item: item.date)


def get_holiday_dates_for_month(
    db: Session,
    year: int,
    month: int,
    state: Optional[str] = None,
    employee_id: Optional[int] = None,
) -> Set[date]:
    return {holiday.date for holiday in get_holidays_for_month(db, year, month, state, employee_id)}
