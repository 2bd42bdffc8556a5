from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from datetime import date
from typing import Collection, Dict, Iterable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, holiday_calculator, models, schemas
from .corrections import effective_hours, effective_value, latest_corrections
from .date_utils import day_highlight, holiday_paid_hours, is_holiday, iterate_dates, month_bounds
from .materializer import (
    LeaveRequestValidationError,
    MaterializationError,
    create_timesheet_entries_from_leave_request,
)

logger = logging.getLogger(__name__)

FULL_DAY_MINUTES = 480

DEFAULT_HOLIDAY_STATE = os.environ.get("STUNDENKONTO_HOLIDAY_STATE") or None
SKIP_HOLIDAYS_ON_APPROVAL = os.environ.get("STUNDENKONTO_SKIP_HOLIDAYS_ON_APPROVAL", "0") == "1"


def hours_to_minutes(hours: float) -> int:
    return int(math.floor(hours * 60))


def compute_monthly_summary(
    entries: Iterable,
    corrections: Iterable,
    holidays: Collection | None,
) -> schemas.MonthlySummary:
    """Sum one month of entries into minute totals per category.

    Work booked on a holiday counts as holiday time, not work time. Sick and
    vacation entries are worth a full day each regardless of their stored
    hours; day-off entries keep their (possibly partial) hours.
    """
    latest = latest_corrections(corrections)
    work = sick = vacation = holiday = day_off = 0
    for entry in entries:
        minutes = hours_to_minutes(effective_hours(entry, latest.get(entry.id)))
        if entry.status == models.TimesheetStatus.WORK:
            if is_holiday(entry.date, holidays):
                holiday += minutes
            else:
                work += minutes
        elif entry.status == models.TimesheetStatus.SICK:
            sick += FULL_DAY_MINUTES
        elif entry.status == models.TimesheetStatus.VACATION:
            vacation += FULL_DAY_MINUTES
        elif entry.status == models.TimesheetStatus.DAY_OFF:
            day_off += minutes
    return schemas.MonthlySummary(
        total_minutes=work + sick + vacation + holiday + day_off,
        work_minutes=work,
        sick_minutes=sick,
        vacation_minutes=vacation,
        holiday_minutes=holiday,
        day_off_minutes=day_off,
    )


@dataclass
class MonthlyData:
    entries: List[models.TimesheetEntry] = field(default_factory=list)
    corrections: List[models.TimesheetCorrection] = field(default_factory=list)
    holidays: Set[date] = field(default_factory=set)


def load_monthly_data(
    db: Session,
    employee_id: int,
    year: int,
    month: int,
    state: Optional[str] = None,
) -> MonthlyData:
    start, end = month_bounds(year, month)
    entries = crud.get_timesheet_entries(db, employee_id, start=start, end=end)
    corrections = crud.get_corrections_for_entries(db, [entry.id for entry in entries])
    holidays = holiday_calculator.get_holiday_dates_for_month(
        db, year, month, state=state, employee_id=employee_id
    )
    logger.debug(
        "Monatsdaten %04d-%02d für Mitarbeiter %s: %d Einträge, %d Korrekturen, %d Feiertage",
        year,
        month,
        employee_id,
        len(entries),
        len(corrections),
        len(holidays),
    )
    return MonthlyData(entries=entries, corrections=corrections, holidays=holidays)


def calculate_monthly_summary(
    db: Session, employee_id: int, year: int, month: int, state: Optional[str] = None
) -> schemas.MonthlySummary:
    data = load_monthly_data(db, employee_id, year, month, state)
    return compute_monthly_summary(data.entries, data.corrections, data.holidays)


def build_daily_report(
    year: int,
    month: int,
    entries: Iterable,
    corrections: Iterable,
    holidays: Collection | None,
) -> List[schemas.DailyReportRow]:
    """One row per calendar day with the corrected hours split by category."""
    latest = latest_corrections(corrections)
    by_date: Dict[date, list] = {}
    for entry in entries:
        by_date.setdefault(entry.date, []).append(entry)

    rows: List[schemas.DailyReportRow] = []
    start, end = month_bounds(year, month)
    for day in iterate_dates(start, end):
        day_entries = by_date.get(day, [])
        row = schemas.DailyReportRow(
            date=day,
            status=day_entries[0].status if day_entries else "none",
            holiday_hours=holiday_paid_hours(day, holidays),
            highlight=day_highlight(day, holidays),
        )
        notes: List[str] = []
        for entry in day_entries:
            correction = latest.get(entry.id)
            hours = effective_hours(entry, correction)
            note = effective_value(entry, correction, "note") or ""
            if entry.status == models.TimesheetStatus.WORK:
                row.work_hours += hours
                if entry.project_name:
                    notes.append(f"Bauvorhaben: {entry.project_name}")
                if is_holiday(day, holidays) and hours > 0:
                    row.is_holiday_work = True
            elif entry.status == models.TimesheetStatus.VACATION:
                row.vacation_hours = FULL_DAY_MINUTES / 60
            elif entry.status == models.TimesheetStatus.SICK:
                row.sick_hours = FULL_DAY_MINUTES / 60
            elif entry.status == models.TimesheetStatus.DAY_OFF:
                row.day_off_hours += hours
            if note and entry.status in (models.TimesheetStatus.WORK, models.TimesheetStatus.DAY_OFF):
                notes.append(note)
        row.note = "\n".join(part for part in notes if part.strip())
        rows.append(row)
    return rows


def build_monthly_report(
    db: Session, employee_id: int, year: int, month: int, state: Optional[str] = None
) -> schemas.MonthlyReport:
    data = load_monthly_data(db, employee_id, year, month, state)
    return schemas.MonthlyReport(
        year=year,
        month=month,
        rows=build_daily_report(year, month, data.entries, data.corrections, data.holidays),
        summary=compute_monthly_summary(data.entries, data.corrections, data.holidays),
    )


def _holidays_for_request(db: Session, request: models.LeaveRequest) -> Set[date]:
    if not SKIP_HOLIDAYS_ON_APPROVAL:
        return set()
    state = (request.employee.holiday_state if request.employee else None) or DEFAULT_HOLIDAY_STATE
    holidays: Set[date] = set()
    months = {(day.year, day.month) for day in iterate_dates(request.period_start, request.period_end)}
    for year, month in sorted(months):
        holidays |= holiday_calculator.get_holiday_dates_for_month(
            db, year, month, state=state, employee_id=request.employee_id
        )
    return holidays


def materialize_approved_request(db: Session, request: models.LeaveRequest) -> List[models.TimesheetEntry]:
    """Book an approved request; on failure put it back to ``submitted``."""
    try:
        return create_timesheet_entries_from_leave_request(
            db,
            request,
            _holidays_for_request(db, request),
            skip_holidays=SKIP_HOLIDAYS_ON_APPROVAL,
        )
    except (LeaveRequestValidationError, MaterializationError, SQLAlchemyError):
        db.rollback()
        logger.warning("Genehmigung von Antrag %s wird zurückgenommen", request.id)
        crud.set_leave_request_status(db, request.id, models.LeaveRequestStatus.SUBMITTED)
        raise


def decide_leave_request(db: Session, request_id: int, status: str) -> Optional[models.LeaveRequest]:
    """Approve or reject a submitted request.

    Returns ``None`` when the request does not exist or was already decided.
    """
    if status not in (models.LeaveRequestStatus.APPROVED, models.LeaveRequestStatus.REJECTED):
        raise ValueError("INVALID_STATUS")
    updated = crud.set_leave_request_status(
        db, request_id, status, expected_status=models.LeaveRequestStatus.SUBMITTED
    )
    if not updated:
        return None
    logger.info("Antrag %s: Status %s", request_id, status)
    if status == models.LeaveRequestStatus.APPROVED:
        materialize_approved_request(db, updated)
    return updated


def create_leave_request_for_employee(
    db: Session,
    employee_id: int,
    request: schemas.LeaveRequestBase,
    *,
    approved: bool = False,
) -> models.LeaveRequest:
    """Store a request; admins file them already approved and booked."""
    status = models.LeaveRequestStatus.APPROVED if approved else models.LeaveRequestStatus.SUBMITTED
    db_request = crud.create_leave_request(db, employee_id, request, status=status)
    if approved:
        materialize_approved_request(db, db_request)
    return db_request
