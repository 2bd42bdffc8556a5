"""Turn approved leave and day-off requests into timesheet entries."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, time
from typing import Collection, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, models, schemas
from .date_utils import calculate_hours, is_sunday, is_weekday_holiday, iterate_dates, parse_time, to_date

logger = logging.getLogger(__name__)

PLACEHOLDER_FROM = time(0, 0)
PLACEHOLDER_TO = time(0, 1)
FULL_DAY_OFF_HOURS = 8.0

_TIME_WINDOW_PATTERN = re.compile(r"(\d{1,2}:\d{2})\s*[-–]\s*(\d{1,2}:\d{2})")


class LeaveRequestValidationError(ValueError):
    """Raised when a leave request is missing data needed to book it."""


class MaterializationError(RuntimeError):
    """Raised when the generated timesheet entries could not be stored."""


@dataclass(frozen=True)
class TimeWindow:
    time_from: time
    time_to: time
    hours: float


def resolve_time_window(
    time_from: time | str | None, time_to: time | str | None
) -> Optional[TimeWindow]:
    hours = calculate_hours(time_from, time_to, 0)
    if hours is None:
        return None
    return TimeWindow(parse_time(time_from), parse_time(time_to), hours)


def extract_time_window(comment: Optional[str]) -> Optional[TimeWindow]:
    """Find a ``HH:MM - HH:MM`` window written into a free-text comment."""
    if not comment:
        return None
    match = _TIME_WINDOW_PATTERN.search(comment)
    if not match:
        return None
    return resolve_time_window(match.group(1), match.group(2))


def day_off_window(request) -> Optional[TimeWindow]:
    """Partial-day window of a day-off request, or ``None`` for a full day.

    Structured times win; older requests only have the window in the comment.
    """
    time_from = getattr(request, "time_from", None)
    time_to = getattr(request, "time_to", None)
    if time_from is not None and time_to is not None:
        window = resolve_time_window(time_from, time_to)
        if window is not None:
            return window
    return extract_time_window(getattr(request, "comment", None))


def _validate(request) -> None:
    missing = [
        field
        for field in ("employee_id", "type", "period_start", "period_end")
        if getattr(request, field, None) in (None, "")
    ]
    if missing:
        raise LeaveRequestValidationError(f"Pflichtfelder fehlen: {', '.join(missing)}")
    if request.type not in models.LeaveType.ALL:
        raise LeaveRequestValidationError(f"Ungültiger Antragstyp: {request.type}")


def _request_dates(request) -> List[date]:
    try:
        start = to_date(request.period_start)
        end = to_date(request.period_end)
    except (TypeError, ValueError):
        return []
    return list(iterate_dates(start, end))


def plan_leave_entries(
    request,
    holidays: Collection | None = None,
    existing: Optional[Set[tuple[date, str]]] = None,
    *,
    skip_holidays: bool = False,
) -> List[schemas.TimesheetEntryDraft]:
    """Build the entries an approved request expands to.

    Days that already hold an entry with the same status are left alone so
    approving twice never duplicates anything. Sundays are never booked;
    weekday holidays only when ``skip_holidays`` is false.
    """
    _validate(request)
    status = (
        models.TimesheetStatus.VACATION
        if request.type == models.LeaveType.VACATION
        else models.TimesheetStatus.DAY_OFF
    )
    window = day_off_window(request) if request.type == models.LeaveType.DAY_OFF else None

    dates = _request_dates(request)
    if not dates:
        logger.warning(
            "Antrag %s (%s) hat keinen gültigen Zeitraum: %s bis %s",
            getattr(request, "id", None),
            request.type,
            request.period_start,
            request.period_end,
        )
        return []

    existing = existing or set()
    drafts: List[schemas.TimesheetEntryDraft] = []
    for day in dates:
        if is_sunday(day):
            continue
        if skip_holidays and is_weekday_holiday(day, holidays):
            continue
        if (day, status) in existing:
            continue
        if status == models.TimesheetStatus.VACATION:
            time_from, time_to, hours = PLACEHOLDER_FROM, PLACEHOLDER_TO, 0.0
        elif window is not None:
            time_from, time_to, hours = window.time_from, window.time_to, window.hours
        else:
            time_from, time_to, hours = PLACEHOLDER_FROM, PLACEHOLDER_TO, FULL_DAY_OFF_HOURS
        drafts.append(
            schemas.TimesheetEntryDraft(
                employee_id=request.employee_id,
                date=day,
                status=status,
                time_from=time_from,
                time_to=time_to,
                break_minutes=0,
                hours_decimal=hours,
            )
        )
    return drafts


def create_timesheet_entries_from_leave_request(
    db: Session,
    request: models.LeaveRequest,
    holidays: Collection | None = None,
    *,
    skip_holidays: bool = False,
) -> List[models.TimesheetEntry]:
    """Book an approved request into the timesheet.

    Days booked concurrently after the key lookup are skipped by the insert.
    Raises :class:`LeaveRequestValidationError` for structurally invalid
    requests and :class:`MaterializationError` when the insert fails; the
    session is rolled back in that case.
    """
    _validate(request)
    dates = _request_dates(request)
    existing: Set[tuple[date, str]] = set()
    if dates:
        existing = crud.get_existing_entry_keys(db, request.employee_id, dates[0], dates[-1])
    drafts = plan_leave_entries(request, holidays, existing, skip_holidays=skip_holidays)
    if not drafts:
        logger.info("Antrag %s: keine neuen Zeiteinträge erforderlich", request.id)
        return []
    try:
        created = crud.insert_timesheet_entries(db, drafts)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Zeiteinträge für Antrag %s konnten nicht gespeichert werden", request.id, exc_info=exc)
        raise MaterializationError("Zeiteinträge konnten nicht erstellt werden") from exc
    if len(created) < len(drafts):
        logger.info(
            "Antrag %s: %d Tage waren bereits gebucht und wurden übersprungen",
            request.id,
            len(drafts) - len(created),
        )
    logger.info(
        "Antrag %s: %d Zeiteinträge (%s) für Mitarbeiter %s erstellt",
        request.id,
        len(created),
        drafts[0].status,
        request.employee_id,
    )
    return created
