from __future__ import annotations

import logging
import os
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, Form, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware

from . import __version__ as APP_VERSION
from . import crud, database, holiday_calculator, models, schemas, services
from .corrections import diff_correction, latest_corrections
from .date_utils import calculate_hours, is_blocked_day, iterate_dates, month_bounds
from .excel_export import export_monthly_report
from .materializer import (
    FULL_DAY_OFF_HOURS,
    PLACEHOLDER_FROM,
    PLACEHOLDER_TO,
    LeaveRequestValidationError,
    MaterializationError,
)
from .pdf_export import export_leave_request_pdf, export_monthly_report_pdf

logger = logging.getLogger(__name__)

SECRET_KEY = os.environ.get("STUNDENKONTO_SECRET_KEY", "stundenkonto-secret-key")

app = FastAPI(
    title="Stundenkonto",
    description="Stundenzettel, Urlaub & Tagesbefreiung",
    version=APP_VERSION,
)

app.add_middleware(SessionMiddleware, secret_key=SECRET_KEY)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def get_logged_in_user(request: Request, db: Session) -> Optional[models.Employee]:
    employee_id = request.session.get("employee_id")
    if not employee_id:
        return None
    employee = crud.get_employee(db, employee_id)
    if employee is None or not employee.active:
        return None
    return employee


def require_employee(request: Request, db: Session = Depends(database.get_db)) -> models.Employee:
    employee = get_logged_in_user(request, db)
    if not employee:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Nicht authentifiziert.")
    return employee


def require_admin(employee: models.Employee = Depends(require_employee)) -> models.Employee:
    if not employee.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Nicht autorisiert.")
    return employee


def _resolve_employee(db: Session, current: models.Employee, employee_id: Optional[int]) -> models.Employee:
    """The employee a request acts on; only admins may act for someone else."""
    if employee_id is None or employee_id == current.id:
        return current
    if not current.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Nicht autorisiert.")
    employee = crud.get_employee(db, employee_id)
    if not employee:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mitarbeiter nicht gefunden")
    return employee


def _ensure_owner(current: models.Employee, employee_id: int) -> None:
    if employee_id != current.id and not current.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Nicht autorisiert.")


def _holiday_state(employee: models.Employee, state: Optional[str] = None) -> Optional[str]:
    return state or employee.holiday_state or services.DEFAULT_HOLIDAY_STATE


def _holiday_dates_between(db: Session, employee: models.Employee, start: date, end: date) -> set[date]:
    months = sorted({(day.year, day.month) for day in iterate_dates(start, end)})
    holidays: set[date] = set()
    for year, month in months:
        holidays |= holiday_calculator.get_holiday_dates_for_month(
            db, year, month, state=_holiday_state(employee), employee_id=employee.id
        )
    return holidays


def ensure_schema() -> None:
    models.Base.metadata.create_all(bind=database.engine)
    with database.engine.begin() as connection:
        inspector = inspect(connection)
        table_names = inspector.get_table_names()
        if "leave_requests" in table_names:
            columns = {column["name"] for column in inspector.get_columns("leave_requests")}
            if "time_from" not in columns:
                connection.execute(text("ALTER TABLE leave_requests ADD COLUMN time_from TIME"))
            if "time_to" not in columns:
                connection.execute(text("ALTER TABLE leave_requests ADD COLUMN time_to TIME"))
        if "employees" in table_names:
            columns = {column["name"] for column in inspector.get_columns("employees")}
            if "holiday_state" not in columns:
                connection.execute(text("ALTER TABLE employees ADD COLUMN holiday_state VARCHAR"))


def _seed_default_records() -> None:
    db = database.SessionLocal()
    try:
        if not crud.get_employees(db):
            crud.create_employee(
                db,
                schemas.EmployeeCreate(
                    username="admin",
                    full_name="Administrator",
                    email="admin@example.com",
                    role=models.EmployeeRole.ADMIN,
                    pin_code="0000",
                ),
            )
            logger.info("Standard-Administrator angelegt")
    finally:
        db.close()


@app.on_event("startup")
def ensure_seed_data():
    ensure_schema()
    _seed_default_records()


@app.post("/login", response_model=schemas.Employee)
def login_submit(request: Request, pin_code: str = Form(...), db: Session = Depends(database.get_db)):
    employee = crud.get_employee_by_pin(db, pin_code)
    if not employee or not employee.active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="PIN konnte nicht gefunden werden.")
    request.session["employee_id"] = employee.id
    return employee


@app.get("/logout")
def logout(request: Request):
    request.session.clear()
    return {"detail": "Abgemeldet"}


@app.get("/api/leave-requests", response_model=List[schemas.LeaveRequest])
def list_leave_requests(
    employee_id: Optional[int] = None,
    request_status: Optional[str] = Query(None, alias="status"),
    current: models.Employee = Depends(require_employee),
    db: Session = Depends(database.get_db),
):
    statuses = [request_status] if request_status else None
    if current.is_admin and employee_id is None:
        return crud.get_leave_requests(db, statuses=statuses)
    employee = _resolve_employee(db, current, employee_id)
    return crud.get_leave_requests(db, employee.id, statuses=statuses)


def _materialization_failed(exc: Exception) -> HTTPException:
    logger.error("Antrag konnte nicht in Zeiteinträge übernommen werden", exc_info=exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Zeiteinträge konnten nicht erstellt werden. Der Antrag wurde nicht genehmigt.",
    )


@app.post("/api/leave-requests", response_model=schemas.LeaveRequest, status_code=status.HTTP_201_CREATED)
def create_leave_request(
    payload: schemas.LeaveRequestCreate,
    current: models.Employee = Depends(require_employee),
    db: Session = Depends(database.get_db),
):
    employee = _resolve_employee(db, current, payload.employee_id)
    try:
        return services.create_leave_request_for_employee(db, employee.id, payload, approved=current.is_admin)
    except LeaveRequestValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (MaterializationError, SQLAlchemyError) as exc:
        raise _materialization_failed(exc) from exc


def _get_leave_request_for(db: Session, current: models.Employee, request_id: int) -> models.LeaveRequest:
    db_request = crud.get_leave_request(db, request_id)
    if not db_request:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Antrag nicht gefunden")
    _ensure_owner(current, db_request.employee_id)
    return db_request


@app.put("/api/leave-requests/{request_id}", response_model=schemas.LeaveRequest)
def update_leave_request(
    request_id: int,
    payload: schemas.LeaveRequestUpdate,
    current: models.Employee = Depends(require_employee),
    db: Session = Depends(database.get_db),
):
    db_request = _get_leave_request_for(db, current, request_id)
    if db_request.status != models.LeaveRequestStatus.SUBMITTED and not current.is_admin:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Antrag wurde bereits bearbeitet")
    return crud.update_leave_request(db, db_request, payload)


@app.delete("/api/leave-requests/{request_id}")
def delete_leave_request(
    request_id: int,
    current: models.Employee = Depends(require_employee),
    db: Session = Depends(database.get_db),
):
    db_request = _get_leave_request_for(db, current, request_id)
    if db_request.status != models.LeaveRequestStatus.SUBMITTED and not current.is_admin:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Antrag wurde bereits bearbeitet")
    crud.delete_leave_request(db, db_request)
    return {"detail": "Antrag gelöscht"}


@app.put("/api/leave-requests/{request_id}/approve", response_model=schemas.LeaveRequest)
def decide_leave_request(
    request_id: int,
    decision: schemas.LeaveRequestDecision,
    current: models.Employee = Depends(require_admin),
    db: Session = Depends(database.get_db),
):
    try:
        updated = services.decide_leave_request(db, request_id, decision.status)
    except LeaveRequestValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (MaterializationError, SQLAlchemyError) as exc:
        raise _materialization_failed(exc) from exc
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Antrag nicht gefunden oder bereits bearbeitet",
        )
    logger.info("Antrag %s von %s: %s", request_id, current.username, decision.status)
    return updated


def _build_entry_draft(
    db: Session, employee: models.Employee, payload: schemas.TimesheetEntryCreate
) -> schemas.TimesheetEntryDraft:
    """Validate a day entry from the form and compute its hours."""
    holidays = _holiday_dates_between(db, employee, payload.date, payload.date)
    if is_blocked_day(payload.date, holidays):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="An Sonn- und Feiertagen können keine Einträge erstellt werden",
        )
    draft = schemas.TimesheetEntryDraft(
        employee_id=employee.id,
        date=payload.date,
        status=payload.status,
        break_minutes=payload.break_minutes,
        activity_note=payload.activity_note,
        project_name=payload.project_name,
        comment=payload.comment,
    )
    if payload.status == models.TimesheetStatus.WORK:
        if payload.time_from is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Startzeit ist erforderlich")
        draft.time_from = payload.time_from
        if payload.time_to is not None:
            if not payload.project_name or not payload.activity_note:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Bauvorhaben und Tätigkeit sind erforderlich",
                )
            hours = calculate_hours(payload.time_from, payload.time_to, payload.break_minutes)
            if hours is None:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Ungültige Zeitangaben")
            draft.time_to = payload.time_to
            draft.hours_decimal = hours
    elif payload.status == models.TimesheetStatus.DAY_OFF:
        if payload.time_from is not None and payload.time_to is not None:
            hours = calculate_hours(payload.time_from, payload.time_to, payload.break_minutes)
            if hours is None:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Ungültige Zeitangaben")
            draft.time_from, draft.time_to, draft.hours_decimal = payload.time_from, payload.time_to, hours
        else:
            draft.time_from, draft.time_to, draft.hours_decimal = PLACEHOLDER_FROM, PLACEHOLDER_TO, FULL_DAY_OFF_HOURS
    else:
        if not payload.comment:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Kommentar ist erforderlich")
        draft.time_from, draft.time_to, draft.hours_decimal = PLACEHOLDER_FROM, PLACEHOLDER_TO, 0.0
        draft.break_minutes = 0
    return draft


@app.get("/api/timesheet-entries", response_model=List[schemas.TimesheetEntry])
def list_timesheet_entries(
    year: int = Query(..., ge=1900, le=2100),
    month: int = Query(..., ge=1, le=12),
    employee_id: Optional[int] = None,
    current: models.Employee = Depends(require_employee),
    db: Session = Depends(database.get_db),
):
    employee = _resolve_employee(db, current, employee_id)
    start, end = month_bounds(year, month)
    return crud.get_timesheet_entries(db, employee.id, start=start, end=end)


def _duplicate_entry(exc: IntegrityError) -> HTTPException:
    logger.info("Doppelter Zeiteintrag abgelehnt: %s", exc.orig)
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="Für diesen Tag existiert bereits ein Eintrag mit diesem Status",
    )


@app.post("/api/timesheet-entries", response_model=schemas.TimesheetEntry)
def save_timesheet_entry(
    payload: schemas.TimesheetEntryCreate,
    current: models.Employee = Depends(require_employee),
    db: Session = Depends(database.get_db),
):
    employee = _resolve_employee(db, current, payload.employee_id)
    draft = _build_entry_draft(db, employee, payload)
    existing = crud.get_timesheet_entry_for_day(db, employee.id, draft.date, draft.status)
    try:
        return crud.save_timesheet_entry(db, existing, draft)
    except IntegrityError as exc:
        db.rollback()
        raise _duplicate_entry(exc) from exc


def _get_entry_for(db: Session, current: models.Employee, entry_id: int) -> models.TimesheetEntry:
    db_entry = crud.get_timesheet_entry(db, entry_id)
    if not db_entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Eintrag nicht gefunden")
    _ensure_owner(current, db_entry.employee_id)
    return db_entry


@app.put("/api/timesheet-entries/{entry_id}", response_model=schemas.TimesheetEntry)
def update_timesheet_entry(
    entry_id: int,
    payload: schemas.TimesheetEntryCreate,
    current: models.Employee = Depends(require_employee),
    db: Session = Depends(database.get_db),
):
    db_entry = _get_entry_for(db, current, entry_id)
    employee = crud.get_employee(db, db_entry.employee_id)
    draft = _build_entry_draft(db, employee, payload)
    try:
        return crud.save_timesheet_entry(db, db_entry, draft)
    except IntegrityError as exc:
        db.rollback()
        raise _duplicate_entry(exc) from exc


@app.delete("/api/timesheet-entries/{entry_id}")
def delete_timesheet_entry(
    entry_id: int,
    current: models.Employee = Depends(require_employee),
    db: Session = Depends(database.get_db),
):
    _get_entry_for(db, current, entry_id)
    crud.delete_timesheet_entry(db, entry_id)
    return {"detail": "Eintrag gelöscht"}


@app.get("/api/timesheet-entries/{entry_id}/correction-diff", response_model=schemas.CorrectionDiff)
def get_correction_diff(
    entry_id: int,
    current: models.Employee = Depends(require_employee),
    db: Session = Depends(database.get_db),
):
    db_entry = _get_entry_for(db, current, entry_id)
    latest = latest_corrections(crud.get_corrections_for_entries(db, [db_entry.id]))
    correction = latest.get(db_entry.id)
    if correction is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Keine Korrektur vorhanden")
    return diff_correction(db_entry, correction)


@app.get("/api/timesheet-corrections", response_model=List[schemas.Correction])
def list_corrections(
    entry_id: Optional[int] = None,
    employee_id: Optional[int] = None,
    year: Optional[int] = Query(None, ge=1900, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    _admin: models.Employee = Depends(require_admin),
    db: Session = Depends(database.get_db),
):
    if entry_id is not None:
        return crud.get_corrections_for_entries(db, [entry_id])
    if employee_id is None or year is None or month is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="entry_id oder employee_id, year und month angeben",
        )
    start, end = month_bounds(year, month)
    entries = crud.get_timesheet_entries(db, employee_id, start=start, end=end)
    return crud.get_corrections_for_entries(db, [entry.id for entry in entries])


@app.post("/api/timesheet-corrections", response_model=schemas.Correction, status_code=status.HTTP_201_CREATED)
def create_correction(
    payload: schemas.CorrectionCreate,
    admin: models.Employee = Depends(require_admin),
    db: Session = Depends(database.get_db),
):
    db_entry = crud.get_timesheet_entry(db, payload.entry_id)
    if not db_entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Eintrag nicht gefunden")
    if payload.corrected_time_from is not None and payload.corrected_time_to is not None:
        break_minutes = payload.corrected_break_minutes
        if break_minutes is None:
            break_minutes = db_entry.break_minutes or 0
        hours = calculate_hours(payload.corrected_time_from, payload.corrected_time_to, break_minutes)
        if hours is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Ungültige Zeitangaben")
        if payload.corrected_hours_decimal is None:
            payload = payload.model_copy(update={"corrected_hours_decimal": hours})
    correction = crud.create_correction(db, payload, admin.id)
    logger.info("Korrektur %s für Eintrag %s durch %s", correction.id, db_entry.id, admin.username)
    return correction


@app.get("/api/monthly-summary", response_model=schemas.MonthlySummary)
def get_monthly_summary(
    year: int = Query(..., ge=1900, le=2100),
    month: int = Query(..., ge=1, le=12),
    employee_id: Optional[int] = None,
    current: models.Employee = Depends(require_employee),
    db: Session = Depends(database.get_db),
):
    employee = _resolve_employee(db, current, employee_id)
    return services.calculate_monthly_summary(db, employee.id, year, month, _holiday_state(employee))


@app.get("/api/holidays", response_model=List[schemas.HolidayInfo])
def list_holidays(
    year: int = Query(..., ge=1900, le=2100),
    month: int = Query(..., ge=1, le=12),
    state: Optional[str] = None,
    employee_id: Optional[int] = None,
    current: models.Employee = Depends(require_employee),
    db: Session = Depends(database.get_db),
):
    employee = _resolve_employee(db, current, employee_id) if employee_id is not None else None
    return holiday_calculator.get_holidays_for_month(
        db,
        year,
        month,
        state=_holiday_state(employee or current, state),
        employee_id=employee.id if employee else None,
    )


@app.post("/api/holidays/sync")
def sync_holidays(
    year: int,
    state: str = "DE",
    _admin: models.Employee = Depends(require_admin),
    db: Session = Depends(database.get_db),
):
    if year < 1900 or year > 2100:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Jahr muss zwischen 1900 und 2100 liegen")
    state = state.upper()
    if state not in holiday_calculator.GERMAN_STATES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Ungültiges Bundesland")
    holidays = holiday_calculator.ensure_holidays(db, year, state)
    logger.info("%d Feiertage für %s/%s synchronisiert", len(holidays), year, state)
    return {"count": len(holidays), "state": state}


@app.post("/api/employee-holiday-exclusions", status_code=status.HTTP_201_CREATED)
def create_holiday_exclusion(
    payload: schemas.HolidayExclusionCreate,
    admin: models.Employee = Depends(require_admin),
    db: Session = Depends(database.get_db),
):
    if not crud.get_employee(db, payload.employee_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mitarbeiter nicht gefunden")
    exclusion = crud.upsert_holiday_exclusion(db, payload.employee_id, payload.holiday_date, admin.id)
    return {"employee_id": exclusion.employee_id, "holiday_date": exclusion.holiday_date}


@app.delete("/api/employee-holiday-exclusions")
def delete_holiday_exclusion(
    employee_id: int,
    holiday_date: date,
    _admin: models.Employee = Depends(require_admin),
    db: Session = Depends(database.get_db),
):
    if not crud.delete_holiday_exclusion(db, employee_id, holiday_date):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ausnahme nicht gefunden")
    return {"detail": "Ausnahme entfernt"}


@app.get("/api/pdf/monthly-report")
def monthly_report_pdf(
    year: int = Query(..., ge=1900, le=2100),
    month: int = Query(..., ge=1, le=12),
    employee_id: Optional[int] = None,
    current: models.Employee = Depends(require_employee),
    db: Session = Depends(database.get_db),
):
    employee = _resolve_employee(db, current, employee_id)
    report = services.build_monthly_report(db, employee.id, year, month, _holiday_state(employee))
    buffer = export_monthly_report_pdf(employee=employee, report=report)
    filename = f"stundenzettel_{employee.username}_{year:04d}_{month:02d}.pdf"
    return StreamingResponse(
        buffer,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@app.get("/api/pdf/leave-requests/{request_id}")
def leave_request_pdf(
    request_id: int,
    current: models.Employee = Depends(require_employee),
    db: Session = Depends(database.get_db),
):
    db_request = _get_leave_request_for(db, current, request_id)
    employee = db_request.employee
    holidays = _holiday_dates_between(db, employee, db_request.period_start, db_request.period_end)
    working_days = sum(
        1
        for day in iterate_dates(db_request.period_start, db_request.period_end)
        if not is_blocked_day(day, holidays) and day.weekday() < 5
    )
    buffer = export_leave_request_pdf(employee=employee, request=db_request, working_days=working_days)
    filename = f"antrag_{db_request.id}_{employee.username}.pdf"
    return StreamingResponse(
        buffer,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@app.get("/api/excel/monthly-report")
def monthly_report_excel(
    year: int = Query(..., ge=1900, le=2100),
    month: int = Query(..., ge=1, le=12),
    employee_id: Optional[int] = None,
    current: models.Employee = Depends(require_employee),
    db: Session = Depends(database.get_db),
):
    employee = _resolve_employee(db, current, employee_id)
    report = services.build_monthly_report(db, employee.id, year, month, _holiday_state(employee))
    buffer = export_monthly_report(employee=employee, report=report)
    filename = f"stundenzettel_{employee.username}_{year:04d}_{month:02d}.xlsx"
    return StreamingResponse(
        buffer,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@app.get("/health")
def health_check():
    return {"status": "ok", "version": APP_VERSION}
