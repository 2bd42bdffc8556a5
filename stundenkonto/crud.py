from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional, Sequence, Set

from sqlalchemy import insert, or_
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from . import models, schemas


def get_employee(db: Session, employee_id: int) -> Optional[models.Employee]:
    return db.query(models.Employee).filter(models.Employee.id == employee_id).first()


def get_employee_by_pin(db: Session, pin_code: str) -> Optional[models.Employee]:
    return db.query(models.Employee).filter(models.Employee.pin_code == pin_code).first()


def get_employees(db: Session) -> List[models.Employee]:
    return db.query(models.Employee).order_by(models.Employee.full_name).all()


def create_employee(db: Session, employee: schemas.EmployeeCreate) -> models.Employee:
    db_employee = models.Employee(**employee.model_dump())
    db.add(db_employee)
    db.commit()
    db.refresh(db_employee)
    return db_employee


def get_leave_request(db: Session, request_id: int) -> Optional[models.LeaveRequest]:
    return db.query(models.LeaveRequest).filter(models.LeaveRequest.id == request_id).first()


def get_leave_requests(
    db: Session,
    employee_id: Optional[int] = None,
    *,
    statuses: Optional[Iterable[str]] = None,
) -> List[models.LeaveRequest]:
    query = db.query(models.LeaveRequest).order_by(models.LeaveRequest.created_at.desc())
    if employee_id is not None:
        query = query.filter(models.LeaveRequest.employee_id == employee_id)
    if statuses:
        query = query.filter(models.LeaveRequest.status.in_(list(statuses)))
    return query.all()


def create_leave_request(
    db: Session,
    employee_id: int,
    request: schemas.LeaveRequestBase,
    status: str = models.LeaveRequestStatus.SUBMITTED,
) -> models.LeaveRequest:
    payload = request.model_dump(include={"type", "period_start", "period_end", "time_from", "time_to", "comment"})
    db_request = models.LeaveRequest(employee_id=employee_id, status=status, **payload)
    db.add(db_request)
    db.commit()
    db.refresh(db_request)
    return db_request


def update_leave_request(
    db: Session, db_request: models.LeaveRequest, request: schemas.LeaveRequestUpdate
) -> models.LeaveRequest:
    for key, value in request.model_dump().items():
        setattr(db_request, key, value)
    db.commit()
    db.refresh(db_request)
    return db_request


def set_leave_request_status(
    db: Session,
    request_id: int,
    status: str,
    *,
    expected_status: Optional[str] = None,
) -> Optional[models.LeaveRequest]:
    query = db.query(models.LeaveRequest).filter(models.LeaveRequest.id == request_id)
    if expected_status is not None:
        query = query.filter(models.LeaveRequest.status == expected_status)
    db_request = query.first()
    if not db_request:
        return None
    db_request.status = status
    db.commit()
    db.refresh(db_request)
    return db_request


def delete_leave_request(db: Session, db_request: models.LeaveRequest) -> None:
    db.delete(db_request)
    db.commit()


def get_timesheet_entry(db: Session, entry_id: int) -> Optional[models.TimesheetEntry]:
    return db.query(models.TimesheetEntry).filter(models.TimesheetEntry.id == entry_id).first()


def get_timesheet_entries(
    db: Session,
    employee_id: int,
    start: Optional[date] = None,
    end: Optional[date] = None,
    statuses: Optional[Iterable[str]] = None,
) -> List[models.TimesheetEntry]:
    query = db.query(models.TimesheetEntry).filter(models.TimesheetEntry.employee_id == employee_id)
    if start:
        query = query.filter(models.TimesheetEntry.date >= start)
    if end:
        query = query.filter(models.TimesheetEntry.date <= end)
    if statuses:
        query = query.filter(models.TimesheetEntry.status.in_(list(statuses)))
    return query.order_by(models.TimesheetEntry.date, models.TimesheetEntry.id).all()


def get_timesheet_entry_for_day(
    db: Session, employee_id: int, day: date, status: str
) -> Optional[models.TimesheetEntry]:
    return (
        db.query(models.TimesheetEntry)
        .filter(models.TimesheetEntry.employee_id == employee_id)
        .filter(models.TimesheetEntry.date == day)
        .filter(models.TimesheetEntry.status == status)
        .first()
    )


def get_existing_entry_keys(
    db: Session, employee_id: int, start: date, end: date
) -> Set[tuple[date, str]]:
    rows = (
        db.query(models.TimesheetEntry.date, models.TimesheetEntry.status)
        .filter(models.TimesheetEntry.employee_id == employee_id)
        .filter(models.TimesheetEntry.date >= start)
        .filter(models.TimesheetEntry.date <= end)
        .all()
    )
    return {(row[0], row[1]) for row in rows}


def _insert_skipping_conflicts(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql_insert(models.TimesheetEntry).on_conflict_do_nothing()
    if dialect == "sqlite":
        return sqlite_insert(models.TimesheetEntry).on_conflict_do_nothing()
    return insert(models.TimesheetEntry)


def insert_timesheet_entries(
    db: Session, drafts: Sequence[schemas.TimesheetEntryDraft]
) -> List[models.TimesheetEntry]:
    """Insert all drafts in one statement and return the rows actually written.

    Drafts that collide with an existing ``(employee_id, date, status)`` entry
    are skipped by the database, so a concurrent booking of the same day is
    not an error.
    """
    if not drafts:
        return []
    statement = (
        _insert_skipping_conflicts(db)
        .values([draft.model_dump() for draft in drafts])
        .returning(models.TimesheetEntry.id)
    )
    ids = [row[0] for row in db.execute(statement)]
    db.commit()
    if not ids:
        return []
    return (
        db.query(models.TimesheetEntry)
        .filter(models.TimesheetEntry.id.in_(ids))
        .order_by(models.TimesheetEntry.date)
        .all()
    )


def save_timesheet_entry(
    db: Session, db_entry: Optional[models.TimesheetEntry], draft: schemas.TimesheetEntryDraft
) -> models.TimesheetEntry:
    if db_entry is None:
        db_entry = models.TimesheetEntry(**draft.model_dump())
        db.add(db_entry)
    else:
        for key, value in draft.model_dump().items():
            setattr(db_entry, key, value)
    db.commit()
    db.refresh(db_entry)
    return db_entry


def delete_timesheet_entry(db: Session, entry_id: int) -> bool:
    db_entry = get_timesheet_entry(db, entry_id)
    if not db_entry:
        return False
    db.delete(db_entry)
    db.commit()
    return True


def get_corrections_for_entries(
    db: Session, entry_ids: Iterable[int]
) -> List[models.TimesheetCorrection]:
    ids = list(entry_ids)
    if not ids:
        return []
    return (
        db.query(models.TimesheetCorrection)
        .filter(models.TimesheetCorrection.entry_id.in_(ids))
        .order_by(models.TimesheetCorrection.created_at.desc(), models.TimesheetCorrection.id.desc())
        .all()
    )


def create_correction(
    db: Session, correction: schemas.CorrectionCreate, admin_id: Optional[int]
) -> models.TimesheetCorrection:
    db_correction = models.TimesheetCorrection(admin_id=admin_id, **correction.model_dump())
    db.add(db_correction)
    db.commit()
    db.refresh(db_correction)
    return db_correction


def get_holidays_in_range(
    db: Session,
    start: date,
    end: date,
    *,
    region: Optional[str] = None,
    include_all_regions: bool = False,
) -> List[models.Holiday]:
    query = (
        db.query(models.Holiday)
        .filter(models.Holiday.date >= start)
        .filter(models.Holiday.date <= end)
    )
    if not include_all_regions:
        if region:
            query = query.filter(or_(models.Holiday.region.is_(None), models.Holiday.region == region))
        else:
            query = query.filter(models.Holiday.region.is_(None))
    return query.order_by(models.Holiday.date).all()


def replace_holidays_for_year(
    db: Session, year: int, region: Optional[str], holidays: Iterable[schemas.HolidayCreate]
) -> List[models.Holiday]:
    start = date(year, 1, 1)
    end = date(year, 12, 31)
    query = db.query(models.Holiday).filter(models.Holiday.date >= start).filter(models.Holiday.date <= end)
    if region:
        query = query.filter(or_(models.Holiday.region.is_(None), models.Holiday.region == region))
    else:
        query = query.filter(models.Holiday.region.is_(None))
    query.delete(synchronize_session=False)
    created: List[models.Holiday] = []
    for holiday in holidays:
        db_holiday = models.Holiday(**holiday.model_dump())
        db.add(db_holiday)
        created.append(db_holiday)
    db.commit()
    for holiday in created:
        db.refresh(holiday)
    return created


def get_excluded_holiday_dates(db: Session, employee_id: int, start: date, end: date) -> Set[date]:
    rows = (
        db.query(models.HolidayExclusion.holiday_date)
        .filter(models.HolidayExclusion.employee_id == employee_id)
        .filter(models.HolidayExclusion.holiday_date >= start)
        .filter(models.HolidayExclusion.holiday_date <= end)
        .all()
    )
    return {row[0] for row in rows}


def get_holiday_exclusion(db: Session, employee_id: int, holiday_date: date) -> Optional[models.HolidayExclusion]:
    return (
        db.query(models.HolidayExclusion)
        .filter(models.HolidayExclusion.employee_id == employee_id)
        .filter(models.HolidayExclusion.holiday_date == holiday_date)
        .first()
    )


def upsert_holiday_exclusion(
    db: Session, employee_id: int, holiday_date: date, created_by: Optional[int]
) -> models.HolidayExclusion:
    exclusion = get_holiday_exclusion(db, employee_id, holiday_date)
    if exclusion is None:
        exclusion = models.HolidayExclusion(employee_id=employee_id, holiday_date=holiday_date)
        db.add(exclusion)
    exclusion.created_by = created_by
    db.commit()
    db.refresh(exclusion)
    return exclusion


def delete_holiday_exclusion(db: Session, employee_id: int, holiday_date: date) -> bool:
    exclusion = get_holiday_exclusion(db, employee_id, holiday_date)
    if not exclusion:
        return False
    db.delete(exclusion)
    db.commit()
    return True
