from __future__ import annotations

from datetime import date, datetime, time
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator, model_validator

from . import models
from .date_utils import parse_time


def _coerce_time(value):
    if value is None or isinstance(value, time):
        return value
    if isinstance(value, str):
        if not value.strip():
            return None
        parsed = parse_time(value)
        if parsed is None:
            raise ValueError("Ungültige Uhrzeit, erwartet HH:MM")
        return parsed
    return value


class EmployeeBase(BaseModel):
    username: str
    full_name: str
    email: EmailStr
    personnel_number: Optional[str] = None
    role: Literal["admin", "employee"] = models.EmployeeRole.EMPLOYEE
    active: bool = True
    holiday_state: Optional[str] = None


class EmployeeCreate(EmployeeBase):
    pin_code: str

    @field_validator("pin_code")
    @classmethod
    def validate_pin(cls, value: str) -> str:
        if len(value) != 4 or not value.isdigit():
            raise ValueError("PIN muss aus genau 4 Ziffern bestehen")
        return value


class Employee(EmployeeBase):
    id: int
    model_config = ConfigDict(from_attributes=True)


class LeaveRequestBase(BaseModel):
    type: Literal["vacation", "day_off"]
    period_start: date
    period_end: date
    time_from: Optional[time] = None
    time_to: Optional[time] = None
    comment: Optional[str] = None

    @field_validator("time_from", "time_to", mode="before")
    @classmethod
    def normalize_times(cls, value):
        return _coerce_time(value)

    @model_validator(mode="after")
    def validate_request(self):
        if self.period_end < self.period_start:
            raise ValueError("Das Enddatum darf nicht vor dem Startdatum liegen")
        if self.comment is not None:
            self.comment = self.comment.strip() or None
        if self.type == models.LeaveType.DAY_OFF:
            if not self.comment:
                raise ValueError("Für eine Tagesbefreiung ist ein Kommentar erforderlich")
        else:
            # vacation requests never carry a comment or window
            self.comment = None
            self.time_from = None
            self.time_to = None
        if (self.time_from is None) != (self.time_to is None):
            raise ValueError("Für eine Teilbefreiung sind Start- und Endzeit erforderlich")
        return self


class LeaveRequestCreate(LeaveRequestBase):
    employee_id: Optional[int] = None


class LeaveRequestUpdate(LeaveRequestBase):
    pass


class LeaveRequestDecision(BaseModel):
    status: Literal["approved", "rejected"]


class LeaveRequest(BaseModel):
    id: int
    employee_id: int
    type: str
    period_start: date
    period_end: date
    time_from: Optional[time] = None
    time_to: Optional[time] = None
    comment: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class TimesheetEntryDraft(BaseModel):
    """An entry that is about to be written to the store."""

    employee_id: int
    date: date
    status: str
    time_from: Optional[time] = None
    time_to: Optional[time] = None
    break_minutes: int = 0
    hours_decimal: Optional[float] = None
    activity_note: Optional[str] = None
    project_name: Optional[str] = None
    comment: Optional[str] = None


class TimesheetEntryCreate(BaseModel):
    date: date
    status: Literal["work", "vacation", "sick", "day_off"]
    time_from: Optional[time] = None
    time_to: Optional[time] = None
    break_minutes: int = 0
    activity_note: Optional[str] = None
    project_name: Optional[str] = None
    comment: Optional[str] = None
    employee_id: Optional[int] = None

    @field_validator("time_from", "time_to", mode="before")
    @classmethod
    def normalize_times(cls, value):
        return _coerce_time(value)

    @field_validator("break_minutes")
    @classmethod
    def validate_break(cls, value: int) -> int:
        if value < 0:
            raise ValueError("Pause darf nicht negativ sein")
        return value

    @field_validator("activity_note", "project_name", "comment")
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class TimesheetEntry(BaseModel):
    id: int
    employee_id: int
    date: date
    status: str
    time_from: Optional[time] = None
    time_to: Optional[time] = None
    break_minutes: int = 0
    hours_decimal: Optional[float] = None
    activity_note: Optional[str] = None
    project_name: Optional[str] = None
    comment: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class CorrectionCreate(BaseModel):
    entry_id: int
    corrected_time_from: Optional[time] = None
    corrected_time_to: Optional[time] = None
    corrected_break_minutes: Optional[int] = None
    corrected_hours_decimal: Optional[float] = None
    note: Optional[str] = None

    @field_validator("corrected_time_from", "corrected_time_to", mode="before")
    @classmethod
    def normalize_times(cls, value):
        return _coerce_time(value)

    @field_validator("corrected_break_minutes")
    @classmethod
    def validate_break(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise ValueError("Pause darf nicht negativ sein")
        return value

    @field_validator("corrected_hours_decimal")
    @classmethod
    def validate_hours(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and not 0 <= value <= 24:
            raise ValueError("Stunden müssen zwischen 0 und 24 liegen")
        return value


class Correction(BaseModel):
    id: int
    entry_id: int
    admin_id: Optional[int] = None
    corrected_time_from: Optional[time] = None
    corrected_time_to: Optional[time] = None
    corrected_break_minutes: Optional[int] = None
    corrected_hours_decimal: Optional[float] = None
    note: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class FieldDiff(BaseModel):
    original: Union[str, int, float, None] = None
    corrected: Union[str, int, float, None] = None
    changed: bool = False


class CorrectionDiff(BaseModel):
    time_range: FieldDiff
    break_minutes: FieldDiff
    hours: FieldDiff
    note: FieldDiff
    has_changes: bool


class HolidayInfo(BaseModel):
    date: date
    name: str
    model_config = ConfigDict(from_attributes=True)


class HolidayCreate(BaseModel):
    name: str
    date: date
    region: Optional[str] = None


class Holiday(HolidayCreate):
    id: int
    model_config = ConfigDict(from_attributes=True)


class HolidayExclusionCreate(BaseModel):
    employee_id: int
    holiday_date: date


class MonthlySummary(BaseModel):
    total_minutes: int = 0
    work_minutes: int = 0
    sick_minutes: int = 0
    vacation_minutes: int = 0
    holiday_minutes: int = 0
    day_off_minutes: int = 0


class DailyReportRow(BaseModel):
    date: date
    status: str = "none"
    note: str = ""
    work_hours: float = 0.0
    vacation_hours: float = 0.0
    sick_hours: float = 0.0
    holiday_hours: float = 0.0
    day_off_hours: float = 0.0
    is_holiday_work: bool = False
    highlight: Optional[str] = None


class MonthlyReport(BaseModel):
    year: int
    month: int
    rows: List[DailyReportRow]
    summary: MonthlySummary
