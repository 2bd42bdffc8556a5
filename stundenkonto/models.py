from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


class EmployeeRole:
    ADMIN = "admin"
    EMPLOYEE = "employee"


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    personnel_number = Column(String, unique=True, nullable=True)
    pin_code = Column(String(4), unique=True, nullable=False)
    role = Column(String, default=EmployeeRole.EMPLOYEE)
    active = Column(Boolean, default=True)
    holiday_state = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    leave_requests = relationship("LeaveRequest", back_populates="employee", cascade="all, delete-orphan")
    timesheet_entries = relationship(
        "TimesheetEntry", back_populates="employee", cascade="all, delete-orphan"
    )

    @property
    def is_admin(self) -> bool:
        return self.role == EmployeeRole.ADMIN


class LeaveType:
    VACATION = "vacation"
    DAY_OFF = "day_off"

    ALL = (VACATION, DAY_OFF)


class LeaveRequestStatus:
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False)
    type = Column(String, nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    # optional partial-day window for day_off requests
    time_from = Column(Time, nullable=True)
    time_to = Column(Time, nullable=True)
    comment = Column(Text, nullable=True)
    status = Column(String, default=LeaveRequestStatus.SUBMITTED)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employee = relationship("Employee", back_populates="leave_requests")


class TimesheetStatus:
    WORK = "work"
    VACATION = "vacation"
    SICK = "sick"
    DAY_OFF = "day_off"

    ALL = (WORK, VACATION, SICK, DAY_OFF)


class TimesheetEntry(Base):
    __tablename__ = "timesheet_entries"
    __table_args__ = (
        UniqueConstraint("employee_id", "date", "status", name="uq_timesheet_entries_employee_date_status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    status = Column(String, nullable=False, default=TimesheetStatus.WORK)
    time_from = Column(Time, nullable=True)
    time_to = Column(Time, nullable=True)
    break_minutes = Column(Integer, default=0)
    hours_decimal = Column(Float, nullable=True)
    activity_note = Column(Text, nullable=True)
    project_name = Column(String, nullable=True)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employee = relationship("Employee", back_populates="timesheet_entries")
    corrections = relationship(
        "TimesheetCorrection",
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="TimesheetCorrection.created_at.desc()",
    )

    @property
    def note(self) -> str:
        return self.activity_note or self.comment or ""


class TimesheetCorrection(Base):
    __tablename__ = "timesheet_corrections"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("timesheet_entries.id"), nullable=False, index=True)
    admin_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    corrected_time_from = Column(Time, nullable=True)
    corrected_time_to = Column(Time, nullable=True)
    corrected_break_minutes = Column(Integer, nullable=True)
    corrected_hours_decimal = Column(Float, nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    entry = relationship("TimesheetEntry", back_populates="corrections")
    admin = relationship("Employee")


class Holiday(Base):
    __tablename__ = "holidays"
    __table_args__ = (UniqueConstraint("date", "region", name="uq_holidays_date_region"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    # NULL means nationwide
    region = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class HolidayExclusion(Base):
    __tablename__ = "employee_holiday_exclusions"
    __table_args__ = (
        UniqueConstraint("employee_id", "holiday_date", name="uq_holiday_exclusions_employee_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False)
    holiday_date = Column(Date, nullable=False)
    created_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
