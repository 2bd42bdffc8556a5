from __future__ import annotations

from datetime import date

import pytest

from stundenkonto import crud, models, services
from stundenkonto.materializer import MaterializationError


def _submit_vacation(client, start="2026-01-05", end="2026-01-11"):
    response = client.post(
        "/api/leave-requests",
        json={"type": "vacation", "period_start": start, "period_end": end, "comment": "wird verworfen"},
    )
    assert response.status_code == 201, response.text
    return response.json()


def _login(client, pin):
    response = client.post("/login", data={"pin_code": pin})
    assert response.status_code == 200, response.text


class TestAuthentication:
    def test_requires_login(self, client):
        assert client.get("/api/leave-requests").status_code == 401

    def test_wrong_pin(self, client, employee):
        response = client.post("/login", data={"pin_code": "0000"})
        assert response.status_code == 400

    def test_approval_requires_admin(self, employee_client):
        request = _submit_vacation(employee_client)
        response = employee_client.put(f"/api/leave-requests/{request['id']}/approve", json={"status": "approved"})
        assert response.status_code == 403

    def test_logout(self, employee_client):
        assert employee_client.get("/logout").status_code == 200
        assert employee_client.get("/api/leave-requests").status_code == 401

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"


class TestLeaveRequests:
    def test_employee_request_is_submitted_without_comment(self, employee_client):
        request = _submit_vacation(employee_client)
        assert request["status"] == "submitted"
        assert request["comment"] is None

    def test_day_off_requires_comment(self, employee_client):
        response = employee_client.post(
            "/api/leave-requests",
            json={"type": "day_off", "period_start": "2026-03-04", "period_end": "2026-03-04"},
        )
        assert response.status_code == 422

    def test_end_before_start_is_rejected(self, employee_client):
        response = employee_client.post(
            "/api/leave-requests",
            json={"type": "vacation", "period_start": "2026-03-06", "period_end": "2026-03-04"},
        )
        assert response.status_code == 422

    def test_approval_materializes_entries(self, client, employee, admin, db_session):
        _login(client, "1234")
        request = _submit_vacation(client)
        _login(client, "9999")

        response = client.put(f"/api/leave-requests/{request['id']}/approve", json={"status": "approved"})
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "approved"

        entries = crud.get_timesheet_entries(db_session, employee.id, date(2026, 1, 1), date(2026, 1, 31))
        assert [entry.date.day for entry in entries] == [5, 6, 7, 8, 9, 10]
        assert {entry.status for entry in entries} == {models.TimesheetStatus.VACATION}

        again = client.put(f"/api/leave-requests/{request['id']}/approve", json={"status": "approved"})
        assert again.status_code == 404

    def test_approval_can_skip_weekday_holidays(self, client, employee, admin, db_session, monkeypatch):
        monkeypatch.setattr(services, "SKIP_HOLIDAYS_ON_APPROVAL", True)
        _login(client, "1234")
        request = _submit_vacation(client)
        _login(client, "9999")

        response = client.put(f"/api/leave-requests/{request['id']}/approve", json={"status": "approved"})
        assert response.status_code == 200, response.text
        entries = crud.get_timesheet_entries(db_session, employee.id, date(2026, 1, 1), date(2026, 1, 31))
        assert [entry.date.day for entry in entries] == [5, 7, 8, 9, 10]

    def test_skipped_holidays_span_both_months(self, client, employee, admin, db_session, monkeypatch):
        monkeypatch.setattr(services, "SKIP_HOLIDAYS_ON_APPROVAL", True)
        _login(client, "1234")
        request = _submit_vacation(client, start="2025-12-22", end="2026-01-02")
        _login(client, "9999")

        response = client.put(f"/api/leave-requests/{request['id']}/approve", json={"status": "approved"})
        assert response.status_code == 200, response.text
        entries = crud.get_timesheet_entries(db_session, employee.id, date(2025, 12, 1), date(2026, 1, 31))
        assert [entry.date for entry in entries] == [
            date(2025, 12, 22),
            date(2025, 12, 23),
            date(2025, 12, 24),
            date(2025, 12, 27),
            date(2025, 12, 29),
            date(2025, 12, 30),
            date(2025, 12, 31),
            date(2026, 1, 2),
        ]

    def test_day_booked_concurrently_is_skipped(self, client, employee, admin, db_session, monkeypatch):
        _login(client, "1234")
        request = _submit_vacation(client, start="2026-01-05", end="2026-01-09")
        _login(client, "9999")
        db_session.add(
            models.TimesheetEntry(
                employee_id=employee.id,
                date=date(2026, 1, 7),
                status=models.TimesheetStatus.VACATION,
                hours_decimal=0.0,
            )
        )
        db_session.commit()
        # the key lookup misses the entry, as if it was written right after
        monkeypatch.setattr(crud, "get_existing_entry_keys", lambda *args, **kwargs: set())

        response = client.put(f"/api/leave-requests/{request['id']}/approve", json={"status": "approved"})
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "approved"
        entries = crud.get_timesheet_entries(db_session, employee.id, date(2026, 1, 1), date(2026, 1, 31))
        assert [entry.date.day for entry in entries] == [5, 6, 7, 8, 9]

    def test_rejection_books_nothing(self, client, employee, admin, db_session):
        _login(client, "1234")
        request = _submit_vacation(client)
        _login(client, "9999")

        response = client.put(f"/api/leave-requests/{request['id']}/approve", json={"status": "rejected"})
        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        assert crud.get_timesheet_entries(db_session, employee.id) == []

    def test_failed_materialization_rolls_back_approval(self, client, employee, admin, db_session, monkeypatch):
        _login(client, "1234")
        request = _submit_vacation(client)
        _login(client, "9999")

        def failing(*args, **kwargs):
            raise MaterializationError("Zeiteinträge konnten nicht erstellt werden")

        monkeypatch.setattr(services, "create_timesheet_entries_from_leave_request", failing)
        response = client.put(f"/api/leave-requests/{request['id']}/approve", json={"status": "approved"})
        assert response.status_code == 500
        stored = crud.get_leave_request(db_session, request["id"])
        assert stored.status == models.LeaveRequestStatus.SUBMITTED

    def test_admin_request_for_employee_is_approved_immediately(self, admin_client, employee, db_session):
        response = admin_client.post(
            "/api/leave-requests",
            json={
                "employee_id": employee.id,
                "type": "day_off",
                "period_start": "2026-03-04",
                "period_end": "2026-03-04",
                "time_from": "08:00",
                "time_to": "10:30",
                "comment": "Behördengang",
            },
        )
        assert response.status_code == 201, response.text
        assert response.json()["status"] == "approved"
        (entry,) = crud.get_timesheet_entries(db_session, employee.id)
        assert entry.status == models.TimesheetStatus.DAY_OFF
        assert entry.hours_decimal == 2.5

    def test_employee_cannot_file_for_others(self, employee_client, admin):
        response = employee_client.post(
            "/api/leave-requests",
            json={"employee_id": admin.id, "type": "vacation", "period_start": "2026-03-04", "period_end": "2026-03-04"},
        )
        assert response.status_code == 403

    def test_owner_can_delete_submitted_request(self, employee_client):
        request = _submit_vacation(employee_client)
        assert employee_client.delete(f"/api/leave-requests/{request['id']}").status_code == 200
        assert employee_client.get("/api/leave-requests").json() == []


class TestTimesheetEntries:
    def test_work_entry_computes_hours(self, employee_client):
        response = employee_client.post(
            "/api/timesheet-entries",
            json={
                "date": "2026-01-07",
                "status": "work",
                "time_from": "07:00",
                "time_to": "15:30:00",
                "break_minutes": 30,
                "project_name": "Neubau Nord",
                "activity_note": "Schalung",
            },
        )
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["hours_decimal"] == 8.0
        assert data["time_to"] == "15:30:00"

    def test_same_day_and_status_is_updated_in_place(self, employee_client):
        payload = {"date": "2026-01-07", "status": "sick", "comment": "Grippe"}
        first = employee_client.post("/api/timesheet-entries", json=payload).json()
        payload["comment"] = "Grippe, AU liegt vor"
        second = employee_client.post("/api/timesheet-entries", json=payload).json()
        assert first["id"] == second["id"]
        assert second["comment"] == "Grippe, AU liegt vor"

    def test_concurrent_double_submit_is_rejected(self, employee_client, monkeypatch):
        payload = {"date": "2026-01-07", "status": "sick", "comment": "Grippe"}
        assert employee_client.post("/api/timesheet-entries", json=payload).status_code == 200
        # the second request did not see the first entry yet
        monkeypatch.setattr(crud, "get_timesheet_entry_for_day", lambda *args, **kwargs: None)
        response = employee_client.post("/api/timesheet-entries", json=payload)
        assert response.status_code == 400
        assert "bereits ein Eintrag" in response.json()["detail"]

    @pytest.mark.parametrize("day", ["2026-01-06", "2026-01-11"])
    def test_blocked_days_are_rejected(self, employee_client, day):
        response = employee_client.post(
            "/api/timesheet-entries", json={"date": day, "status": "work", "time_from": "08:00"}
        )
        assert response.status_code == 400

    def test_invalid_time_range_is_rejected(self, employee_client):
        response = employee_client.post(
            "/api/timesheet-entries",
            json={
                "date": "2026-01-07",
                "status": "work",
                "time_from": "15:00",
                "time_to": "07:00",
                "project_name": "Neubau Nord",
                "activity_note": "Schalung",
            },
        )
        assert response.status_code == 400

    def test_finished_work_needs_project_and_activity(self, employee_client):
        response = employee_client.post(
            "/api/timesheet-entries",
            json={"date": "2026-01-07", "status": "work", "time_from": "07:00", "time_to": "15:00"},
        )
        assert response.status_code == 400

    def test_vacation_entry_needs_comment(self, employee_client):
        response = employee_client.post("/api/timesheet-entries", json={"date": "2026-01-07", "status": "vacation"})
        assert response.status_code == 400


class TestCorrectionsAndSummary:
    def _work_entry(self, db_session, employee, day, hours):
        entry = models.TimesheetEntry(
            employee_id=employee.id,
            date=day,
            status=models.TimesheetStatus.WORK,
            hours_decimal=hours,
            break_minutes=0,
        )
        db_session.add(entry)
        db_session.commit()
        db_session.refresh(entry)
        return entry

    def test_correction_overrides_hours_in_summary(self, client, employee, admin, db_session):
        entry = self._work_entry(db_session, employee, date(2026, 1, 7), 8.0)
        self._work_entry(db_session, employee, date(2026, 1, 6), 3.0)
        _login(client, "9999")

        response = client.post(
            "/api/timesheet-corrections",
            json={"entry_id": entry.id, "corrected_time_from": "07:00", "corrected_time_to": "13:00"},
        )
        assert response.status_code == 201, response.text
        assert response.json()["corrected_hours_decimal"] == 6.0

        summary = client.get(
            "/api/monthly-summary", params={"year": 2026, "month": 1, "employee_id": employee.id}
        ).json()
        assert summary["work_minutes"] == 360
        assert summary["holiday_minutes"] == 180
        assert summary["total_minutes"] == 540

        _login(client, "1234")
        diff = client.get(f"/api/timesheet-entries/{entry.id}/correction-diff").json()
        assert diff["hours"]["changed"]
        assert diff["time_range"]["corrected"] == "07:00:00 - 13:00:00"

    def test_corrections_are_admin_only(self, employee_client, employee, db_session):
        entry = self._work_entry(db_session, employee, date(2026, 1, 7), 8.0)
        response = employee_client.post(
            "/api/timesheet-corrections", json={"entry_id": entry.id, "corrected_hours_decimal": 4.0}
        )
        assert response.status_code == 403

    def test_invalid_corrected_range_is_rejected(self, admin_client, employee, db_session):
        entry = self._work_entry(db_session, employee, date(2026, 1, 7), 8.0)
        response = admin_client.post(
            "/api/timesheet-corrections",
            json={"entry_id": entry.id, "corrected_time_from": "13:00", "corrected_time_to": "07:00"},
        )
        assert response.status_code == 400

    def test_exclusion_turns_holiday_work_into_work(self, admin_client, employee, db_session):
        self._work_entry(db_session, employee, date(2026, 1, 6), 3.0)
        response = admin_client.post(
            "/api/employee-holiday-exclusions",
            json={"employee_id": employee.id, "holiday_date": "2026-01-06"},
        )
        assert response.status_code == 201
        summary = admin_client.get(
            "/api/monthly-summary", params={"year": 2026, "month": 1, "employee_id": employee.id}
        ).json()
        assert summary["work_minutes"] == 180
        assert summary["holiday_minutes"] == 0


class TestReports:
    def test_monthly_pdf(self, employee_client):
        response = employee_client.get("/api/pdf/monthly-report", params={"year": 2026, "month": 1})
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")

    def test_monthly_excel(self, employee_client):
        response = employee_client.get("/api/excel/monthly-report", params={"year": 2026, "month": 1})
        assert response.status_code == 200
        assert response.content[:2] == b"PK"

    def test_leave_request_pdf(self, employee_client):
        request = _submit_vacation(employee_client)
        response = employee_client.get(f"/api/pdf/leave-requests/{request['id']}")
        assert response.status_code == 200
        assert response.content.startswith(b"%PDF")
