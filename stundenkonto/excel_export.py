from __future__ import annotations

from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill

from . import models, schemas
from .date_utils import get_day_name, get_month_name

HIGHLIGHT_FILLS = {
    "holiday": PatternFill(start_color="FDE2E4", end_color="FDE2E4", fill_type="solid"),
    "weekend": PatternFill(start_color="E0ECFF", end_color="E0ECFF", fill_type="solid"),
}


def _autosize(ws) -> None:
    for column_cells in ws.columns:
        max_length = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column_cells)
        ws.column_dimensions[column_cells[0].column_letter].width = min(max_length + 2, 60)


def export_monthly_report(*, employee: models.Employee, report: schemas.MonthlyReport) -> BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = f"{get_month_name(report.month)} {report.year}"

    headers = [
        "Datum",
        "Tag",
        "Arbeit (Std)",
        "Urlaub (Std)",
        "Krank (Std)",
        "Feiertag (Std)",
        "Tagesbefreiung (Std)",
        "Bemerkung",
    ]
    ws.append(headers)

    header_font = Font(bold=True)
    for cell in ws[1]:
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center")

    for row in report.rows:
        ws.append(
            [
                row.date.strftime("%d.%m.%Y"),
                get_day_name(row.date),
                round(row.work_hours, 2),
                round(row.vacation_hours, 2),
                round(row.sick_hours, 2),
                row.holiday_hours,
                round(row.day_off_hours, 2),
                row.note.replace("\n", "; "),
            ]
        )
        fill = HIGHLIGHT_FILLS.get(row.highlight or "")
        if fill is not None:
            for cell in ws[ws.max_row]:
                cell.fill = fill
    _autosize(ws)

    summary_ws = wb.create_sheet(title="Zusammenfassung")
    summary_ws.append(["Mitarbeiter", employee.full_name])
    summary_ws.append(["Personalnummer", employee.personnel_number or ""])
    summary_ws.append([])
    summary_ws.append(["Kategorie", "Minuten"])
    summary_ws[summary_ws.max_row][0].font = header_font
    summary_ws[summary_ws.max_row][1].font = header_font
    summary = report.summary
    for label, minutes in (
        ("Arbeitszeit", summary.work_minutes),
        ("Urlaub", summary.vacation_minutes),
        ("Krankheit", summary.sick_minutes),
        ("Arbeit an Feiertagen", summary.holiday_minutes),
        ("Tagesbefreiung", summary.day_off_minutes),
        ("Gesamt", summary.total_minutes),
    ):
        summary_ws.append([label, minutes])
    _autosize(summary_ws)

    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer
