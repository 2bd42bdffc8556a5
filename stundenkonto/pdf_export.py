from __future__ import annotations

from datetime import date
from io import BytesIO
from xml.sax.saxutils import escape
from typing import List, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from . import models, schemas
from .date_utils import format_date_de, format_hours, format_minutes_de, format_time, get_day_name, get_month_name

HIGHLIGHT_COLORS = {
    "holiday": colors.HexColor("#fde2e4"),
    "weekend": colors.HexColor("#e0ecff"),
}

LEAVE_TYPE_TITLES = {
    models.LeaveType.VACATION: "Urlaubsantrag",
    models.LeaveType.DAY_OFF: "Antrag auf Tagesbefreiung",
}

STATUS_LABELS = {
    models.LeaveRequestStatus.SUBMITTED: "Eingereicht",
    models.LeaveRequestStatus.APPROVED: "Genehmigt",
    models.LeaveRequestStatus.REJECTED: "Abgelehnt",
}


def _base_style() -> List[tuple]:
    return [
        ("BACKGROUND", (0, 0), (-1, 0), colors.whitesmoke),
        ("INNERGRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
        ("BOX", (0, 0), (-1, -1), 0.5, colors.grey),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ]


def _document(buffer: BytesIO) -> SimpleDocTemplate:
    return SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=15 * mm,
        rightMargin=15 * mm,
        topMargin=18 * mm,
        bottomMargin=18 * mm,
    )


def _hours_cell(value: float) -> str:
    return format_hours(value) if value else ""


def export_monthly_report_pdf(*, employee: models.Employee, report: schemas.MonthlyReport) -> BytesIO:
    buffer = BytesIO()
    doc = _document(buffer)
    styles = getSampleStyleSheet()
    story: List[object] = []

    title = f"Stundenzettel {get_month_name(report.month)} {report.year}"
    story.append(Paragraph(title, styles["Title"]))
    story.append(Spacer(1, 3 * mm))
    footer_left = f"Mitarbeiter: {employee.full_name}"
    if employee.personnel_number:
        footer_left += f" (Personalnr. {employee.personnel_number})"
    footer_right = f"Erstellt am: {date.today().strftime('%d.%m.%Y')}"

    day_data = [["Tag", "Arbeit", "Urlaub", "Krank", "Feiertag", "Tagesbefr.", "Bemerkung"]]
    style = _base_style() + [
        ("ALIGN", (1, 1), (5, -1), "CENTER"),
        ("VALIGN", (0, 1), (-1, -1), "TOP"),
    ]
    for index, row in enumerate(report.rows, start=1):
        note = escape(row.note).replace("\n", "<br/>")
        if row.is_holiday_work:
            note = f"Arbeit am Feiertag<br/>{note}" if note else "Arbeit am Feiertag"
        day_data.append(
            [
                f"{get_day_name(row.date)} {row.date.strftime('%d.%m.')}",
                _hours_cell(row.work_hours),
                _hours_cell(row.vacation_hours),
                _hours_cell(row.sick_hours),
                _hours_cell(row.holiday_hours),
                _hours_cell(row.day_off_hours),
                Paragraph(note, styles["BodyText"]) if note else "",
            ]
        )
        if row.highlight in HIGHLIGHT_COLORS:
            style.append(("BACKGROUND", (0, index), (-1, index), HIGHLIGHT_COLORS[row.highlight]))
    day_table = Table(
        day_data,
        colWidths=[
            doc.width * 0.12,
            doc.width * 0.09,
            doc.width * 0.09,
            doc.width * 0.09,
            doc.width * 0.09,
            doc.width * 0.11,
            doc.width * 0.41,
        ],
        repeatRows=1,
    )
    day_table.setStyle(TableStyle(style))
    story.append(day_table)
    story.append(Spacer(1, 6 * mm))

    summary = report.summary
    summary_data = [
        ["Zusammenfassung", ""],
        ["Arbeitszeit", format_minutes_de(summary.work_minutes)],
        ["Urlaub", format_minutes_de(summary.vacation_minutes)],
        ["Krankheit", format_minutes_de(summary.sick_minutes)],
        ["Arbeit an Feiertagen", format_minutes_de(summary.holiday_minutes)],
        ["Tagesbefreiung", format_minutes_de(summary.day_off_minutes)],
        ["Gesamt", format_minutes_de(summary.total_minutes)],
    ]
    summary_table = Table(summary_data, hAlign="LEFT", colWidths=[doc.width * 0.35, doc.width * 0.2])
    summary_table.setStyle(
        TableStyle(
            _base_style()
            + [
                ("SPAN", (0, 0), (-1, 0)),
                ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                ("BACKGROUND", (0, -1), (-1, -1), colors.HexColor("#eef2ff")),
                ("ALIGN", (1, 1), (1, -1), "RIGHT"),
            ]
        )
    )
    story.append(summary_table)

    def _add_footer(canvas, document):
        canvas.saveState()
        canvas.setFont("Helvetica", 9)
        y_position = 12 * mm
        canvas.drawString(document.leftMargin, y_position, footer_left)
        right_width = canvas.stringWidth(footer_right, "Helvetica", 9)
        canvas.drawString(document.pagesize[0] - document.rightMargin - right_width, y_position, footer_right)
        canvas.restoreState()

    doc.build(story, onFirstPage=_add_footer, onLaterPages=_add_footer)
    buffer.seek(0)
    return buffer


def export_leave_request_pdf(
    *,
    employee: models.Employee,
    request: models.LeaveRequest,
    working_days: Optional[int] = None,
) -> BytesIO:
    """Printable form of a single leave or day-off request."""
    buffer = BytesIO()
    doc = _document(buffer)
    styles = getSampleStyleSheet()
    story: List[object] = []

    story.append(Paragraph(LEAVE_TYPE_TITLES.get(request.type, "Antrag"), styles["Title"]))
    story.append(Spacer(1, 6 * mm))

    if request.period_start == request.period_end:
        period = format_date_de(request.period_start)
    else:
        period = f"{format_date_de(request.period_start)} bis {format_date_de(request.period_end)}"
    data = [
        ["Angaben", ""],
        ["Mitarbeiter", employee.full_name],
        ["Personalnummer", employee.personnel_number or "-"],
        ["Zeitraum", period],
    ]
    if request.time_from is not None and request.time_to is not None:
        data.append(["Uhrzeit", f"{format_time(request.time_from)} - {format_time(request.time_to)}"])
    if working_days is not None:
        data.append(["Arbeitstage", str(working_days)])
    if request.comment:
        data.append(["Begründung", Paragraph(escape(request.comment), styles["BodyText"])])
    data.append(["Status", STATUS_LABELS.get(request.status, request.status)])
    if request.created_at:
        data.append(["Eingereicht am", request.created_at.strftime("%d.%m.%Y")])

    table = Table(data, hAlign="LEFT", colWidths=[doc.width * 0.3, doc.width * 0.7])
    table.setStyle(TableStyle(_base_style() + [("SPAN", (0, 0), (-1, 0)), ("VALIGN", (0, 1), (-1, -1), "TOP")]))
    story.append(table)
    story.append(Spacer(1, 25 * mm))

    signatures = Table(
        [["", ""], ["Unterschrift Mitarbeiter", "Unterschrift Vorgesetzter"]],
        colWidths=[doc.width * 0.45, doc.width * 0.45],
        hAlign="LEFT",
    )
    signatures.setStyle(
        TableStyle(
            [
                ("LINEABOVE", (0, 1), (0, 1), 0.5, colors.black),
                ("LINEABOVE", (1, 1), (1, 1), 0.5, colors.black),
                ("FONTSIZE", (0, 1), (-1, 1), 8),
            ]
        )
    )
    story.append(signatures)

    doc.build(story)
    buffer.seek(0)
    return buffer
