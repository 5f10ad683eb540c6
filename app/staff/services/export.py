"""Spreadsheet export of a session's attendance records"""
import io
from typing import Mapping, Sequence

from openpyxl import Workbook

from app.students.models.attendance import AttendanceRecord

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SHEET_TITLE = "Attendance"

EXPORT_COLUMNS = [
    "ParticipantId",
    "Name",
    "Subject",
    "Date",
    "Time",
    "Status",
    "Latitude",
    "Longitude",
    "MarkedAt",
]


def records_to_xlsx(
    records: Sequence[AttendanceRecord], names: Mapping[str, str] = None
) -> bytes:
    names = names or {}
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    ws.append(EXPORT_COLUMNS)
    for r in records:
        ws.append(
            [
                r.participant_id,
                names.get(r.participant_id, r.participant_id),
                r.subject,
                r.date,
                r.time,
                r.status,
                r.latitude,
                r.longitude,
                r.created_at.isoformat(sep=" ", timespec="seconds"),
            ]
        )

    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


def export_filename(session_id: str) -> str:
    return f"attendance_{session_id}.xlsx"
