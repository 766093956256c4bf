import logging
import os
import tempfile
import uuid
from datetime import date
from typing import List, Optional

import openpyxl
from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from openpyxl.chart import PieChart, Reference
from openpyxl.styles import Alignment, Font
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from starlette.background import BackgroundTask

from shared.auth import authorization
from shared.db import get_db
from shared.errors import ConflictError, InvalidInputError, InvalidStateError
from shared.responses import ApiResponse
from services.class_management.controllers.class_service import get_class_or_404
from services.class_management.models.attendance import AttendanceEntry, AttendanceRecord, AttendanceStatus
from services.class_management.schemas.attendance import (
    AttendanceRecordOut,
    MarkAttendanceRequest,
    StudentAttendanceIn,
)
from services.user_management.models.users import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/class", tags=["Attendance Management"])


def _latest_status_per_student(entries: List[StudentAttendanceIn]) -> dict:
    statuses = {}
    for entry in entries:
        statuses[entry.student_id] = entry.status
    return statuses


async def mark_attendance(
    db: AsyncSession,
    class_id: uuid.UUID,
    attendance_date: date,
    topic: Optional[str],
    entries: List[StudentAttendanceIn],
    recorded_by: Optional[uuid.UUID] = None,
) -> List[AttendanceRecord]:
    """
    Upsert the attendance record of `class_id` for one calendar day.

    Students not on the roster are dropped silently. An existing record for
    the same day has its student list replaced wholesale, so students left out
    of a resubmission disappear from that day's record. Returns every record
    of the class in date order.
    """
    school_class = await get_class_or_404(db, class_id)

    roster = set(school_class.student_ids)
    if not roster:
        raise InvalidStateError("Class has no students, cannot mark attendance")

    statuses = {
        student_id: entry_status
        for student_id, entry_status in _latest_status_per_student(entries).items()
        if student_id in roster
    }
    if not statuses:
        raise InvalidInputError("No valid students found in the class")

    existing = next((record for record in school_class.attendance if record.date == attendance_date), None)

    if existing:
        existing.students.clear()
        # flush the deletes first: (record_id, student_id) is unique
        await db.flush()
        existing.students.extend(
            AttendanceEntry(student_id=student_id, status=entry_status)
            for student_id, entry_status in statuses.items()
        )
        if topic is not None:
            existing.topic = topic
        existing.recorded_by = recorded_by or existing.recorded_by
    else:
        school_class.attendance.append(AttendanceRecord(
            date=attendance_date,
            topic=topic,
            recorded_by=recorded_by,
            students=[
                AttendanceEntry(student_id=student_id, status=entry_status)
                for student_id, entry_status in statuses.items()
            ],
        ))

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"Attendance for {attendance_date.isoformat()} was recorded concurrently, please retry")

    logger.info(
        "%s attendance for class %s on %s (%d students, %d dropped)",
        "Replaced" if existing else "Recorded",
        class_id, attendance_date, len(statuses), len(entries) - len(statuses),
    )
    return sorted(school_class.attendance, key=lambda record: record.date)


def build_attendance_workbook(students: List[User], records: List[AttendanceRecord]) -> openpyxl.Workbook:
    records = sorted(records, key=lambda record: record.date)
    all_dates = [record.date for record in records]
    attendance_map = {
        (entry.student_id, record.date): entry.status
        for record in records
        for entry in record.students
    }

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Attendance Report"

    base_headers = ["Student Code", "Student Name", "Total Days", "Present", "Absent", "Attendance %"]
    date_headers = [d.strftime("%d-%b").lstrip("0") for d in all_dates]
    ws.append(base_headers + date_headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal="center")

    total_days = len(all_dates)
    class_present = 0
    class_absent = 0

    for student in students:
        statuses = [attendance_map.get((student.id, d)) for d in all_dates]
        present = sum(1 for s in statuses if s == AttendanceStatus.PRESENT)
        absent = sum(1 for s in statuses if s == AttendanceStatus.ABSENT)
        perc = (present / total_days) * 100 if total_days else 0

        row = [student.user_code or str(student.id), student.full_name, total_days, present, absent, f"{perc:.1f}%"]
        row.extend(s.value if s else "N/A" for s in statuses)
        ws.append(row)

        class_present += present
        class_absent += absent

    summary_row_start = len(students) + 3
    ws[f"A{summary_row_start}"] = "Class Summary"
    ws[f"A{summary_row_start}"].font = Font(bold=True)

    ws[f"A{summary_row_start + 1}"] = "Total Students"
    ws[f"B{summary_row_start + 1}"] = len(students)

    ws[f"A{summary_row_start + 2}"] = "Total Days"
    ws[f"B{summary_row_start + 2}"] = total_days

    ws[f"A{summary_row_start + 3}"] = "Total Present"
    ws[f"B{summary_row_start + 3}"] = class_present

    ws[f"A{summary_row_start + 4}"] = "Total Absent"
    ws[f"B{summary_row_start + 4}"] = class_absent

    chart = PieChart()
    labels = Reference(ws, min_col=1, min_row=summary_row_start + 3, max_row=summary_row_start + 4)
    data = Reference(ws, min_col=2, min_row=summary_row_start + 3, max_row=summary_row_start + 4)
    chart.add_data(data, titles_from_data=False)
    chart.set_categories(labels)
    chart.title = "Class Attendance Distribution"
    ws.add_chart(chart, f"E{summary_row_start + 1}")

    return wb


# --- MARK ATTENDANCE ---
@router.post("/{class_id}/attendance", response_model=ApiResponse[List[AttendanceRecordOut]])
async def mark_attendance_route(
    class_id: uuid.UUID,
    payload: MarkAttendanceRequest,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("teacher")),
):
    records = await mark_attendance(
        db,
        class_id,
        payload.date,
        payload.topic,
        payload.students,
        recorded_by=uuid.UUID(current_user["user_id"]),
    )
    return {"success": True, "message": "Attendance marked successfully", "data": records}


# --- EXPORT ATTENDANCE AS EXCEL ---
@router.get("/{class_id}/attendance/export")
async def export_attendance_excel(
    class_id: uuid.UUID,
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("teacher")),
):
    school_class = await get_class_or_404(db, class_id)

    records = [
        record for record in school_class.attendance
        if (from_date is None or record.date >= from_date) and (to_date is None or record.date <= to_date)
    ]

    students = []
    if school_class.student_ids:
        result = await db.execute(
            select(User).where(User.id.in_(school_class.student_ids)).order_by(User.full_name)
        )
        students = list(result.scalars().all())

    wb = build_attendance_workbook(students, records)

    with tempfile.NamedTemporaryFile(delete=False, suffix=".xlsx") as tmp:
        wb.save(tmp.name)
        tmp_path = tmp.name

    return FileResponse(
        tmp_path,
        filename=f"attendance_{school_class.class_name.replace(' ', '_')}.xlsx",
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        background=BackgroundTask(os.remove, tmp_path),
    )
