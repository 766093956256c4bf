# services/class_management/schemas/attendance.py

from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from uuid import UUID

from shared.db import as_utc
from services.class_management.models.attendance import AttendanceStatus


class StudentAttendanceIn(BaseModel):
    student_id: UUID
    status: AttendanceStatus = AttendanceStatus.PRESENT


class MarkAttendanceRequest(BaseModel):
    date: date
    topic: Optional[str] = None
    students: List[StudentAttendanceIn] = Field(default_factory=list)

    @field_validator("date", mode="before")
    @classmethod
    def calendar_day_only(cls, value):
        # a time part means an instant: key it by its UTC calendar day
        if isinstance(value, str) and len(value.strip()) > 10:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        if isinstance(value, datetime):
            return as_utc(value).date()
        return value


class AttendanceEntryOut(BaseModel):
    student_id: UUID
    status: AttendanceStatus

    class Config:
        from_attributes = True


class AttendanceRecordOut(BaseModel):
    id: UUID
    date: date
    topic: Optional[str] = None
    students: List[AttendanceEntryOut]

    class Config:
        from_attributes = True


class StudentAttendanceHistoryItem(BaseModel):
    class_id: UUID
    date: date
    subject: str
    status: AttendanceStatus
