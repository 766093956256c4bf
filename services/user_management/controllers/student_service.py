from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from shared.auth import authorization
from shared.db import get_db
from shared.errors import NotFoundError
from shared.responses import ApiResponse
from services.class_management.models.classes import ClassSession, ClassStudent
from services.class_management.schemas.attendance import StudentAttendanceHistoryItem
from services.user_management.models.courses import Course, Unit
from services.user_management.schemas.courses import CourseOut, StudentClassOut, UnitOut

router = APIRouter(prefix="/users", tags=["Student Views"])


def _ensure_can_view(current_user: dict, student_id: UUID) -> None:
    if current_user["role"] == "student" and current_user["user_id"] != str(student_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Students can only view their own records"
        )


async def get_student_classes(
    db: AsyncSession,
    student_id: UUID,
    year: Optional[int] = None,
    semester: Optional[int] = None,
) -> List[ClassSession]:
    stmt = (
        select(ClassSession)
        .join(ClassStudent, ClassStudent.class_id == ClassSession.id)
        .where(ClassStudent.student_id == student_id)
    )
    if year is not None:
        stmt = stmt.where(ClassSession.year == year)
    if semester is not None:
        stmt = stmt.where(ClassSession.semester == semester)
    result = await db.execute(stmt.order_by(ClassSession.year, ClassSession.semester, ClassSession.class_name))
    return list(result.scalars().all())


async def get_student_attendance(db: AsyncSession, student_id: UUID) -> List[StudentAttendanceHistoryItem]:
    """Flat, date-ordered attendance history of one student across all their classes."""
    classes = await get_student_classes(db, student_id)
    if not classes:
        raise NotFoundError("Student not found in any class")

    history = []
    for school_class in classes:
        for record in school_class.attendance:
            entry = next((e for e in record.students if e.student_id == student_id), None)
            if entry:
                history.append(StudentAttendanceHistoryItem(
                    class_id=school_class.id,
                    date=record.date,
                    subject=school_class.unit.name,
                    status=entry.status,
                ))
    history.sort(key=lambda item: (item.date, item.subject))
    return history


async def get_student_units(
    db: AsyncSession,
    student_id: UUID,
    year: Optional[int] = None,
    semester: Optional[int] = None,
) -> List[Unit]:
    units = {}
    for school_class in await get_student_classes(db, student_id, year, semester):
        units.setdefault(school_class.unit.id, school_class.unit)
    return list(units.values())


async def get_student_courses(db: AsyncSession, student_id: UUID) -> List[Course]:
    course_ids = list(dict.fromkeys(unit.course_id for unit in await get_student_units(db, student_id)))
    if not course_ids:
        return []
    result = await db.execute(select(Course).where(Course.id.in_(course_ids)))
    courses = {course.id: course for course in result.scalars().all()}
    return [courses[course_id] for course_id in course_ids if course_id in courses]


# --- STUDENT ATTENDANCE HISTORY ---
@router.get("/attendance/{student_id}", response_model=ApiResponse[List[StudentAttendanceHistoryItem]])
async def student_attendance(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    _ensure_can_view(current_user, student_id)
    history = await get_student_attendance(db, student_id)
    return {"success": True, "data": history, "message": "Attendance records fetched successfully"}


# --- CLASSES OF A STUDENT ---
@router.get("/classes/{student_id}", response_model=ApiResponse[List[StudentClassOut]])
async def student_classes(
    student_id: UUID,
    year: Optional[int] = Query(None),
    semester: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    _ensure_can_view(current_user, student_id)
    classes = await get_student_classes(db, student_id, year, semester)
    return {
        "success": True,
        "data": [
            {
                "id": school_class.id,
                "class_name": school_class.class_name,
                "year": school_class.year,
                "semester": school_class.semester,
                "unit": school_class.unit,
                "teacher_id": school_class.teacher_id,
                "teacher_name": school_class.teacher.full_name,
                "schedule": school_class.slots,
            }
            for school_class in classes
        ],
    }


# --- COURSES OF A STUDENT ---
@router.get("/courses/{student_id}", response_model=ApiResponse[List[CourseOut]])
async def student_courses(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    _ensure_can_view(current_user, student_id)
    return {"success": True, "data": await get_student_courses(db, student_id)}


# --- UNITS OF A STUDENT ---
@router.get("/units/{student_id}", response_model=ApiResponse[List[UnitOut]])
async def student_units(
    student_id: UUID,
    year: Optional[int] = Query(None),
    semester: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    _ensure_can_view(current_user, student_id)
    return {"success": True, "data": await get_student_units(db, student_id, year, semester)}
