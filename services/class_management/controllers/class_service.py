import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from shared.auth import authorization
from shared.db import get_db
from shared.errors import (
    InvalidInputError,
    NotFoundError,
    ScheduleConflictError,
    TeacherConflictError,
)
from shared.responses import ApiResponse, MessageResponse
from services.class_management.controllers.scheduling import ScheduleCandidate, check_conflict
from services.class_management.models.classes import ClassSession, ClassSlot, ClassStudent
from services.class_management.schemas.classes import (
    ClassFilter,
    ClassSessionCreate,
    ClassSessionOut,
    ClassSessionUpdate,
    EnrollStudentsRequest,
    SlotIn,
)
from services.user_management.models.courses import Unit
from services.user_management.models.users import User, UserRole

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/class", tags=["Classes"])


async def get_class_or_404(db: AsyncSession, class_id: UUID) -> ClassSession:
    school_class = await db.get(ClassSession, class_id)
    if not school_class:
        raise NotFoundError("Class not found")
    return school_class


async def _ensure_unit(db: AsyncSession, unit_id: UUID) -> Unit:
    unit = await db.get(Unit, unit_id)
    if not unit:
        raise NotFoundError("Unit not found")
    return unit


async def _ensure_teacher(db: AsyncSession, teacher_id: UUID) -> User:
    teacher = await db.get(User, teacher_id)
    if not teacher or teacher.role != UserRole.TEACHER:
        raise NotFoundError("Teacher not found")
    return teacher


def _build_slots(slots: List[SlotIn], year: int, semester: int) -> List[ClassSlot]:
    return [
        ClassSlot(year=year, semester=semester, day=slot.day, time=slot.time, position=position)
        for position, slot in enumerate(slots)
    ]


async def _raise_on_conflict(db: AsyncSession, candidate: ScheduleCandidate) -> None:
    conflict = await check_conflict(db, candidate)
    if conflict is None:
        return
    if conflict.kind == "schedule":
        raise ScheduleConflictError(conflict.message)
    raise TeacherConflictError(conflict.message)


async def _commit_schedule(db: AsyncSession) -> None:
    try:
        await db.commit()
    except IntegrityError:
        # the (year, semester, day, time) constraint caught a concurrent booking
        await db.rollback()
        raise ScheduleConflictError("One of the requested slots was booked by another class in the meantime")


async def create_class(db: AsyncSession, payload: ClassSessionCreate) -> ClassSession:
    await _ensure_unit(db, payload.unit_id)
    await _ensure_teacher(db, payload.teacher_id)

    await _raise_on_conflict(db, ScheduleCandidate(
        year=payload.year,
        semester=payload.semester,
        teacher_id=payload.teacher_id,
        slots=[(slot.day, slot.time) for slot in payload.schedule],
    ))

    new_class = ClassSession(
        class_name=payload.class_name,
        year=payload.year,
        semester=payload.semester,
        unit_id=payload.unit_id,
        teacher_id=payload.teacher_id,
        quantity=payload.quantity,
        slots=_build_slots(payload.schedule, payload.year, payload.semester),
        enrollments=[],
        attendance=[],
    )
    db.add(new_class)
    await _commit_schedule(db)

    logger.info("Created class %s (%s) for %s/%s", new_class.id, new_class.class_name, new_class.year, new_class.semester)
    return new_class


async def update_class(db: AsyncSession, class_id: UUID, payload: ClassSessionUpdate) -> ClassSession:
    """Update descriptive and schedule fields; roster and attendance are never touched."""
    school_class = await get_class_or_404(db, class_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)

    if "unit_id" in changes:
        await _ensure_unit(db, changes["unit_id"])
    if "teacher_id" in changes:
        await _ensure_teacher(db, changes["teacher_id"])

    year = changes.get("year", school_class.year)
    semester = changes.get("semester", school_class.semester)
    teacher_id = changes.get("teacher_id", school_class.teacher_id)
    schedule = payload.schedule if payload.schedule is not None else [
        SlotIn(day=slot.day, time=slot.time) for slot in school_class.slots
    ]

    reschedule = any(key in changes for key in ("year", "semester", "teacher_id", "schedule"))
    if reschedule:
        await _raise_on_conflict(db, ScheduleCandidate(
            year=year,
            semester=semester,
            teacher_id=teacher_id,
            slots=[(slot.day, slot.time) for slot in schedule],
            exclude_class_id=school_class.id,
        ))

    for key in ("class_name", "year", "semester", "unit_id", "teacher_id", "quantity"):
        if key in changes:
            setattr(school_class, key, changes[key])

    if reschedule:
        # old slots must be gone before the new rows hit the term constraint
        school_class.slots.clear()
        await db.flush()
        school_class.slots.extend(_build_slots(schedule, year, semester))

    await _commit_schedule(db)
    logger.info("Updated class %s", school_class.id)
    return school_class


async def delete_class(db: AsyncSession, class_id: UUID) -> None:
    school_class = await get_class_or_404(db, class_id)
    await db.delete(school_class)
    await db.commit()
    logger.info("Deleted class %s", class_id)


async def filter_classes(db: AsyncSession, filters: ClassFilter) -> List[ClassSession]:
    stmt = select(ClassSession)
    if filters.year is not None:
        stmt = stmt.where(ClassSession.year == filters.year)
    if filters.semester is not None:
        stmt = stmt.where(ClassSession.semester == filters.semester)
    if filters.unit_id is not None:
        stmt = stmt.where(ClassSession.unit_id == filters.unit_id)
    if filters.course_id is not None:
        stmt = stmt.join(Unit, Unit.id == ClassSession.unit_id).where(Unit.course_id == filters.course_id)
    if filters.search:
        stmt = stmt.where(ClassSession.class_name.ilike(f"%{filters.search}%"))
    result = await db.execute(stmt.order_by(ClassSession.year, ClassSession.semester, ClassSession.class_name))
    return list(result.scalars().all())


async def enroll_students(db: AsyncSession, class_id: UUID, student_ids: List[UUID]) -> ClassSession:
    school_class = await get_class_or_404(db, class_id)

    result = await db.execute(select(User).where(User.id.in_(student_ids)))
    users = {user.id: user for user in result.scalars().all()}
    missing = [str(student_id) for student_id in student_ids if student_id not in users]
    if missing:
        raise NotFoundError(f"Students not found: {', '.join(missing)}")
    not_students = [str(user.id) for user in users.values() if user.role != UserRole.STUDENT]
    if not_students:
        raise InvalidInputError(f"Only students can be enrolled: {', '.join(not_students)}")

    enrolled = set(school_class.student_ids)
    for student_id in dict.fromkeys(student_ids):
        if student_id not in enrolled:
            school_class.enrollments.append(ClassStudent(student_id=student_id))

    await db.commit()
    logger.info("Class %s roster now has %d students", class_id, len(school_class.enrollments))
    return school_class


async def unenroll_student(db: AsyncSession, class_id: UUID, student_id: UUID) -> ClassSession:
    school_class = await get_class_or_404(db, class_id)
    enrollment = next((e for e in school_class.enrollments if e.student_id == student_id), None)
    if enrollment is None:
        raise NotFoundError("Student is not enrolled in this class")
    school_class.enrollments.remove(enrollment)
    await db.commit()
    return school_class


# --- GET ALL CLASSES ---
@router.get("/getAllClass", response_model=ApiResponse[List[ClassSessionOut]])
async def get_all_classes(
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    classes = await filter_classes(db, ClassFilter())
    return {"success": True, "data": classes, "message": "Classes retrieved successfully"}


# --- FILTER CLASSES ---
@router.get("/filter", response_model=ApiResponse[List[ClassSessionOut]])
async def get_filtered_classes(
    year: Optional[int] = Query(None),
    semester: Optional[int] = Query(None),
    unit_id: Optional[UUID] = Query(None),
    course_id: Optional[UUID] = Query(None),
    search: Optional[str] = Query(None, description="Case-insensitive match on class name"),
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    filters = ClassFilter(year=year, semester=semester, unit_id=unit_id, course_id=course_id, search=search)
    return {"success": True, "data": await filter_classes(db, filters)}


# --- CREATE CLASS (conflict checked) ---
@router.post("/create", response_model=ApiResponse[ClassSessionOut], status_code=status.HTTP_201_CREATED)
async def create_class_route(
    payload: ClassSessionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("teacher")),
):
    new_class = await create_class(db, payload)
    return {"success": True, "data": new_class, "message": "Class created successfully"}


# --- GET CLASS ---
@router.get("/{class_id}", response_model=ApiResponse[ClassSessionOut])
async def get_class(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    return {"success": True, "data": await get_class_or_404(db, class_id)}


# --- UPDATE CLASS ---
@router.put("/update/{class_id}", response_model=ApiResponse[ClassSessionOut])
async def update_class_route(
    class_id: UUID,
    payload: ClassSessionUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("teacher")),
):
    updated = await update_class(db, class_id, payload)
    return {"success": True, "data": updated, "message": "Class updated successfully"}


# --- DELETE CLASS ---
@router.delete("/delete/{class_id}", response_model=MessageResponse)
async def delete_class_route(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("teacher")),
):
    await delete_class(db, class_id)
    return {"success": True, "message": "Class deleted successfully"}


# --- ENROLL STUDENTS ---
@router.post("/{class_id}/students", response_model=ApiResponse[ClassSessionOut])
async def enroll_students_route(
    class_id: UUID,
    payload: EnrollStudentsRequest,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("teacher")),
):
    school_class = await enroll_students(db, class_id, payload.student_ids)
    return {"success": True, "data": school_class, "message": "Students enrolled successfully"}


# --- REMOVE STUDENT FROM CLASS ---
@router.delete("/{class_id}/students/{student_id}", response_model=ApiResponse[ClassSessionOut])
async def unenroll_student_route(
    class_id: UUID,
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("teacher")),
):
    school_class = await unenroll_student(db, class_id, student_id)
    return {"success": True, "data": school_class, "message": "Student removed from class"}
