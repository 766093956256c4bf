from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from shared.auth import authorization
from shared.db import get_db
from shared.errors import ConflictError, NotFoundError
from shared.responses import ApiResponse
from services.user_management.models.courses import Course, Unit
from services.user_management.schemas.courses import CourseCreate, CourseOut, UnitCreate, UnitOut

router = APIRouter(tags=["Courses & Units"])


# --- CREATE COURSE ---
@router.post("/course/createCourse", response_model=ApiResponse[CourseOut], status_code=status.HTTP_201_CREATED)
async def create_course(
    payload: CourseCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("admin")),
):
    course = Course(code=payload.code, name=payload.name, description=payload.description)
    db.add(course)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Course with this code already exists")
    return {"success": True, "data": course, "message": "Course created successfully"}


# --- GET ALL COURSES ---
@router.get("/course/getAllCourse", response_model=ApiResponse[List[CourseOut]])
async def get_all_courses(
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    result = await db.execute(select(Course).order_by(Course.code))
    return {"success": True, "data": result.scalars().all()}


# --- GET COURSE ---
@router.get("/courses/{course_id}", response_model=ApiResponse[CourseOut])
async def get_course(
    course_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    course = await db.get(Course, course_id)
    if not course:
        raise NotFoundError("Course not found")
    return {"success": True, "data": course}


# --- CREATE UNIT ---
@router.post("/unit/create", response_model=ApiResponse[UnitOut], status_code=status.HTTP_201_CREATED)
async def create_unit(
    payload: UnitCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("teacher")),
):
    if not await db.get(Course, payload.course_id):
        raise NotFoundError("Course not found")

    unit = Unit(**payload.model_dump())
    db.add(unit)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Unit with this code already exists in the course")
    return {"success": True, "data": unit, "message": "Unit created successfully"}


# --- GET ALL UNITS / FILTER BY COURSE ---
@router.get("/unit/getAllUnits", response_model=ApiResponse[List[UnitOut]])
@router.get("/unit/filter", response_model=ApiResponse[List[UnitOut]])
async def get_units(
    course_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    stmt = select(Unit)
    if course_id is not None:
        stmt = stmt.where(Unit.course_id == course_id)
    result = await db.execute(stmt.order_by(Unit.code))
    return {"success": True, "data": result.scalars().all()}
