from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from uuid import UUID

from services.class_management.schemas.classes import SlotOut

class CourseCreate(BaseModel):
    code: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None

class CourseOut(BaseModel):
    id: UUID
    code: str
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class UnitCreate(BaseModel):
    course_id: UUID
    code: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    credits: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None

class UnitOut(BaseModel):
    id: UUID
    course_id: UUID
    code: str
    name: str
    credits: Optional[int] = None
    description: Optional[str] = None

    class Config:
        from_attributes = True

class StudentClassOut(BaseModel):
    """Class as seen from a student's timetable."""
    id: UUID
    class_name: str
    year: int
    semester: int
    unit: UnitOut
    teacher_id: UUID
    teacher_name: str
    schedule: List[SlotOut]
