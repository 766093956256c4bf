# services/class_management/schemas/classes.py

from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime
from uuid import UUID

from services.class_management.models.classes import Weekday


class SlotIn(BaseModel):
    day: Weekday
    time: str = Field(..., min_length=1, description='E.g., "08:00 AM - 10:00 AM"')

    @field_validator("time")
    @classmethod
    def strip_time(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("time must not be blank")
        return value


def _unique_slots(slots: List[SlotIn]) -> List[SlotIn]:
    seen = set()
    unique = []
    for slot in slots:
        key = (slot.day, slot.time)
        if key not in seen:
            seen.add(key)
            unique.append(slot)
    return unique


class ClassSessionCreate(BaseModel):
    class_name: str = Field(..., min_length=1)
    year: int = Field(..., ge=1900, le=3000)
    semester: int = Field(..., ge=1)
    unit_id: UUID
    teacher_id: UUID
    quantity: Optional[int] = Field(None, ge=0)
    schedule: List[SlotIn] = Field(..., min_length=1)

    @field_validator("schedule")
    @classmethod
    def drop_repeated_slots(cls, value: List[SlotIn]) -> List[SlotIn]:
        return _unique_slots(value)


class ClassSessionUpdate(BaseModel):
    class_name: Optional[str] = Field(None, min_length=1)
    year: Optional[int] = Field(None, ge=1900, le=3000)
    semester: Optional[int] = Field(None, ge=1)
    unit_id: Optional[UUID] = None
    teacher_id: Optional[UUID] = None
    quantity: Optional[int] = Field(None, ge=0)
    schedule: Optional[List[SlotIn]] = Field(None, min_length=1)

    @field_validator("schedule")
    @classmethod
    def drop_repeated_slots(cls, value: Optional[List[SlotIn]]) -> Optional[List[SlotIn]]:
        return _unique_slots(value) if value is not None else value


class SlotOut(BaseModel):
    day: Weekday
    time: str

    class Config:
        from_attributes = True


class ClassSessionOut(BaseModel):
    id: UUID
    class_name: str
    year: int
    semester: int
    unit_id: UUID
    teacher_id: UUID
    quantity: Optional[int] = None
    schedule: List[SlotOut] = Field(validation_alias="slots")
    student_ids: List[UUID]
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        populate_by_name = True


class EnrollStudentsRequest(BaseModel):
    student_ids: List[UUID] = Field(..., min_length=1)


class ClassFilter(BaseModel):
    year: Optional[int] = None
    semester: Optional[int] = None
    unit_id: Optional[UUID] = None
    course_id: Optional[UUID] = None
    search: Optional[str] = None
