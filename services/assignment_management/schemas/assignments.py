# services/assignment_management/schemas/assignments.py

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional
from datetime import datetime
from uuid import UUID

from shared.db import as_utc
from services.assignment_management.models.assignments import SubmissionState


class AssignmentCreate(BaseModel):
    unit_id: UUID
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    start_day: datetime
    deadline: datetime
    max_marks: float = Field(..., gt=0)
    class_ids: List[UUID] = Field(..., min_length=1, description="Classes whose rosters receive the assignment")

    @field_validator("start_day", "deadline")
    @classmethod
    def normalize_to_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def deadline_after_start(self):
        if self.deadline < self.start_day:
            raise ValueError("deadline must not be earlier than start_day")
        return self


class AssignmentUpdate(BaseModel):
    unit_id: Optional[UUID] = None
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    start_day: Optional[datetime] = None
    deadline: Optional[datetime] = None
    max_marks: Optional[float] = Field(None, gt=0)

    @field_validator("start_day", "deadline")
    @classmethod
    def normalize_to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else value


class StudentSubmissionOut(BaseModel):
    student_id: UUID
    submission_date: Optional[datetime] = None
    file: Optional[str] = None
    grade: Optional[float] = None
    state: SubmissionState

    class Config:
        from_attributes = True


class SubmissionGroupOut(BaseModel):
    class_id: UUID
    roster_snapshot_at: datetime
    created_lazily: bool
    students: List[StudentSubmissionOut]

    class Config:
        from_attributes = True


class AssignmentOut(BaseModel):
    id: UUID
    unit_id: UUID
    title: str
    description: str
    start_day: datetime
    deadline: datetime
    max_marks: float
    submissions: List[SubmissionGroupOut]
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SubmitAssignmentRequest(BaseModel):
    class_id: UUID
    student_id: Optional[UUID] = Field(None, description="Defaults to the authenticated student")
    submission_date: Optional[datetime] = Field(None, description="Defaults to the time of the request")
    file: str = Field(..., min_length=1, description="Reference/URI of the uploaded artifact")


class GradeEntry(BaseModel):
    student_id: UUID
    grade: float


class GradeManyRequest(BaseModel):
    grades: List[GradeEntry] = Field(..., min_length=1)


class SingleGradeRequest(BaseModel):
    grade: float


class RejectedGrade(BaseModel):
    student_id: UUID
    grade: float
    reason: str


class GradeManyResult(BaseModel):
    applied: List[GradeEntry] = Field(default_factory=list)
    rejected: List[RejectedGrade] = Field(default_factory=list)
    ignored: List[UUID] = Field(default_factory=list, description="Students without a submission in the class")
