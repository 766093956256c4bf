# services/assignment_management/models/assignments.py
from sqlalchemy import Column, String, Text, Float, Boolean, DateTime, ForeignKey, UniqueConstraint, Index, Uuid
from sqlalchemy.orm import relationship
from shared.db import Base, utcnow
import enum
import uuid

class SubmissionState(str, enum.Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    GRADED = "graded"

class Assignment(Base):
    __tablename__ = "assignments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    unit_id = Column(Uuid, ForeignKey("units.id"), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    start_day = Column(DateTime(timezone=True), nullable=False)
    deadline = Column(DateTime(timezone=True), nullable=False)
    max_marks = Column(Float, nullable=False)
    created_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_assignment_unit", "unit_id"),
    )

    unit = relationship("Unit", lazy="selectin")
    submissions = relationship(
        "SubmissionGroup",
        back_populates="assignment",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class SubmissionGroup(Base):
    """Per-class bucket of submissions.

    The student list is a snapshot of the class roster taken at
    `roster_snapshot_at`; later enrollments are not added to it. Groups made
    on a first submission from a class that was not targeted at creation
    carry `created_lazily=True` and hold only the students who submitted.
    """

    __tablename__ = "submission_groups"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    assignment_id = Column(Uuid, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False)
    # plain reference: deleting a class keeps the assignment's history
    class_id = Column(Uuid, nullable=False)
    roster_snapshot_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    created_lazily = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint("assignment_id", "class_id", name="uq_submission_group_per_class"),
        Index("ix_submission_group_class", "class_id"),
    )

    assignment = relationship("Assignment", back_populates="submissions")
    students = relationship(
        "StudentSubmission",
        back_populates="group",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def find_student(self, student_id):
        for submission in self.students:
            if submission.student_id == student_id:
                return submission
        return None


class StudentSubmission(Base):
    __tablename__ = "student_submissions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid, ForeignKey("submission_groups.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    submission_date = Column(DateTime(timezone=True), nullable=True)
    file = Column(String(500), nullable=True)  # URI of the stored artifact
    grade = Column(Float, nullable=True)
    graded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("group_id", "student_id", name="uq_student_submission_per_group"),
        Index("ix_student_submission_student", "student_id"),
    )

    group = relationship("SubmissionGroup", back_populates="students")

    @property
    def state(self) -> SubmissionState:
        if self.grade is not None:
            return SubmissionState.GRADED
        if self.submission_date is not None:
            return SubmissionState.SUBMITTED
        return SubmissionState.PENDING
