# services/class_management/models/classes.py
from sqlalchemy import Column, String, Integer, DateTime, Enum, ForeignKey, UniqueConstraint, Index, Uuid
from sqlalchemy.orm import relationship
from shared.db import Base, utcnow
import enum
import uuid

class Weekday(str, enum.Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

class ClassSession(Base):
    __tablename__ = "class_sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    class_name = Column(String(150), nullable=False)  # E.g., "Java Spring Boot Class"
    year = Column(Integer, nullable=False)
    semester = Column(Integer, nullable=False)
    unit_id = Column(Uuid, ForeignKey("units.id"), nullable=False)
    teacher_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    quantity = Column(Integer, nullable=True)  # planned head count
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_class_session_term", "year", "semester"),
        Index("ix_class_session_teacher_term", "teacher_id", "year", "semester"),
    )

    unit = relationship("Unit", lazy="selectin")
    teacher = relationship("User", lazy="selectin")
    slots = relationship(
        "ClassSlot",
        back_populates="class_session",
        cascade="all, delete-orphan",
        order_by="ClassSlot.position",
        lazy="selectin",
    )
    enrollments = relationship(
        "ClassStudent",
        back_populates="class_session",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    attendance = relationship(
        "AttendanceRecord",
        back_populates="class_session",
        cascade="all, delete-orphan",
        order_by="AttendanceRecord.date",
        lazy="selectin",
    )

    @property
    def student_ids(self):
        return [enrollment.student_id for enrollment in self.enrollments]

    @property
    def slot_pairs(self):
        return [(slot.day, slot.time) for slot in self.slots]


class ClassSlot(Base):
    __tablename__ = "class_slots"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid, ForeignKey("class_sessions.id", ondelete="CASCADE"), nullable=False)
    # term copied from the session so the collision rule can be a table constraint
    year = Column(Integer, nullable=False)
    semester = Column(Integer, nullable=False)
    day = Column(Enum(Weekday), nullable=False)
    time = Column(String(50), nullable=False)  # E.g., "08:00 AM - 10:00 AM"
    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("year", "semester", "day", "time", name="uq_class_slot_per_term"),
        Index("ix_class_slot_class", "class_id"),
    )

    class_session = relationship("ClassSession", back_populates="slots")


class ClassStudent(Base):
    __tablename__ = "class_students"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid, ForeignKey("class_sessions.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    enrolled_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("class_id", "student_id", name="uq_class_student"),
        Index("ix_class_student_student", "student_id"),
    )

    class_session = relationship("ClassSession", back_populates="enrollments")
    student = relationship("User", back_populates="enrollments")
