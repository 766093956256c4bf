# services/class_management/models/attendance.py
from sqlalchemy import Column, ForeignKey, Date, Enum, Text, DateTime, UniqueConstraint, Index, Uuid
from sqlalchemy.orm import relationship
from shared.db import Base, utcnow
import enum
import uuid

class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"

class AttendanceRecord(Base):
    __tablename__ = "attendance_records"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid, ForeignKey("class_sessions.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    topic = Column(Text, nullable=True)
    recorded_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("class_id", "date", name="uq_attendance_per_class_per_day"),
        Index("idx_attendance_class_date", "class_id", "date"),
    )

    class_session = relationship("ClassSession", back_populates="attendance")
    students = relationship(
        "AttendanceEntry",
        back_populates="record",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class AttendanceEntry(Base):
    __tablename__ = "attendance_entries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    record_id = Column(Uuid, ForeignKey("attendance_records.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    status = Column(Enum(AttendanceStatus), nullable=False)

    __table_args__ = (
        UniqueConstraint("record_id", "student_id", name="uq_attendance_entry_per_student"),
        Index("idx_attendance_entry_student", "student_id"),
    )

    record = relationship("AttendanceRecord", back_populates="students")
