# services/user_management/models/users.py
from sqlalchemy import Column, String, Enum, DateTime, Boolean, Integer, Index, Uuid
from sqlalchemy.orm import relationship
from shared.db import Base, utcnow
import enum
import uuid

class UserRole(str, enum.Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"

# Prefix of the generated human-readable user code, e.g. ST001
USER_CODE_PREFIXES = {
    UserRole.STUDENT: "ST",
    UserRole.TEACHER: "TC",
    UserRole.ADMIN: "AD",
}

class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_code = Column(String(20), unique=True, nullable=True)
    username = Column(String(50), unique=True, nullable=False)
    email = Column(String(100), unique=True, nullable=False)
    full_name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True)
    hashed_password = Column(String, nullable=False)
    role = Column(Enum(UserRole), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    enrollments = relationship("ClassStudent", back_populates="student", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_user_role", "role"),
    )


class UserCodeCounter(Base):
    """Last issued sequence number per role; bumped with a single UPDATE."""

    __tablename__ = "user_code_counters"

    role = Column(Enum(UserRole), primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
