import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import itertools
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from main import app
from shared.auth import create_access_token
from shared.db import Base, get_db
from services.class_management.controllers.class_service import create_class, enroll_students
from services.class_management.models.classes import Weekday
from services.class_management.schemas.classes import ClassSessionCreate, SlotIn
from services.user_management.models.courses import Course, Unit
from services.user_management.models.users import User, UserRole

_sequence = itertools.count(1)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": user.email, "role": user.role.value, "user_id": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


def in_days(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


@pytest.fixture
def make_user(session_factory):
    async def _make_user(role: UserRole = UserRole.STUDENT, full_name: str = None) -> User:
        number = next(_sequence)
        user = User(
            username=f"{role.value}{number}",
            email=f"{role.value}{number}@school.edu",
            full_name=full_name or f"{role.value.title()} {number}",
            hashed_password="not-used",
            role=role,
        )
        async with session_factory() as session:
            session.add(user)
            await session.commit()
        return user

    return _make_user


@pytest_asyncio.fixture
async def teacher(make_user):
    return await make_user(UserRole.TEACHER)


@pytest_asyncio.fixture
async def admin(make_user):
    return await make_user(UserRole.ADMIN)


@pytest_asyncio.fixture
async def students(make_user):
    return [await make_user(UserRole.STUDENT) for _ in range(3)]


@pytest.fixture
def make_unit(session_factory):
    async def _make_unit(name: str = "Java Spring Boot", course: Course = None) -> Unit:
        number = next(_sequence)
        async with session_factory() as session:
            if course is None:
                course = Course(code=f"C{number}", name=f"Course {number}")
                session.add(course)
                await session.flush()
            unit = Unit(course_id=course.id, code=f"U{number}", name=name)
            session.add(unit)
            await session.commit()
        return unit

    return _make_unit


@pytest_asyncio.fixture
async def unit(make_unit):
    return await make_unit()


@pytest.fixture
def make_class(session_factory, unit):
    async def _make_class(teacher, slots, year=2025, semester=1, roster=(), class_unit=None, name=None):
        payload = ClassSessionCreate(
            class_name=name or f"Class {next(_sequence)}",
            year=year,
            semester=semester,
            unit_id=(class_unit or unit).id,
            teacher_id=teacher.id,
            schedule=[SlotIn(day=day, time=time) for day, time in slots],
        )
        async with session_factory() as session:
            school_class = await create_class(session, payload)
            if roster:
                school_class = await enroll_students(session, school_class.id, [s.id for s in roster])
        return school_class

    return _make_class


MONDAY_8 = (Weekday.MONDAY, "08:00 AM - 10:00 AM")
MONDAY_10 = (Weekday.MONDAY, "10:00 AM - 12:00 PM")
TUESDAY_8 = (Weekday.TUESDAY, "08:00 AM - 10:00 AM")
TUESDAY_10 = (Weekday.TUESDAY, "10:00 AM - 12:00 PM")
FRIDAY_14 = (Weekday.FRIDAY, "02:00 PM - 04:00 PM")
