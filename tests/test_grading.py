import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from services.assignment_management.controllers.assignment_service import create_assignment
from services.assignment_management.controllers.grading import (
    get_assignment_or_404,
    grade_in_range,
    grade_many,
    grade_one,
    submit_assignment,
)
from services.assignment_management.models.assignments import SubmissionState
from services.assignment_management.schemas.assignments import AssignmentCreate, GradeEntry
from shared.errors import ConflictError, DeadlineExceededError, NotFoundError, OutOfRangeError
from tests.conftest import FRIDAY_14, MONDAY_8, auth_headers

MAX_MARKS = 20


@pytest_asyncio.fixture
async def java_class(make_class, teacher, students):
    return await make_class(teacher, [MONDAY_8], roster=students[:2])


@pytest_asyncio.fixture
async def assignment(session_factory, unit, java_class):
    now = datetime.now(timezone.utc)
    payload = AssignmentCreate(
        unit_id=unit.id,
        title="REST controllers",
        description="Expose the repository over HTTP",
        start_day=now - timedelta(days=2),
        deadline=now + timedelta(days=5),
        max_marks=MAX_MARKS,
        class_ids=[java_class.id],
    )
    async with session_factory() as session:
        return await create_assignment(session, payload)


async def stored_entry(session_factory, assignment_id, class_id, student_id):
    async with session_factory() as session:
        stored = await get_assignment_or_404(session, assignment_id)
        group = next(g for g in stored.submissions if g.class_id == class_id)
        return group.find_student(student_id)


def test_grade_bounds_are_inclusive():
    assert grade_in_range(0, MAX_MARKS)
    assert grade_in_range(MAX_MARKS, MAX_MARKS)
    assert not grade_in_range(MAX_MARKS + 1, MAX_MARKS)
    assert not grade_in_range(-1, MAX_MARKS)


async def test_submit_moves_pending_to_submitted(db, session_factory, assignment, java_class, students):
    declared = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    entry = await submit_assignment(
        db, assignment.id, java_class.id, students[0].id, "s3://bucket/rest.zip", submission_date=declared,
    )

    assert entry.state == SubmissionState.SUBMITTED
    stored = await stored_entry(session_factory, assignment.id, java_class.id, students[0].id)
    assert stored.file == "s3://bucket/rest.zip"
    assert stored.submission_date.replace(tzinfo=timezone.utc) == declared


async def test_submission_after_deadline_changes_nothing(db, session_factory, assignment, java_class, students):
    too_late = datetime.now(timezone.utc) + timedelta(days=6)

    with pytest.raises(DeadlineExceededError):
        await submit_assignment(db, assignment.id, java_class.id, students[0].id, "late.zip", now=too_late)

    stored = await stored_entry(session_factory, assignment.id, java_class.id, students[0].id)
    assert stored.state == SubmissionState.PENDING
    assert stored.file is None


async def test_second_submission_keeps_the_first(db, session_factory, assignment, java_class, students):
    await submit_assignment(db, assignment.id, java_class.id, students[0].id, "first.zip")

    with pytest.raises(ConflictError):
        await submit_assignment(db, assignment.id, java_class.id, students[0].id, "second.zip")

    stored = await stored_entry(session_factory, assignment.id, java_class.id, students[0].id)
    assert stored.file == "first.zip"


async def test_submission_from_untargeted_class_creates_group(
    db, session_factory, assignment, make_class, teacher, make_user,
):
    newcomer = await make_user()
    other_class = await make_class(teacher, [FRIDAY_14], roster=[newcomer])

    await submit_assignment(db, assignment.id, other_class.id, newcomer.id, "newcomer.zip")

    async with session_factory() as session:
        stored = await get_assignment_or_404(session, assignment.id)
        group = next(g for g in stored.submissions if g.class_id == other_class.id)
        assert group.created_lazily is True
        assert [(s.student_id, s.state) for s in group.students] == [(newcomer.id, SubmissionState.SUBMITTED)]


async def test_submission_to_missing_class(db, assignment, students):
    with pytest.raises(NotFoundError):
        await submit_assignment(db, assignment.id, uuid.uuid4(), students[0].id, "x.zip")


async def test_grade_many_applies_valid_and_skips_out_of_range(db, session_factory, assignment, java_class, students):
    outsider = uuid.uuid4()

    result = await grade_many(db, assignment.id, java_class.id, [
        GradeEntry(student_id=students[0].id, grade=MAX_MARKS),
        GradeEntry(student_id=students[1].id, grade=MAX_MARKS + 1),
        GradeEntry(student_id=outsider, grade=10),
    ])

    assert [entry.student_id for entry in result.applied] == [students[0].id]
    assert [entry.student_id for entry in result.rejected] == [students[1].id]
    assert result.ignored == [outsider]

    first = await stored_entry(session_factory, assignment.id, java_class.id, students[0].id)
    second = await stored_entry(session_factory, assignment.id, java_class.id, students[1].id)
    assert first.grade == MAX_MARKS
    assert first.state == SubmissionState.GRADED
    assert second.grade is None


async def test_regrading_overwrites(db, session_factory, assignment, java_class, students):
    await grade_one(db, assignment.id, java_class.id, students[0].id, 12)
    await grade_one(db, assignment.id, java_class.id, students[0].id, 15)

    stored = await stored_entry(session_factory, assignment.id, java_class.id, students[0].id)
    assert stored.grade == 15


async def test_successive_grade_many_calls_keep_the_latest(db, session_factory, assignment, java_class, students):
    await submit_assignment(db, assignment.id, java_class.id, students[0].id, "s3://bucket/rest.zip")
    await grade_many(db, assignment.id, java_class.id, [GradeEntry(student_id=students[0].id, grade=10)])
    await grade_many(db, assignment.id, java_class.id, [GradeEntry(student_id=students[0].id, grade=17)])

    stored = await stored_entry(session_factory, assignment.id, java_class.id, students[0].id)
    assert stored.grade == 17
    assert stored.state == SubmissionState.GRADED


async def test_pending_entry_can_be_graded_directly(db, session_factory, assignment, java_class, students):
    result = await grade_many(db, assignment.id, java_class.id, [GradeEntry(student_id=students[1].id, grade=5)])

    assert [entry.student_id for entry in result.applied] == [students[1].id]
    stored = await stored_entry(session_factory, assignment.id, java_class.id, students[1].id)
    assert stored.submission_date is None
    assert stored.state == SubmissionState.GRADED


async def test_grade_one_rejects_out_of_range(db, assignment, java_class, students):
    with pytest.raises(OutOfRangeError):
        await grade_one(db, assignment.id, java_class.id, students[0].id, -0.5)


async def test_grading_needs_known_group_and_student(db, assignment, java_class, students):
    with pytest.raises(NotFoundError, match="Class submission not found"):
        await grade_many(db, assignment.id, uuid.uuid4(), [GradeEntry(student_id=students[0].id, grade=1)])

    with pytest.raises(NotFoundError):
        await grade_one(db, assignment.id, java_class.id, students[2].id, 1)


async def test_submit_and_grade_routes(client, assignment, java_class, teacher, students):
    response = await client.post(
        f"/assignments/{assignment.id}/submit",
        json={"class_id": str(java_class.id), "file": "s3://bucket/rest.zip"},
        headers=auth_headers(students[0]),
    )
    assert response.status_code == 201
    assert response.json()["data"]["state"] == "submitted"

    response = await client.post(
        f"/assignments/{assignment.id}/submit",
        json={"class_id": str(java_class.id), "file": "s3://bucket/again.zip"},
        headers=auth_headers(students[0]),
    )
    assert response.status_code == 400

    response = await client.post(
        f"/assignments/{assignment.id}/class/{java_class.id}/grades",
        json={"grades": [
            {"student_id": str(students[0].id), "grade": 18},
            {"student_id": str(students[1].id), "grade": 99},
        ]},
        headers=auth_headers(teacher),
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert [g["student_id"] for g in data["applied"]] == [str(students[0].id)]
    assert data["rejected"][0]["reason"] == "Invalid grade. Must be between 0 and 20."

    response = await client.put(
        f"/assignments/{assignment.id}/class/{java_class.id}/students/{students[1].id}/grade",
        json={"grade": 21},
        headers=auth_headers(teacher),
    )
    assert response.status_code == 400


async def test_student_cannot_submit_for_someone_else(client, assignment, java_class, students):
    response = await client.post(
        f"/assignments/{assignment.id}/submit",
        json={"class_id": str(java_class.id), "student_id": str(students[1].id), "file": "x.zip"},
        headers=auth_headers(students[0]),
    )

    assert response.status_code == 403


async def test_students_cannot_grade(client, assignment, java_class, students):
    response = await client.post(
        f"/assignments/{assignment.id}/class/{java_class.id}/grades",
        json={"grades": [{"student_id": str(students[0].id), "grade": 20}]},
        headers=auth_headers(students[0]),
    )

    assert response.status_code == 403
