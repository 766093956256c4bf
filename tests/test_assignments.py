import uuid
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from services.assignment_management.controllers.assignment_service import (
    create_assignment,
    delete_assignment,
    list_assignments,
    update_assignment,
)
from services.assignment_management.controllers.grading import get_assignment_or_404, grade_one, submit_assignment
from services.assignment_management.models.assignments import SubmissionState
from services.assignment_management.schemas.assignments import AssignmentCreate, AssignmentUpdate
from services.class_management.controllers.class_service import enroll_students
from shared.errors import InvalidInputError, NotFoundError, OutOfRangeError
from tests.conftest import FRIDAY_14, MONDAY_8, auth_headers, in_days


def assignment_payload(unit, class_ids, **overrides):
    now = datetime.now(timezone.utc)
    fields = dict(
        unit_id=unit.id,
        title="Spring Data JPA",
        description="Build a repository layer",
        start_day=now - timedelta(days=1),
        deadline=now + timedelta(days=7),
        max_marks=100,
        class_ids=class_ids,
    )
    fields.update(overrides)
    return AssignmentCreate(**fields)


async def test_assignment_gets_pending_entry_per_roster_student(db, unit, teacher, students, make_class):
    school_class = await make_class(teacher, [MONDAY_8], roster=students[:2])

    assignment = await create_assignment(db, assignment_payload(unit, [school_class.id]), created_by=teacher.id)

    assert len(assignment.submissions) == 1
    group = assignment.submissions[0]
    assert group.class_id == school_class.id
    assert group.created_lazily is False
    assert sorted(s.student_id for s in group.students) == sorted([students[0].id, students[1].id])
    assert all(s.state == SubmissionState.PENDING for s in group.students)
    assert all(s.grade is None and s.file is None for s in group.students)


async def test_unknown_classes_are_skipped(db, unit, teacher, students, make_class):
    school_class = await make_class(teacher, [MONDAY_8], roster=students[:1])

    assignment = await create_assignment(db, assignment_payload(unit, [uuid.uuid4(), school_class.id]))

    assert [group.class_id for group in assignment.submissions] == [school_class.id]


async def test_no_resolvable_class(db, unit):
    with pytest.raises(NotFoundError, match="No valid classes found"):
        await create_assignment(db, assignment_payload(unit, [uuid.uuid4()]))


async def test_unknown_unit(db, unit, teacher, make_class):
    school_class = await make_class(teacher, [MONDAY_8])

    with pytest.raises(NotFoundError, match="Unit not found"):
        await create_assignment(db, assignment_payload(unit, [school_class.id], unit_id=uuid.uuid4()))


def test_deadline_before_start_is_invalid(unit):
    now = datetime.now(timezone.utc)
    with pytest.raises(ValidationError):
        assignment_payload(unit, [uuid.uuid4()], start_day=now, deadline=now - timedelta(hours=1))


async def test_roster_snapshot_is_not_retroactive(db, session_factory, unit, teacher, students, make_class):
    school_class = await make_class(teacher, [MONDAY_8], roster=students[:1])
    assignment = await create_assignment(db, assignment_payload(unit, [school_class.id]))

    async with session_factory() as session:
        await enroll_students(session, school_class.id, [students[1].id])

    async with session_factory() as session:
        stored = await get_assignment_or_404(session, assignment.id)
        assert [s.student_id for s in stored.submissions[0].students] == [students[0].id]


async def test_update_keeps_deadline_after_start(db, unit, teacher, make_class):
    school_class = await make_class(teacher, [MONDAY_8])
    assignment = await create_assignment(db, assignment_payload(unit, [school_class.id]))

    with pytest.raises(InvalidInputError):
        await update_assignment(db, assignment.id, AssignmentUpdate(deadline=datetime(2000, 1, 1, tzinfo=timezone.utc)))

    updated = await update_assignment(db, assignment.id, AssignmentUpdate(title="Spring Security", max_marks=50))
    assert updated.title == "Spring Security"
    assert updated.max_marks == 50


async def test_max_marks_cannot_drop_below_stored_grade(db, unit, teacher, students, make_class):
    school_class = await make_class(teacher, [MONDAY_8], roster=students[:1])
    assignment = await create_assignment(db, assignment_payload(unit, [school_class.id]))
    await submit_assignment(db, assignment.id, school_class.id, students[0].id, "s3://bucket/a.zip")
    await grade_one(db, assignment.id, school_class.id, students[0].id, 80)

    with pytest.raises(OutOfRangeError):
        await update_assignment(db, assignment.id, AssignmentUpdate(max_marks=70))


async def test_list_and_delete(db, make_unit, unit, teacher, make_class):
    first_class = await make_class(teacher, [MONDAY_8])
    second_class = await make_class(teacher, [FRIDAY_14])
    other_unit = await make_unit(name="Python Basics")
    first = await create_assignment(db, assignment_payload(unit, [first_class.id]))
    second = await create_assignment(db, assignment_payload(other_unit, [second_class.id]))

    assert [a.id for a in await list_assignments(db, class_id=second_class.id)] == [second.id]
    assert [a.id for a in await list_assignments(db, unit_id=unit.id)] == [first.id]

    await delete_assignment(db, first.id)
    with pytest.raises(NotFoundError):
        await get_assignment_or_404(db, first.id)


async def test_create_assignment_route(client, unit, teacher, students, make_class):
    school_class = await make_class(teacher, [MONDAY_8], roster=students[:2])

    response = await client.post("/assignments", json={
        "unit_id": str(unit.id),
        "title": "Spring Data JPA",
        "description": "Build a repository layer",
        "start_day": in_days(-1),
        "deadline": in_days(7),
        "max_marks": 100,
        "class_ids": [str(school_class.id)],
    }, headers=auth_headers(teacher))

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["submissions"][0]["class_id"] == str(school_class.id)
    assert [s["state"] for s in data["submissions"][0]["students"]] == ["pending", "pending"]

    response = await client.get(f"/assignments/class/{school_class.id}", headers=auth_headers(students[0]))
    assert [a["id"] for a in response.json()["data"]] == [data["id"]]


async def test_create_assignment_route_rejects_inverted_window(client, unit, teacher, make_class):
    school_class = await make_class(teacher, [MONDAY_8])

    response = await client.post("/assignments", json={
        "unit_id": str(unit.id),
        "title": "Spring Data JPA",
        "description": "Build a repository layer",
        "start_day": in_days(7),
        "deadline": in_days(1),
        "max_marks": 100,
        "class_ids": [str(school_class.id)],
    }, headers=auth_headers(teacher))

    assert response.status_code == 400
    assert response.json()["success"] is False
