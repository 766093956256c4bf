"""
Submission lifecycle of a single student within one assignment.

    pending --submit--> submitted --grade--> graded (regrading allowed)

There is no way back to pending and a submitted entry is never overwritten.
"""
import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from shared.db import as_utc, utcnow
from shared.errors import ConflictError, DeadlineExceededError, NotFoundError, OutOfRangeError
from services.assignment_management.models.assignments import Assignment, StudentSubmission, SubmissionGroup
from services.assignment_management.schemas.assignments import GradeEntry, GradeManyResult, RejectedGrade
from services.class_management.models.classes import ClassSession

logger = logging.getLogger(__name__)


async def get_assignment_or_404(db: AsyncSession, assignment_id: uuid.UUID) -> Assignment:
    assignment = await db.get(Assignment, assignment_id)
    if not assignment:
        raise NotFoundError("Assignment not found")
    return assignment


def find_group(assignment: Assignment, class_id: uuid.UUID) -> Optional[SubmissionGroup]:
    return next((group for group in assignment.submissions if group.class_id == class_id), None)


def grade_in_range(grade: float, max_marks: float) -> bool:
    return 0 <= grade <= max_marks


async def ensure_submission_group(db: AsyncSession, assignment: Assignment, class_id: uuid.UUID) -> SubmissionGroup:
    """Return the class's group, creating an empty lazily-made one if the class was not targeted."""
    group = find_group(assignment, class_id)
    if group is not None:
        return group

    if not await db.get(ClassSession, class_id):
        raise NotFoundError("Class not found")

    group = SubmissionGroup(class_id=class_id, created_lazily=True, roster_snapshot_at=utcnow(), students=[])
    assignment.submissions.append(group)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Submission group for this class was created concurrently, please retry")
    logger.info("Created submission group for class %s on assignment %s lazily", class_id, assignment.id)
    return group


async def submit_assignment(
    db: AsyncSession,
    assignment_id: uuid.UUID,
    class_id: uuid.UUID,
    student_id: uuid.UUID,
    file: str,
    submission_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> StudentSubmission:
    assignment = await get_assignment_or_404(db, assignment_id)

    # wall clock decides, not the declared submission date
    now = as_utc(now) if now else utcnow()
    if now > as_utc(assignment.deadline):
        raise DeadlineExceededError("Deadline has passed. Submission is not allowed.")

    group = await ensure_submission_group(db, assignment, class_id)
    submitted_at = as_utc(submission_date) if submission_date else now

    entry = group.find_student(student_id)
    if entry is not None and entry.submission_date is not None:
        raise ConflictError("Student has already submitted this assignment")

    if entry is not None:
        # compare-and-swap on the pending state
        result = await db.execute(
            update(StudentSubmission)
            .where(StudentSubmission.id == entry.id, StudentSubmission.submission_date.is_(None))
            .values(submission_date=submitted_at, file=file)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise ConflictError("Student has already submitted this assignment")
        set_committed_value(entry, "submission_date", submitted_at)
        set_committed_value(entry, "file", file)
    else:
        entry = StudentSubmission(student_id=student_id, submission_date=submitted_at, file=file, grade=None)
        group.students.append(entry)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Student has already submitted this assignment")

    logger.info("Student %s submitted assignment %s for class %s", student_id, assignment_id, class_id)
    return entry


async def grade_many(
    db: AsyncSession,
    assignment_id: uuid.UUID,
    class_id: uuid.UUID,
    grades: List[GradeEntry],
) -> GradeManyResult:
    """
    Apply each grade independently.

    Out-of-range entries are rejected, entries for students without a
    submission record in the class are ignored, the rest are written. A
    later entry for the same student overrides an earlier one.
    """
    assignment = await get_assignment_or_404(db, assignment_id)
    group = find_group(assignment, class_id)
    if group is None:
        raise NotFoundError("Class submission not found")

    result = GradeManyResult()
    graded_at = utcnow()
    for entry in grades:
        if not grade_in_range(entry.grade, assignment.max_marks):
            result.rejected.append(RejectedGrade(
                student_id=entry.student_id,
                grade=entry.grade,
                reason=f"Invalid grade. Must be between 0 and {assignment.max_marks:g}.",
            ))
            logger.info("Skipped out-of-range grade %s for student %s on assignment %s", entry.grade, entry.student_id, assignment_id)
            continue

        submission = group.find_student(entry.student_id)
        if submission is None:
            result.ignored.append(entry.student_id)
            continue

        submission.grade = entry.grade
        submission.graded_at = graded_at
        result.applied.append(entry)

    await db.commit()
    logger.info(
        "Grades for assignment %s class %s: %d applied, %d rejected, %d ignored",
        assignment_id, class_id, len(result.applied), len(result.rejected), len(result.ignored),
    )
    return result


async def grade_one(
    db: AsyncSession,
    assignment_id: uuid.UUID,
    class_id: uuid.UUID,
    student_id: uuid.UUID,
    grade: float,
) -> StudentSubmission:
    assignment = await get_assignment_or_404(db, assignment_id)
    group = find_group(assignment, class_id)
    if group is None:
        raise NotFoundError("Class submission not found")

    submission = group.find_student(student_id)
    if submission is None:
        raise NotFoundError("Student has no submission record in this class")

    if not grade_in_range(grade, assignment.max_marks):
        raise OutOfRangeError(f"Invalid grade for student {student_id}. Must be between 0 and {assignment.max_marks:g}.")

    submission.grade = grade
    submission.graded_at = utcnow()
    await db.commit()
    return submission
