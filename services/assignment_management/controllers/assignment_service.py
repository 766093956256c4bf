import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from shared.auth import authorization
from shared.db import as_utc, get_db, utcnow
from shared.errors import InvalidInputError, NotFoundError, OutOfRangeError
from shared.responses import ApiResponse, MessageResponse
from services.assignment_management.controllers.grading import (
    get_assignment_or_404,
    grade_many,
    grade_one,
    submit_assignment,
)
from services.assignment_management.models.assignments import (
    Assignment,
    StudentSubmission,
    SubmissionGroup,
)
from services.assignment_management.schemas.assignments import (
    AssignmentCreate,
    AssignmentOut,
    AssignmentUpdate,
    GradeManyRequest,
    GradeManyResult,
    SingleGradeRequest,
    StudentSubmissionOut,
    SubmitAssignmentRequest,
)
from services.class_management.models.classes import ClassSession
from services.user_management.models.courses import Unit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assignments", tags=["Assignments"])


async def create_assignment(db: AsyncSession, payload: AssignmentCreate, created_by: Optional[uuid.UUID] = None) -> Assignment:
    """
    Create an assignment and one submission group per resolvable target class.

    Each group gets a pending entry for every student on the class roster
    right now. Unknown class ids are skipped; at least one must resolve.
    """
    if not await db.get(Unit, payload.unit_id):
        raise NotFoundError("Unit not found")

    class_ids = list(dict.fromkeys(payload.class_ids))
    result = await db.execute(select(ClassSession).where(ClassSession.id.in_(class_ids)))
    classes = {school_class.id: school_class for school_class in result.scalars().all()}
    if not classes:
        raise NotFoundError("No valid classes found")

    skipped = [str(class_id) for class_id in class_ids if class_id not in classes]
    if skipped:
        logger.info("Assignment '%s' skips unknown classes: %s", payload.title, ", ".join(skipped))

    snapshot_at = utcnow()
    assignment = Assignment(
        unit_id=payload.unit_id,
        title=payload.title,
        description=payload.description,
        start_day=payload.start_day,
        deadline=payload.deadline,
        max_marks=payload.max_marks,
        created_by=created_by,
        submissions=[
            SubmissionGroup(
                class_id=class_id,
                roster_snapshot_at=snapshot_at,
                created_lazily=False,
                students=[
                    StudentSubmission(student_id=student_id)
                    for student_id in classes[class_id].student_ids
                ],
            )
            for class_id in class_ids
            if class_id in classes
        ],
    )
    db.add(assignment)
    await db.commit()

    logger.info("Created assignment %s with %d class groups", assignment.id, len(assignment.submissions))
    return assignment


async def update_assignment(db: AsyncSession, assignment_id: uuid.UUID, payload: AssignmentUpdate) -> Assignment:
    """Update the descriptive fields; the submission skeleton stays as it is."""
    assignment = await get_assignment_or_404(db, assignment_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)

    if "unit_id" in changes and not await db.get(Unit, changes["unit_id"]):
        raise NotFoundError("Unit not found")

    start_day = as_utc(changes.get("start_day", assignment.start_day))
    deadline = as_utc(changes.get("deadline", assignment.deadline))
    if deadline < start_day:
        raise InvalidInputError("deadline must not be earlier than start_day")

    if "max_marks" in changes:
        max_marks = changes["max_marks"]
        too_high = [
            submission for group in assignment.submissions for submission in group.students
            if submission.grade is not None and submission.grade > max_marks
        ]
        if too_high:
            raise OutOfRangeError(f"{len(too_high)} stored grades exceed the new maximum of {max_marks:g}")

    for key, value in changes.items():
        setattr(assignment, key, value)

    await db.commit()
    return assignment


async def delete_assignment(db: AsyncSession, assignment_id: uuid.UUID) -> None:
    assignment = await get_assignment_or_404(db, assignment_id)
    await db.delete(assignment)
    await db.commit()
    logger.info("Deleted assignment %s", assignment_id)


async def list_assignments(
    db: AsyncSession,
    class_id: Optional[uuid.UUID] = None,
    unit_id: Optional[uuid.UUID] = None,
) -> List[Assignment]:
    stmt = select(Assignment)
    if class_id is not None:
        stmt = stmt.where(
            Assignment.id.in_(select(SubmissionGroup.assignment_id).where(SubmissionGroup.class_id == class_id))
        )
    if unit_id is not None:
        stmt = stmt.where(Assignment.unit_id == unit_id)
    result = await db.execute(stmt.order_by(Assignment.deadline))
    return list(result.scalars().all())


# --- CREATE ASSIGNMENT (distributes to class rosters) ---
@router.post("", response_model=ApiResponse[AssignmentOut], status_code=status.HTTP_201_CREATED)
async def create_assignment_route(
    payload: AssignmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("teacher")),
):
    assignment = await create_assignment(db, payload, created_by=uuid.UUID(current_user["user_id"]))
    return {"success": True, "data": assignment, "message": "Assignment created successfully with students added"}


# --- GET ALL ASSIGNMENTS ---
@router.get("", response_model=ApiResponse[List[AssignmentOut]])
async def get_all_assignments(
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    return {"success": True, "data": await list_assignments(db), "message": "Assignments retrieved successfully"}


# --- GET ASSIGNMENTS OF A CLASS ---
@router.get("/class/{class_id}", response_model=ApiResponse[List[AssignmentOut]])
async def get_assignments_by_class(
    class_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    assignments = await list_assignments(db, class_id=class_id)
    return {"success": True, "data": assignments, "message": "Assignments retrieved successfully for the class"}


# --- GET ASSIGNMENTS OF A UNIT ---
@router.get("/unit/{unit_id}", response_model=ApiResponse[List[AssignmentOut]])
async def get_assignments_by_unit(
    unit_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    assignments = await list_assignments(db, unit_id=unit_id)
    return {"success": True, "data": assignments, "message": "Assignments retrieved successfully for the unit"}


# --- SUBMIT ASSIGNMENT ---
@router.post("/{assignment_id}/submit", response_model=ApiResponse[StudentSubmissionOut], status_code=status.HTTP_201_CREATED)
async def submit_assignment_route(
    assignment_id: uuid.UUID,
    payload: SubmitAssignmentRequest,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    caller_id = uuid.UUID(current_user["user_id"])
    student_id = payload.student_id or caller_id
    if current_user["role"] == "student" and student_id != caller_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Students can only submit their own work"
        )

    submission = await submit_assignment(
        db,
        assignment_id,
        payload.class_id,
        student_id,
        payload.file,
        submission_date=payload.submission_date,
    )
    return {"success": True, "data": submission, "message": "Assignment submitted successfully"}


# --- GRADE MULTIPLE STUDENTS ---
@router.post("/{assignment_id}/class/{class_id}/grades", response_model=ApiResponse[GradeManyResult])
async def grade_multiple_students(
    assignment_id: uuid.UUID,
    class_id: uuid.UUID,
    payload: GradeManyRequest,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("teacher")),
):
    result = await grade_many(db, assignment_id, class_id, payload.grades)
    return {"success": True, "data": result, "message": "Grades updated successfully"}


# --- GRADE ONE STUDENT ---
@router.put("/{assignment_id}/class/{class_id}/students/{student_id}/grade", response_model=ApiResponse[StudentSubmissionOut])
async def grade_single_student(
    assignment_id: uuid.UUID,
    class_id: uuid.UUID,
    student_id: uuid.UUID,
    payload: SingleGradeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("teacher")),
):
    submission = await grade_one(db, assignment_id, class_id, student_id, payload.grade)
    return {"success": True, "data": submission, "message": "Grade updated successfully"}


# --- UPDATE ASSIGNMENT ---
@router.put("/{assignment_id}", response_model=ApiResponse[AssignmentOut])
async def update_assignment_route(
    assignment_id: uuid.UUID,
    payload: AssignmentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("teacher")),
):
    assignment = await update_assignment(db, assignment_id, payload)
    return {"success": True, "data": assignment, "message": "Assignment updated successfully"}


# --- DELETE ASSIGNMENT ---
@router.delete("/{assignment_id}", response_model=MessageResponse)
async def delete_assignment_route(
    assignment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("teacher")),
):
    await delete_assignment(db, assignment_id)
    return {"success": True, "message": "Assignment deleted successfully"}


# --- GET ASSIGNMENT ---
@router.get("/{assignment_id}", response_model=ApiResponse[AssignmentOut])
async def get_assignment(
    assignment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    return {"success": True, "data": await get_assignment_or_404(db, assignment_id)}
