# services/class_management/controllers/scheduling.py
"""
Schedule conflict detection for class sessions.

A candidate session collides with an existing session of the same
(year, semester) when both meet in an identical (day, time) slot. A teacher
clash is reported when the existing session belongs to the same teacher;
which sessions are considered for that check depends on
TEACHER_CONFLICT_SCOPE:

* ``prefilter`` - only sessions having a slot whose day is one of the
  candidate's days and whose time is one of the candidate's times.
* ``term`` - every session of the teacher in that (year, semester).
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from shared.config import TEACHER_CONFLICT_SCOPE
from services.class_management.models.classes import ClassSession, ClassSlot, Weekday

logger = logging.getLogger(__name__)

SCOPE_PREFILTER = "prefilter"
SCOPE_TERM = "term"

Slot = Tuple[Weekday, str]


@dataclass
class ScheduleCandidate:
    year: int
    semester: int
    teacher_id: UUID
    slots: List[Slot]
    exclude_class_id: Optional[UUID] = None


@dataclass
class ConflictResult:
    kind: str  # "schedule" or "teacher"
    class_id: UUID
    class_name: str
    slots: List[Slot] = field(default_factory=list)
    message: str = ""


def describe_slots(slots: Iterable[Slot]) -> str:
    return ", ".join(f"{Weekday(day).value} - {time}" for day, time in slots)


def matches_prefilter(candidate_slots: Sequence[Slot], session_slots: Sequence[Slot]) -> bool:
    """Coarse check: any existing slot with a candidate day and a candidate time."""
    days = {day for day, _ in candidate_slots}
    times = {time for _, time in candidate_slots}
    return any(day in days and time in times for day, time in session_slots)


def detect_conflict(candidate: ScheduleCandidate, sessions: Iterable, scope: str = SCOPE_PREFILTER) -> Optional[ConflictResult]:
    """Return the first conflict between `candidate` and `sessions`, or None.

    `sessions` are objects exposing id, class_name, year, semester,
    teacher_id and slot_pairs. Slot collisions are checked across all
    sessions before any teacher clash is reported.
    """
    sessions = [
        session for session in sessions
        if session.year == candidate.year
        and session.semester == candidate.semester
        and session.id != candidate.exclude_class_id
    ]
    candidate_tokens = set(candidate.slots)

    for session in sessions:
        shared = [slot for slot in session.slot_pairs if slot in candidate_tokens]
        if shared:
            return ConflictResult(
                kind="schedule",
                class_id=session.id,
                class_name=session.class_name,
                slots=shared,
                message=f"Class {session.class_name} already has a schedule {describe_slots(shared)}",
            )

    for session in sessions:
        if session.teacher_id != candidate.teacher_id:
            continue
        if scope == SCOPE_TERM or matches_prefilter(candidate.slots, session.slot_pairs):
            return ConflictResult(
                kind="teacher",
                class_id=session.id,
                class_name=session.class_name,
                slots=list(session.slot_pairs),
                message=(
                    f"Teacher {candidate.teacher_id} already has a class {session.class_name} "
                    f"to {describe_slots(session.slot_pairs)}"
                ),
            )

    return None


async def _load_relevant_sessions(db: AsyncSession, candidate: ScheduleCandidate, scope: str) -> List[ClassSession]:
    days = sorted({day for day, _ in candidate.slots}, key=lambda day: day.value)
    times = sorted({time for _, time in candidate.slots})

    overlapping_class_ids = (
        select(ClassSlot.class_id)
        .where(
            ClassSlot.year == candidate.year,
            ClassSlot.semester == candidate.semester,
            ClassSlot.day.in_(days),
            ClassSlot.time.in_(times),
        )
    )
    relevance = [ClassSession.id.in_(overlapping_class_ids)]
    if scope == SCOPE_TERM:
        relevance.append(ClassSession.teacher_id == candidate.teacher_id)

    conditions = [
        ClassSession.year == candidate.year,
        ClassSession.semester == candidate.semester,
        or_(*relevance),
    ]
    if candidate.exclude_class_id is not None:
        conditions.append(ClassSession.id != candidate.exclude_class_id)

    result = await db.execute(
        select(ClassSession).where(and_(*conditions)).order_by(ClassSession.created_at)
    )
    return list(result.scalars().all())


async def check_conflict(db: AsyncSession, candidate: ScheduleCandidate, scope: Optional[str] = None) -> Optional[ConflictResult]:
    scope = scope or TEACHER_CONFLICT_SCOPE
    if scope not in (SCOPE_PREFILTER, SCOPE_TERM):
        raise ValueError(f"Unknown teacher conflict scope: {scope}")
    if not candidate.slots:
        return None

    sessions = await _load_relevant_sessions(db, candidate, scope)
    conflict = detect_conflict(candidate, sessions, scope)
    if conflict:
        logger.warning(
            "%s conflict for %s/%s with class %s (%s)",
            conflict.kind, candidate.year, candidate.semester, conflict.class_id, describe_slots(conflict.slots),
        )
    return conflict
