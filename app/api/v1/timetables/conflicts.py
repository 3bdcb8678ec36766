"""Double-booking rules for one (day, period) slot.

find_conflict is pure: it only compares a candidate placement against the entries already
sitting in the target slot. load_slot_occupants is the one query that feeds it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.models import TimetableEntry


class ConflictType(str, Enum):
    TEACHER = "TEACHER"
    SECTION = "SECTION"
    ROOM = "ROOM"


DEFAULT_CHECKS = (ConflictType.TEACHER, ConflictType.SECTION, ConflictType.ROOM)


@dataclass(frozen=True)
class Placement:
    """What is being put into a slot. entry_id is set when an existing entry is being relocated."""

    teacher_id: UUID
    section_id: UUID
    room_id: Optional[UUID] = None
    entry_id: Optional[UUID] = None


@dataclass(frozen=True)
class Conflict:
    conflict_type: ConflictType
    occupant: Any

    @property
    def occupant_label(self) -> str:
        """Class-section of the blocking entry, e.g. "Grade 5-A"."""
        school_class = getattr(self.occupant, "school_class", None)
        section = getattr(self.occupant, "section", None)
        class_name = school_class.name if school_class is not None else "another class"
        if section is None:
            return class_name
        return f"{class_name}-{section.name}"


def _teacher_clash(candidate: Placement, occupant) -> bool:
    return occupant.teacher_id == candidate.teacher_id


def _section_clash(candidate: Placement, occupant) -> bool:
    return occupant.section_id == candidate.section_id


def _room_clash(candidate: Placement, occupant) -> bool:
    # No room requested means no room can clash.
    return candidate.room_id is not None and occupant.room_id == candidate.room_id


_PREDICATES: Dict[ConflictType, Callable[[Placement, Any], bool]] = {
    ConflictType.TEACHER: _teacher_clash,
    ConflictType.SECTION: _section_clash,
    ConflictType.ROOM: _room_clash,
}


def find_conflict(
    candidate: Placement,
    occupants: Iterable,
    checks: Sequence[ConflictType] = DEFAULT_CHECKS,
    exclude_ids: Iterable[UUID] = (),
) -> Optional[Conflict]:
    """Return the first conflict in `checks` order, or None if the slot is free for the candidate.

    The candidate's own entry and anything in exclude_ids never count as occupants.
    """
    excluded = set(exclude_ids)
    if candidate.entry_id is not None:
        excluded.add(candidate.entry_id)
    pool: List = [o for o in occupants if o.id not in excluded]
    for check in checks:
        predicate = _PREDICATES[ConflictType(check)]
        for occupant in pool:
            if predicate(candidate, occupant):
                return Conflict(ConflictType(check), occupant)
    return None


async def load_slot_occupants(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    day: str,
    period_id: UUID,
) -> List[TimetableEntry]:
    """Every entry booked at (day, period) in the year, with class and section loaded for messages."""
    result = await db.execute(
        select(TimetableEntry)
        .options(selectinload(TimetableEntry.school_class), selectinload(TimetableEntry.section))
        .where(
            TimetableEntry.tenant_id == tenant_id,
            TimetableEntry.academic_year_id == academic_year_id,
            TimetableEntry.day == day,
            TimetableEntry.period_id == period_id,
        )
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())
