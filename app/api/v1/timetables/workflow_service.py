"""Workflow engine: relocating entries (move, swap) and the DRAFT -> PUBLISHED -> LOCKED lifecycle."""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.academic_years import service as academic_years_service
from app.core.config import settings
from app.core.enums import DayOfWeek, TimetableStatus, statuses_leading_to
from app.core.exceptions import ConflictError, LockedError, NotFoundError, ValidationError
from app.core.models import Section, TimePeriod, TimetableEntry

from .conflicts import ConflictType, Placement, find_conflict, load_slot_occupants
from .schemas import WorkflowResult
from .service import (
    RACE_CONFLICT_MESSAGE,
    conflict_message,
    entry_is_locked,
    find_placement_conflict,
    get_entry_row,
)

logger = logging.getLogger(__name__)

MOVE_CHECKS = (ConflictType.SECTION, ConflictType.TEACHER, ConflictType.ROOM)
MOVE_CONFLICT_MESSAGES = {
    ConflictType.SECTION: "The target slot is already occupied by another subject. Please swap instead.",
    ConflictType.TEACHER: "Teacher {teacher} is already teaching {label} at this time.",
    ConflictType.ROOM: "The assigned room is already booked by {label} at this time.",
}
SWAP_CONFLICT_MESSAGES = {
    ConflictType.TEACHER: "Teacher is busy in {label} at the target time.",
    ConflictType.SECTION: "Section already has {label} scheduled at the target time.",
    ConflictType.ROOM: "Room is occupied by {label} at the target time.",
}


async def _get_entry_or_404(db: AsyncSession, tenant_id: UUID, entry_id: UUID) -> TimetableEntry:
    entry = await get_entry_row(db, tenant_id, entry_id, with_relations=True)
    if not entry:
        raise NotFoundError("Timetable entry not found")
    return entry


async def move_entry(
    db: AsyncSession,
    tenant_id: UUID,
    entry_id: UUID,
    target_day: DayOfWeek,
    target_period_id: UUID,
) -> WorkflowResult:
    """Relocate one entry to another (day, period). Identity, subject, teacher and room are kept."""
    entry = await _get_entry_or_404(db, tenant_id, entry_id)
    await academic_years_service.check_year_lock(db, tenant_id, entry.academic_year_id)
    if entry_is_locked(entry):
        raise LockedError("Cannot move a locked entry.")

    target_day = DayOfWeek(target_day)
    if entry.day == target_day.value and entry.period_id == target_period_id:
        return WorkflowResult(message="Entry is already in the target slot.", updated=0)

    period = await db.get(TimePeriod, target_period_id)
    if not period or period.tenant_id != tenant_id or period.academic_year_id != entry.academic_year_id:
        raise NotFoundError("Time period not found in this academic year")

    candidate = Placement(
        teacher_id=entry.teacher_id,
        section_id=entry.section_id,
        room_id=entry.room_id,
        entry_id=entry.id,
    )
    conflict = await find_placement_conflict(
        db, tenant_id, entry.academic_year_id, target_day, target_period_id, candidate, checks=MOVE_CHECKS
    )
    teacher_name = entry.teacher.full_name if entry.teacher else "the teacher"
    if conflict:
        raise ConflictError(
            conflict_message(conflict, MOVE_CONFLICT_MESSAGES, teacher=teacher_name),
            conflict_type=conflict.conflict_type.value,
        )

    from_day, from_period_id = entry.day, entry.period_id
    academic_year_id = entry.academic_year_id
    try:
        entry.day = target_day.value
        entry.period_id = target_period_id
        await db.commit()
    except IntegrityError:
        await db.rollback()
        occupants = await load_slot_occupants(db, tenant_id, academic_year_id, target_day.value, target_period_id)
        conflict = find_conflict(candidate, occupants, checks=MOVE_CHECKS)
        if conflict:
            raise ConflictError(
                conflict_message(conflict, MOVE_CONFLICT_MESSAGES, teacher=teacher_name),
                conflict_type=conflict.conflict_type.value,
            )
        logger.warning("Move of entry %s hit a unique constraint with no visible occupant", entry_id)
        raise ConflictError(RACE_CONFLICT_MESSAGE)

    logger.info(
        "Moved entry %s from %s/%s to %s/%s",
        entry_id,
        from_day,
        from_period_id,
        target_day.value,
        target_period_id,
    )
    return WorkflowResult(message="Entry moved successfully.", updated=1)


async def swap_entries(
    db: AsyncSession,
    tenant_id: UUID,
    entry_id_1: UUID,
    entry_id_2: UUID,
    swap_rooms: Optional[bool] = None,
) -> WorkflowResult:
    """Exchange the slots of two entries atomically.

    Rooms travel with the slot unless swap_rooms is False (per call) or
    TIMETABLE_SWAP_MOVES_ROOMS is off (default for calls that do not say).
    """
    if entry_id_1 == entry_id_2:
        raise ValidationError("Cannot swap an entry with itself.", field="entry_id_2")
    e1 = await get_entry_row(db, tenant_id, entry_id_1, with_relations=True)
    e2 = await get_entry_row(db, tenant_id, entry_id_2, with_relations=True)
    if not e1 or not e2:
        raise NotFoundError("One or both timetable entries not found")
    if e1.academic_year_id != e2.academic_year_id:
        raise ValidationError("Entries belong to different academic years.", field="entry_id_2")
    academic_year_id = e1.academic_year_id
    await academic_years_service.check_year_lock(db, tenant_id, academic_year_id)
    if entry_is_locked(e1) or entry_is_locked(e2):
        raise LockedError("Cannot swap locked entries or entries in a locked timetable.")

    move_rooms = settings.timetable_swap_moves_rooms if swap_rooms is None else swap_rooms
    day1, period1, room1 = e1.day, e1.period_id, e1.room_id
    day2, period2, room2 = e2.day, e2.period_id, e2.room_id
    e1_room_after = room2 if move_rooms else room1
    e2_room_after = room1 if move_rooms else room2

    # Each entry is checked against its new slot, ignoring the counterpart that is leaving it.
    occupants_at_2 = await load_slot_occupants(db, tenant_id, academic_year_id, day2, period2)
    occupants_at_1 = await load_slot_occupants(db, tenant_id, academic_year_id, day1, period1)
    checks = (
        (Placement(e1.teacher_id, e1.section_id, e1_room_after, entry_id=e1.id), occupants_at_2, e2.id),
        (Placement(e2.teacher_id, e2.section_id, e2_room_after, entry_id=e2.id), occupants_at_1, e1.id),
    )
    for candidate, occupants, counterpart_id in checks:
        conflict = find_conflict(candidate, occupants, exclude_ids=(counterpart_id,))
        if conflict:
            raise ConflictError(
                conflict_message(conflict, SWAP_CONFLICT_MESSAGES),
                conflict_type=conflict.conflict_type.value,
            )

    try:
        # Park e1 outside every slot constraint so e2 can take its place.
        e1.period_id = None
        await db.flush()
        e2.day, e2.period_id, e2.room_id = day1, period1, e2_room_after
        await db.flush()
        e1.day, e1.period_id, e1.room_id = day2, period2, e1_room_after
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("Swap of %s and %s hit a unique constraint; rolled back", entry_id_1, entry_id_2)
        raise ConflictError("Swap failed because one of the slots changed. Refresh and try again.")

    logger.info("Swapped entries %s and %s (rooms moved: %s)", entry_id_1, entry_id_2, move_rooms)
    return WorkflowResult(message="Entries swapped successfully.", updated=2)


async def lock_entry(
    db: AsyncSession,
    tenant_id: UUID,
    entry_id: UUID,
    is_locked: bool,
) -> WorkflowResult:
    entry = await get_entry_row(db, tenant_id, entry_id)
    if not entry:
        raise NotFoundError("Timetable entry not found")
    entry.is_locked = is_locked
    await db.commit()
    return WorkflowResult(message="Entry locked." if is_locked else "Entry unlocked.", updated=1)


async def _check_section(db: AsyncSession, tenant_id: UUID, section_id: UUID) -> None:
    section = await db.get(Section, section_id)
    if not section or section.tenant_id != tenant_id:
        raise NotFoundError("Section not found")


async def _bulk_transition(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    target: TimetableStatus,
    section_id: Optional[UUID] = None,
    exclude_sources: frozenset = frozenset(),
    **values,
) -> int:
    """Move every entry whose status may legally reach `target`. Returns the number of rows changed."""
    stmt = update(TimetableEntry).where(
        TimetableEntry.tenant_id == tenant_id,
        TimetableEntry.academic_year_id == academic_year_id,
        TimetableEntry.status.in_(statuses_leading_to(target, exclude=exclude_sources)),
    )
    if section_id is not None:
        stmt = stmt.where(TimetableEntry.section_id == section_id)
    result = await db.execute(
        stmt.values(status=target.value, **values).execution_options(synchronize_session="evaluate")
    )
    updated = result.rowcount or 0
    await db.commit()
    return updated


async def publish_timetable(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    section_id: UUID,
    published_by: Optional[UUID] = None,
) -> WorkflowResult:
    """Publish every non-locked entry of one section."""
    await academic_years_service.check_year_lock(db, tenant_id, academic_year_id)
    await _check_section(db, tenant_id, section_id)
    updated = await _bulk_transition(
        db,
        tenant_id,
        academic_year_id,
        TimetableStatus.PUBLISHED,
        section_id=section_id,
        exclude_sources=frozenset({TimetableStatus.LOCKED}),
        published_at=datetime.now(timezone.utc),
        published_by=published_by,
    )
    logger.info("Published %d entries of section %s", updated, section_id)
    return WorkflowResult(message="Timetable published successfully.", updated=updated)


async def publish_all_timetable(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    published_by: Optional[UUID] = None,
) -> WorkflowResult:
    """Publish every non-locked entry of the academic year."""
    await academic_years_service.check_year_lock(db, tenant_id, academic_year_id)
    updated = await _bulk_transition(
        db,
        tenant_id,
        academic_year_id,
        TimetableStatus.PUBLISHED,
        exclude_sources=frozenset({TimetableStatus.LOCKED}),
        published_at=datetime.now(timezone.utc),
        published_by=published_by,
    )
    logger.info("Published %d entries in academic year %s", updated, academic_year_id)
    return WorkflowResult(message=f"Published {updated} timetable entries.", updated=updated)


async def lock_timetable(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    section_id: UUID,
) -> WorkflowResult:
    await academic_years_service.check_year_lock(db, tenant_id, academic_year_id)
    await _check_section(db, tenant_id, section_id)
    updated = await _bulk_transition(
        db, tenant_id, academic_year_id, TimetableStatus.LOCKED, section_id=section_id
    )
    logger.info("Locked %d entries of section %s", updated, section_id)
    return WorkflowResult(message="Timetable locked successfully.", updated=updated)


async def unlock_timetable(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    section_id: UUID,
) -> WorkflowResult:
    """LOCKED -> PUBLISHED for one section. DRAFT and PUBLISHED entries are left alone."""
    await academic_years_service.check_year_lock(db, tenant_id, academic_year_id)
    await _check_section(db, tenant_id, section_id)
    updated = await _bulk_transition(
        db,
        tenant_id,
        academic_year_id,
        TimetableStatus.PUBLISHED,
        section_id=section_id,
        exclude_sources=frozenset({TimetableStatus.DRAFT, TimetableStatus.PUBLISHED}),
    )
    logger.info("Unlocked %d entries of section %s", updated, section_id)
    return WorkflowResult(message="Timetable unlocked successfully.", updated=updated)
