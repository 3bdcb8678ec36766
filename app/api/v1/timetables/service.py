"""Booking ledger: timetable entries and the placement checks every booking goes through."""

import logging
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.api.v1.academic_years import service as academic_years_service
from app.auth.models import User
from app.core.enums import INITIAL_TIMETABLE_STATUS, WEEKDAY_ORDER, DayOfWeek, TimetableStatus
from app.core.exceptions import ConfigurationError, ConflictError, LockedError, NotFoundError
from app.core.models import (
    Room,
    SchoolClass,
    SchoolSubject,
    Section,
    TeacherSubjectAssignment,
    TimePeriod,
    TimeSlot,
    TimetableEntry,
    TimetableOverride,
)

from .conflicts import DEFAULT_CHECKS, Conflict, ConflictType, Placement, find_conflict, load_slot_occupants
from .schemas import (
    AvailabilityCheckRequest,
    AvailabilityResponse,
    ContextPeriod,
    RoomOption,
    SubjectAllocation,
    TimetableContextResponse,
    TimetableEntryCreate,
    TimetableEntryResponse,
)

logger = logging.getLogger(__name__)

ENTRY_CONFLICT_MESSAGES = {
    ConflictType.TEACHER: "Teacher is already assigned to {label} at this time.",
    ConflictType.SECTION: "This section already has a class scheduled at this time.",
    ConflictType.ROOM: "Room is already booked by {label} at this time.",
}
RACE_CONFLICT_MESSAGE = "This slot was booked by a concurrent request. Refresh and try again."


def entry_load_options():
    return (
        selectinload(TimetableEntry.school_class),
        selectinload(TimetableEntry.section),
        selectinload(TimetableEntry.subject),
        selectinload(TimetableEntry.teacher),
        selectinload(TimetableEntry.period),
        selectinload(TimetableEntry.room),
    )


def _loaded(obj, attr: str):
    """Related row if already loaded, else None. Never triggers a lazy load."""
    if attr in inspect(obj).unloaded:
        return None
    return getattr(obj, attr)


def _to_response(e: TimetableEntry) -> TimetableEntryResponse:
    school_class = _loaded(e, "school_class")
    section = _loaded(e, "section")
    subject = _loaded(e, "subject")
    teacher = _loaded(e, "teacher")
    period = _loaded(e, "period")
    room = _loaded(e, "room")
    return TimetableEntryResponse(
        id=e.id,
        tenant_id=e.tenant_id,
        academic_year_id=e.academic_year_id,
        class_id=e.class_id,
        section_id=e.section_id,
        subject_id=e.subject_id,
        teacher_id=e.teacher_id,
        period_id=e.period_id,
        day=e.day,
        room_id=e.room_id,
        is_locked=e.is_locked,
        status=e.status,
        published_at=e.published_at,
        published_by=e.published_by,
        created_at=e.created_at,
        updated_at=e.updated_at,
        class_name=school_class.name if school_class else None,
        section_name=section.name if section else None,
        subject_name=subject.name if subject else None,
        teacher_name=teacher.full_name if teacher else None,
        room_name=room.name if room else None,
        period_name=period.name if period else None,
        start_time=period.start_time if period else None,
        end_time=period.end_time if period else None,
    )


def entry_is_locked(e: TimetableEntry) -> bool:
    return bool(e.is_locked) or e.status == TimetableStatus.LOCKED.value


def conflict_message(conflict: Conflict, templates: dict, **context) -> str:
    return templates[conflict.conflict_type].format(label=conflict.occupant_label, **context)


async def get_entry_row(
    db: AsyncSession,
    tenant_id: UUID,
    entry_id: UUID,
    with_relations: bool = False,
) -> Optional[TimetableEntry]:
    stmt = select(TimetableEntry).where(
        TimetableEntry.id == entry_id,
        TimetableEntry.tenant_id == tenant_id,
    )
    if with_relations:
        stmt = stmt.options(*entry_load_options()).execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def ensure_slot_exists(db: AsyncSession, tenant_id: UUID, period_id: UUID, day: DayOfWeek) -> None:
    """ConfigurationError unless the period runs on the given weekday."""
    day = DayOfWeek(day)
    result = await db.execute(
        select(TimeSlot.id).where(
            TimeSlot.tenant_id == tenant_id,
            TimeSlot.period_id == period_id,
            TimeSlot.day == day.value,
        )
    )
    if result.scalar_one_or_none() is None:
        raise ConfigurationError(f"Time period is not configured for {day.value}.")


async def ensure_working_day(db: AsyncSession, tenant_id: UUID, academic_year_id: UUID, day: DayOfWeek) -> None:
    day = DayOfWeek(day)
    if not await academic_years_service.is_working_day(db, tenant_id, academic_year_id, day):
        raise ConfigurationError(f"Cannot schedule on {day.value} as it is marked as a holiday.")


async def find_placement_conflict(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    day: DayOfWeek,
    period_id: UUID,
    candidate: Placement,
    checks: Sequence[ConflictType] = DEFAULT_CHECKS,
    exclude_ids: Iterable[UUID] = (),
) -> Optional[Conflict]:
    """Working day, slot existence, then teacher/section/room against the slot's occupants.

    Raises ConfigurationError for the first two; returns the first booking conflict or None.
    """
    day = DayOfWeek(day)
    await ensure_working_day(db, tenant_id, academic_year_id, day)
    await ensure_slot_exists(db, tenant_id, period_id, day)
    occupants = await load_slot_occupants(db, tenant_id, academic_year_id, day.value, period_id)
    return find_conflict(candidate, occupants, checks=checks, exclude_ids=exclude_ids)


async def _resolve_references(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    payload: TimetableEntryCreate,
) -> None:
    school_class = await db.get(SchoolClass, payload.class_id)
    if not school_class or school_class.tenant_id != tenant_id:
        raise NotFoundError("Class not found")
    section = await db.get(Section, payload.section_id)
    if not section or section.tenant_id != tenant_id or section.class_id != payload.class_id:
        raise NotFoundError("Section not found for this class")
    subject = await db.get(SchoolSubject, payload.subject_id)
    if not subject or subject.tenant_id != tenant_id:
        raise NotFoundError("Subject not found")
    teacher = await db.get(User, payload.teacher_id)
    if not teacher or teacher.tenant_id != tenant_id:
        raise NotFoundError("Teacher not found")
    period = await db.get(TimePeriod, payload.period_id)
    if not period or period.tenant_id != tenant_id or period.academic_year_id != academic_year_id:
        raise NotFoundError("Time period not found in this academic year")
    if payload.room_id is not None:
        room = await db.get(Room, payload.room_id)
        if not room or room.tenant_id != tenant_id:
            raise NotFoundError("Room not found")


async def create_entry(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    payload: TimetableEntryCreate,
) -> TimetableEntryResponse:
    await academic_years_service.check_year_lock(db, tenant_id, academic_year_id)
    await _resolve_references(db, tenant_id, academic_year_id, payload)

    candidate = Placement(
        teacher_id=payload.teacher_id,
        section_id=payload.section_id,
        room_id=payload.room_id,
    )
    conflict = await find_placement_conflict(
        db, tenant_id, academic_year_id, payload.day, payload.period_id, candidate
    )
    if conflict:
        raise ConflictError(
            conflict_message(conflict, ENTRY_CONFLICT_MESSAGES),
            conflict_type=conflict.conflict_type.value,
        )

    try:
        obj = TimetableEntry(
            tenant_id=tenant_id,
            academic_year_id=academic_year_id,
            class_id=payload.class_id,
            section_id=payload.section_id,
            subject_id=payload.subject_id,
            teacher_id=payload.teacher_id,
            period_id=payload.period_id,
            day=payload.day.value,
            room_id=payload.room_id,
            status=INITIAL_TIMETABLE_STATUS.value,
            is_locked=False,
        )
        db.add(obj)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        # Another request won the slot between our check and insert; name it if it is still there.
        occupants = await load_slot_occupants(
            db, tenant_id, academic_year_id, payload.day.value, payload.period_id
        )
        conflict = find_conflict(candidate, occupants)
        if conflict:
            raise ConflictError(
                conflict_message(conflict, ENTRY_CONFLICT_MESSAGES),
                conflict_type=conflict.conflict_type.value,
            )
        logger.warning(
            "Unique constraint hit for %s %s period %s but no occupant found",
            payload.section_id,
            payload.day.value,
            payload.period_id,
        )
        raise ConflictError(RACE_CONFLICT_MESSAGE)

    logger.info(
        "Booked entry %s: section %s teacher %s on %s period %s",
        obj.id,
        obj.section_id,
        obj.teacher_id,
        obj.day,
        obj.period_id,
    )
    loaded = await get_entry_row(db, tenant_id, obj.id, with_relations=True)
    return _to_response(loaded)


async def check_availability(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    payload: AvailabilityCheckRequest,
) -> AvailabilityResponse:
    """Answer "could this be booked?" using the same checks as create_entry. Never writes."""
    candidate = Placement(
        teacher_id=payload.teacher_id,
        section_id=payload.section_id,
        room_id=payload.room_id,
        entry_id=payload.entry_id,
    )
    try:
        conflict = await find_placement_conflict(
            db, tenant_id, academic_year_id, payload.day, payload.period_id, candidate
        )
    except ConfigurationError as e:
        return AvailabilityResponse(status="CONFLICT", message=e.message, conflict_type="CONFIGURATION")
    if conflict:
        return AvailabilityResponse(
            status="CONFLICT",
            message=conflict_message(conflict, ENTRY_CONFLICT_MESSAGES),
            conflict_type=conflict.conflict_type.value,
        )
    return AvailabilityResponse(status="OK")


async def get_entry(
    db: AsyncSession,
    tenant_id: UUID,
    entry_id: UUID,
) -> Optional[TimetableEntryResponse]:
    obj = await get_entry_row(db, tenant_id, entry_id, with_relations=True)
    return _to_response(obj) if obj else None


def _weekday_then_start(e: TimetableEntry):
    period = _loaded(e, "period")
    return WEEKDAY_ORDER[DayOfWeek(e.day)], period.start_time if period else ""


async def list_entry_rows(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    section_id: Optional[UUID] = None,
    teacher_id: Optional[UUID] = None,
    room_id: Optional[UUID] = None,
    class_id: Optional[UUID] = None,
) -> List[TimetableEntry]:
    stmt = (
        select(TimetableEntry)
        .options(*entry_load_options())
        .where(
            TimetableEntry.tenant_id == tenant_id,
            TimetableEntry.academic_year_id == academic_year_id,
        )
    )
    if section_id is not None:
        stmt = stmt.where(TimetableEntry.section_id == section_id)
    if teacher_id is not None:
        stmt = stmt.where(TimetableEntry.teacher_id == teacher_id)
    if room_id is not None:
        stmt = stmt.where(TimetableEntry.room_id == room_id)
    if class_id is not None:
        stmt = stmt.where(TimetableEntry.class_id == class_id)
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return sorted(result.scalars().all(), key=_weekday_then_start)


async def list_entries(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    section_id: Optional[UUID] = None,
    teacher_id: Optional[UUID] = None,
    room_id: Optional[UUID] = None,
    class_id: Optional[UUID] = None,
) -> List[TimetableEntryResponse]:
    """Entries ordered by weekday, then period start time."""
    rows = await list_entry_rows(
        db,
        tenant_id,
        academic_year_id,
        section_id=section_id,
        teacher_id=teacher_id,
        room_id=room_id,
        class_id=class_id,
    )
    return [_to_response(e) for e in rows]


async def delete_entry(
    db: AsyncSession,
    tenant_id: UUID,
    entry_id: UUID,
) -> bool:
    obj = await get_entry_row(db, tenant_id, entry_id)
    if not obj:
        return False
    await academic_years_service.check_year_lock(db, tenant_id, obj.academic_year_id)
    if entry_is_locked(obj):
        raise LockedError("Cannot delete a locked entry.")
    await db.execute(delete(TimetableOverride).where(TimetableOverride.entry_id == obj.id))
    await db.delete(obj)
    await db.commit()
    logger.info("Deleted entry %s", entry_id)
    return True


async def get_timetable_context(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    class_id: UUID,
    section_id: UUID,
) -> TimetableContextResponse:
    """Grid context for one class-section: its schedule's periods per day, bookings, allocations, rooms."""
    school_class = await db.get(SchoolClass, class_id)
    if not school_class or school_class.tenant_id != tenant_id:
        raise NotFoundError("Class not found")
    section = await db.get(Section, section_id)
    if not section or section.tenant_id != tenant_id or section.class_id != class_id:
        raise NotFoundError("Section not found for this class")

    schedule_id = school_class.schedule_id
    bucket = TimePeriod.schedule_id.is_(None) if schedule_id is None else TimePeriod.schedule_id == schedule_id
    result = await db.execute(
        select(TimeSlot, TimePeriod)
        .join(TimePeriod, TimeSlot.period_id == TimePeriod.id)
        .where(
            TimeSlot.tenant_id == tenant_id,
            TimeSlot.academic_year_id == academic_year_id,
            bucket,
        )
        .order_by(TimePeriod.start_time)
    )
    calendar = {}
    for slot, period in result.all():
        calendar.setdefault(DayOfWeek(slot.day), []).append(
            ContextPeriod(
                period_id=period.id,
                slot_id=slot.id,
                name=period.name,
                start_time=period.start_time,
                end_time=period.end_time,
                period_type=period.period_type,
            )
        )
    calendar = {day: calendar[day] for day in sorted(calendar, key=WEEKDAY_ORDER.__getitem__)}

    entries = await list_entries(db, tenant_id, academic_year_id, section_id=section_id)

    result = await db.execute(
        select(TeacherSubjectAssignment)
        .options(
            selectinload(TeacherSubjectAssignment.subject),
            selectinload(TeacherSubjectAssignment.teacher),
        )
        .where(
            TeacherSubjectAssignment.tenant_id == tenant_id,
            TeacherSubjectAssignment.academic_year_id == academic_year_id,
            TeacherSubjectAssignment.class_id == class_id,
            TeacherSubjectAssignment.section_id == section_id,
        )
        .execution_options(populate_existing=True)
    )
    allocations = [
        SubjectAllocation(
            subject_id=a.subject_id,
            subject_name=a.subject.name,
            subject_code=a.subject.code,
            color=a.subject.color,
            teacher_id=a.teacher_id,
            teacher_name=a.teacher.full_name if a.teacher else "Unassigned",
        )
        for a in result.scalars().all()
    ]

    result = await db.execute(
        select(Room).where(Room.tenant_id == tenant_id, Room.is_active.is_(True)).order_by(Room.name)
    )
    rooms = [RoomOption.model_validate(r) for r in result.scalars().all()]

    return TimetableContextResponse(
        class_id=class_id,
        section_id=section_id,
        schedule_id=schedule_id,
        calendar=calendar,
        entries=entries,
        allocations=allocations,
        rooms=rooms,
    )
