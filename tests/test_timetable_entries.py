import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.timetables import service as timetables_service
from app.api.v1.timetables.schemas import AvailabilityCheckRequest, TimetableEntryCreate
from app.core.exceptions import ConfigurationError, ConflictError, LockedError, NotFoundError
from app.core.models import Schedule, TeacherSubjectAssignment, TimetableEntry, Tenant, WorkingPattern

from conftest import add_period


async def _entry_count(db: AsyncSession) -> int:
    return await db.scalar(select(func.count(TimetableEntry.id)))


@pytest.mark.asyncio
async def test_create_entry_starts_as_draft(school, book) -> None:
    entry = await book(school.teacher_1, school.period_1, room=school.room_1)

    assert entry.status == "DRAFT"
    assert entry.is_locked is False
    assert entry.day == "MONDAY"
    assert entry.class_name == "Grade 5"
    assert entry.section_name == "A"
    assert entry.teacher_name == "Asha Rao"
    assert entry.room_name == "Room 101"
    assert (entry.start_time, entry.end_time) == ("09:00", "09:45")


@pytest.mark.asyncio
async def test_teacher_cannot_be_in_two_sections_at_once(school, book) -> None:
    await book(school.teacher_1, school.period_1)
    with pytest.raises(ConflictError) as exc:
        await book(school.teacher_1, school.period_1, section=school.section_b)
    assert exc.value.conflict_type == "TEACHER"
    assert exc.value.message == "Teacher is already assigned to Grade 5-A at this time."
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_section_cannot_have_two_entries_at_once(school, book) -> None:
    await book(school.teacher_1, school.period_1)
    with pytest.raises(ConflictError) as exc:
        await book(school.teacher_2, school.period_1, subject=school.science)
    assert exc.value.conflict_type == "SECTION"


@pytest.mark.asyncio
async def test_room_cannot_be_double_booked(school, book) -> None:
    await book(school.teacher_1, school.period_1, room=school.room_1)
    with pytest.raises(ConflictError) as exc:
        await book(school.teacher_2, school.period_1, section=school.section_b, room=school.room_1)
    assert exc.value.conflict_type == "ROOM"
    assert exc.value.message == "Room is already booked by Grade 5-A at this time."


@pytest.mark.asyncio
async def test_entries_without_room_never_clash_on_room(school, book) -> None:
    await book(school.teacher_1, school.period_1)
    entry = await book(school.teacher_2, school.period_1, section=school.section_b)
    assert entry.room_id is None


@pytest.mark.asyncio
async def test_same_slot_on_another_day_is_free(school, book) -> None:
    await book(school.teacher_1, school.period_1, day="MONDAY")
    entry = await book(school.teacher_1, school.period_1, day="TUESDAY")
    assert entry.day == "TUESDAY"


@pytest.mark.asyncio
async def test_teacher_conflict_is_reported_before_section(school, book) -> None:
    await book(school.teacher_1, school.period_1)
    with pytest.raises(ConflictError) as exc:
        await book(school.teacher_1, school.period_1, subject=school.science)
    assert exc.value.conflict_type == "TEACHER"


@pytest.mark.asyncio
async def test_holiday_is_rejected_before_conflict_checks(db_session: AsyncSession, school, book) -> None:
    await book(school.teacher_1, school.period_1, day="MONDAY")
    db_session.add(
        WorkingPattern(
            tenant_id=school.tenant.id, academic_year_id=school.year.id, day_of_week="MONDAY", is_working=False
        )
    )
    await db_session.commit()

    # Same teacher and slot would clash, but the holiday wins.
    with pytest.raises(ConfigurationError) as exc:
        await book(school.teacher_1, school.period_1, day="MONDAY", section=school.section_b)
    assert exc.value.message == "Cannot schedule on MONDAY as it is marked as a holiday."


@pytest.mark.asyncio
async def test_day_without_slot_is_rejected(school, book) -> None:
    with pytest.raises(ConfigurationError) as exc:
        await book(school.teacher_1, school.period_1, day="SATURDAY")
    assert exc.value.message == "Time period is not configured for SATURDAY."


@pytest.mark.asyncio
async def test_closed_year_is_checked_before_references(db_session: AsyncSession, school) -> None:
    school.year.status = "ARCHIVED"
    await db_session.commit()

    payload = TimetableEntryCreate(
        class_id=uuid.uuid4(),
        section_id=school.section_a.id,
        subject_id=school.math.id,
        teacher_id=school.teacher_1.id,
        period_id=school.period_1.id,
        day="MONDAY",
    )
    with pytest.raises(LockedError):
        await timetables_service.create_entry(db_session, school.tenant.id, school.year.id, payload)


@pytest.mark.asyncio
async def test_references_from_another_tenant_do_not_resolve(db_session: AsyncSession, school) -> None:
    other = Tenant(organization_name="Other School")
    db_session.add(other)
    await db_session.commit()

    payload = TimetableEntryCreate(
        class_id=school.school_class.id,
        section_id=school.section_a.id,
        subject_id=school.math.id,
        teacher_id=school.teacher_1.id,
        period_id=school.period_1.id,
        day="MONDAY",
    )
    with pytest.raises(NotFoundError):
        await timetables_service.create_entry(db_session, other.id, school.year.id, payload)


@pytest.mark.asyncio
async def test_section_must_belong_to_class(db_session: AsyncSession, school) -> None:
    payload = TimetableEntryCreate(
        class_id=uuid.uuid4(),
        section_id=school.section_a.id,
        subject_id=school.math.id,
        teacher_id=school.teacher_1.id,
        period_id=school.period_1.id,
        day="MONDAY",
    )
    with pytest.raises(NotFoundError) as exc:
        await timetables_service.create_entry(db_session, school.tenant.id, school.year.id, payload)
    assert exc.value.message == "Class not found"


@pytest.mark.asyncio
async def test_check_availability_matches_create(db_session: AsyncSession, school, book) -> None:
    await book(school.teacher_1, school.period_1, room=school.room_1)
    before = await _entry_count(db_session)

    busy_teacher = AvailabilityCheckRequest(
        section_id=school.section_b.id, teacher_id=school.teacher_1.id, period_id=school.period_1.id, day="MONDAY"
    )
    result = await timetables_service.check_availability(db_session, school.tenant.id, school.year.id, busy_teacher)
    assert result.status == "CONFLICT"
    assert result.conflict_type == "TEACHER"
    with pytest.raises(ConflictError) as exc:
        await book(school.teacher_1, school.period_1, section=school.section_b)
    assert exc.value.message == result.message

    free = AvailabilityCheckRequest(
        section_id=school.section_b.id, teacher_id=school.teacher_2.id, period_id=school.period_1.id, day="MONDAY"
    )
    result = await timetables_service.check_availability(db_session, school.tenant.id, school.year.id, free)
    assert result.status == "OK"
    assert result.message is None

    no_slot = free.model_copy(update={"day": "SUNDAY"})
    result = await timetables_service.check_availability(db_session, school.tenant.id, school.year.id, no_slot)
    assert result.status == "CONFLICT"
    assert result.message == "Time period is not configured for SUNDAY."

    assert await _entry_count(db_session) == before


@pytest.mark.asyncio
async def test_check_availability_ignores_the_entry_being_relocated(db_session: AsyncSession, school, book) -> None:
    entry = await book(school.teacher_1, school.period_1)
    request = AvailabilityCheckRequest(
        section_id=school.section_a.id,
        teacher_id=school.teacher_1.id,
        period_id=school.period_1.id,
        day="MONDAY",
        entry_id=entry.id,
    )
    result = await timetables_service.check_availability(db_session, school.tenant.id, school.year.id, request)
    assert result.status == "OK"


@pytest.mark.asyncio
async def test_delete_entry(db_session: AsyncSession, school, book) -> None:
    entry = await book(school.teacher_1, school.period_1)
    assert await timetables_service.delete_entry(db_session, school.tenant.id, entry.id) is True
    assert await timetables_service.get_entry(db_session, school.tenant.id, entry.id) is None
    assert await timetables_service.delete_entry(db_session, school.tenant.id, entry.id) is False


@pytest.mark.asyncio
async def test_locked_entry_cannot_be_deleted(db_session: AsyncSession, school, book) -> None:
    entry = await book(school.teacher_1, school.period_1)
    row = await db_session.get(TimetableEntry, entry.id)
    row.is_locked = True
    await db_session.commit()

    with pytest.raises(LockedError):
        await timetables_service.delete_entry(db_session, school.tenant.id, entry.id)


@pytest.mark.asyncio
async def test_list_entries_by_weekday_then_start_time(db_session: AsyncSession, school, book) -> None:
    await book(school.teacher_1, school.period_1, day="TUESDAY")
    await book(school.teacher_1, school.period_2, day="MONDAY")
    await book(school.teacher_2, school.period_1, day="MONDAY", subject=school.science)
    await book(school.teacher_3, school.period_1, day="WEDNESDAY", section=school.section_b)

    entries = await timetables_service.list_entries(
        db_session, school.tenant.id, school.year.id, section_id=school.section_a.id
    )
    assert [(e.day, e.period_name) for e in entries] == [
        ("MONDAY", "Period 1"),
        ("MONDAY", "Period 2"),
        ("TUESDAY", "Period 1"),
    ]

    by_teacher = await timetables_service.list_entries(
        db_session, school.tenant.id, school.year.id, teacher_id=school.teacher_1.id
    )
    assert len(by_teacher) == 2


@pytest.mark.asyncio
async def test_timetable_context_uses_class_schedule(db_session: AsyncSession, school, book) -> None:
    await book(school.teacher_1, school.period_1, room=school.room_1)
    db_session.add(
        TeacherSubjectAssignment(
            tenant_id=school.tenant.id,
            academic_year_id=school.year.id,
            teacher_id=school.teacher_1.id,
            class_id=school.school_class.id,
            section_id=school.section_a.id,
            subject_id=school.math.id,
        )
    )
    await db_session.commit()

    context = await timetables_service.get_timetable_context(
        db_session, school.tenant.id, school.year.id, school.school_class.id, school.section_a.id
    )
    assert context.schedule_id is None
    assert list(context.calendar) == ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY"]
    assert [p.name for p in context.calendar["MONDAY"]] == ["Period 1", "Period 2", "Lunch"]
    assert context.calendar["MONDAY"][2].period_type == "BREAK"
    assert len(context.entries) == 1
    assert context.allocations[0].subject_code == "MATH"
    assert context.allocations[0].teacher_name == "Asha Rao"
    assert [r.name for r in context.rooms] == ["Room 101", "Science Lab"]

    half_day = Schedule(tenant_id=school.tenant.id, academic_year_id=school.year.id, name="Half Day")
    db_session.add(half_day)
    await db_session.flush()
    await add_period(db_session, school.tenant.id, school.year.id, "Short 1", "08:00", "08:30", ["SATURDAY"], schedule_id=half_day.id)
    school.school_class.schedule_id = half_day.id
    await db_session.commit()

    context = await timetables_service.get_timetable_context(
        db_session, school.tenant.id, school.year.id, school.school_class.id, school.section_a.id
    )
    assert context.schedule_id == half_day.id
    assert list(context.calendar) == ["SATURDAY"]
    assert [p.name for p in context.calendar["SATURDAY"]] == ["Short 1"]


@pytest.mark.asyncio
async def test_timetable_context_requires_class(db_session: AsyncSession, school) -> None:
    with pytest.raises(NotFoundError):
        await timetables_service.get_timetable_context(
            db_session, school.tenant.id, school.year.id, uuid.uuid4(), school.section_a.id
        )


@pytest.mark.asyncio
async def test_concurrent_booking_is_reported_as_conflict(
    db_session: AsyncSession, school, book, monkeypatch
) -> None:
    """The unique constraint catches what the pre-check missed, and the occupant is still named."""
    await book(school.teacher_1, school.period_1)
    section_b_id, class_id = school.section_b.id, school.school_class.id
    tenant_id, year_id = school.tenant.id, school.year.id
    payload = TimetableEntryCreate(
        class_id=class_id,
        section_id=section_b_id,
        subject_id=school.science.id,
        teacher_id=school.teacher_1.id,
        period_id=school.period_1.id,
        day="MONDAY",
    )

    async def _stale_check(*args, **kwargs):
        return None

    monkeypatch.setattr(timetables_service, "find_placement_conflict", _stale_check)
    with pytest.raises(ConflictError) as exc:
        await timetables_service.create_entry(db_session, tenant_id, year_id, payload)
    assert exc.value.conflict_type == "TEACHER"
    assert "Grade 5-A" in exc.value.message


@pytest.mark.asyncio
async def test_unique_constraint_blocks_direct_double_booking(db_session: AsyncSession, school, book) -> None:
    entry = await book(school.teacher_1, school.period_1)
    row = await db_session.get(TimetableEntry, entry.id)
    duplicate = TimetableEntry(
        tenant_id=row.tenant_id,
        academic_year_id=row.academic_year_id,
        class_id=row.class_id,
        section_id=school.section_b.id,
        subject_id=row.subject_id,
        teacher_id=row.teacher_id,
        period_id=row.period_id,
        day=row.day,
    )
    db_session.add(duplicate)
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()
