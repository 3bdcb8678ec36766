"""Free-resource discovery and timetable analytics. Read-only."""

from collections import Counter
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.api.v1.academic_years import service as academic_years_service
from app.auth.models import User
from app.core.config import settings
from app.core.enums import DayOfWeek, PeriodType
from app.core.models import (
    Room,
    SchoolClass,
    SchoolSubject,
    Section,
    TeacherPreferredSubject,
    TimePeriod,
    TimetableEntry,
)

from .schemas import (
    AnalyticsSummary,
    FreeRoom,
    FreeTeacher,
    RoomUtilization,
    SectionCoverage,
    SubjectDistribution,
    TeacherWorkload,
    TimetableAnalyticsResponse,
)

TEACHER_USER_TYPE = "employee"


def _teachers_stmt(tenant_id: UUID, holding: Iterable[UUID] = ()):
    """Active teachers, plus any user in `holding` whatever their status."""
    criteria = and_(User.user_type == TEACHER_USER_TYPE, User.status == "ACTIVE")
    holding = list(holding)
    if holding:
        criteria = or_(criteria, User.id.in_(holding))
    return select(User).where(User.tenant_id == tenant_id, criteria).order_by(User.full_name)


def utilization_rate(bookings: int, teaching_periods: int, working_days: int) -> float:
    """bookings / (teaching periods x working days) as a percentage, 2 decimals. 0.0 when there is no capacity."""
    capacity = teaching_periods * working_days
    if capacity <= 0:
        return 0.0
    return round(bookings / capacity * 100, 2)


async def _slot_bookings(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    day: DayOfWeek,
    period_id: UUID,
):
    result = await db.execute(
        select(TimetableEntry.teacher_id, TimetableEntry.room_id).where(
            TimetableEntry.tenant_id == tenant_id,
            TimetableEntry.academic_year_id == academic_year_id,
            TimetableEntry.day == DayOfWeek(day).value,
            TimetableEntry.period_id == period_id,
        )
    )
    return result.all()


async def find_free_teachers(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    day: DayOfWeek,
    period_id: UUID,
    subject_id: Optional[UUID] = None,
) -> List[FreeTeacher]:
    """Active teachers with no booking at (day, period). With subject_id, specialists come first."""
    bookings = await _slot_bookings(db, tenant_id, academic_year_id, day, period_id)
    busy = {teacher_id for teacher_id, _ in bookings}
    result = await db.execute(_teachers_stmt(tenant_id))
    free = [t for t in result.scalars().all() if t.id not in busy]

    specialists = set()
    if subject_id is not None:
        result = await db.execute(
            select(TeacherPreferredSubject.teacher_id).where(
                TeacherPreferredSubject.tenant_id == tenant_id,
                TeacherPreferredSubject.subject_id == subject_id,
            )
        )
        specialists = set(result.scalars().all())

    teachers = [
        FreeTeacher(
            id=t.id,
            full_name=t.full_name,
            email=t.email,
            is_subject_specialist=t.id in specialists,
        )
        for t in free
    ]
    if subject_id is not None:
        # sorted() is stable, so name order holds inside each group.
        teachers = sorted(teachers, key=lambda t: not t.is_subject_specialist)
    return teachers


async def find_free_rooms(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    day: DayOfWeek,
    period_id: UUID,
) -> List[FreeRoom]:
    bookings = await _slot_bookings(db, tenant_id, academic_year_id, day, period_id)
    busy = {room_id for _, room_id in bookings if room_id is not None}
    result = await db.execute(
        select(Room).where(Room.tenant_id == tenant_id, Room.is_active.is_(True)).order_by(Room.name)
    )
    return [FreeRoom.model_validate(r) for r in result.scalars().all() if r.id not in busy]


async def get_teacher_workload(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
) -> List[TeacherWorkload]:
    """Booked periods per teacher who has at least one entry in the year, busiest first."""
    result = await db.execute(
        select(User.id, User.full_name, func.count(TimetableEntry.id).label("total"))
        .join(TimetableEntry, TimetableEntry.teacher_id == User.id)
        .where(
            TimetableEntry.tenant_id == tenant_id,
            TimetableEntry.academic_year_id == academic_year_id,
        )
        .group_by(User.id, User.full_name)
        .order_by(func.count(TimetableEntry.id).desc(), User.full_name)
    )
    return [
        TeacherWorkload(teacher_id=teacher_id, teacher_name=name, total_periods=total)
        for teacher_id, name, total in result.all()
    ]


async def get_class_subject_distribution(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    class_id: UUID,
    section_id: UUID,
) -> List[SubjectDistribution]:
    result = await db.execute(
        select(
            SchoolSubject.id,
            SchoolSubject.name,
            SchoolSubject.code,
            func.count(TimetableEntry.id).label("total"),
        )
        .join(TimetableEntry, TimetableEntry.subject_id == SchoolSubject.id)
        .where(
            TimetableEntry.tenant_id == tenant_id,
            TimetableEntry.academic_year_id == academic_year_id,
            TimetableEntry.class_id == class_id,
            TimetableEntry.section_id == section_id,
        )
        .group_by(SchoolSubject.id, SchoolSubject.name, SchoolSubject.code)
        .order_by(SchoolSubject.name)
    )
    return [
        SubjectDistribution(subject_id=subject_id, subject_name=name, subject_code=code, total_periods=total)
        for subject_id, name, code, total in result.all()
    ]


async def get_analytics(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
) -> TimetableAnalyticsResponse:
    """Year-wide summary, workload, distribution, utilization and coverage figures."""
    result = await db.execute(
        select(
            TimetableEntry.teacher_id,
            TimetableEntry.subject_id,
            TimetableEntry.room_id,
            TimetableEntry.section_id,
            TimetableEntry.day,
        )
        .where(
            TimetableEntry.tenant_id == tenant_id,
            TimetableEntry.academic_year_id == academic_year_id,
        )
    )
    entries = result.all()
    by_teacher = Counter(e.teacher_id for e in entries)
    by_subject = Counter(e.subject_id for e in entries)
    by_room = Counter(e.room_id for e in entries if e.room_id is not None)
    by_section = Counter(e.section_id for e in entries)
    by_day = Counter(e.day for e in entries)

    result = await db.execute(
        select(TimePeriod.period_type, func.count(TimePeriod.id))
        .where(
            TimePeriod.tenant_id == tenant_id,
            TimePeriod.academic_year_id == academic_year_id,
        )
        .group_by(TimePeriod.period_type)
    )
    period_counts: Dict[str, int] = dict(result.all())
    teaching_periods = period_counts.get(PeriodType.TEACHING.value, 0)
    break_periods = period_counts.get(PeriodType.BREAK.value, 0)
    working_days = await academic_years_service.count_working_days(
        db, tenant_id, academic_year_id, settings.timetable_default_working_days
    )

    # Deactivated teachers who still hold entries stay in the workload.
    result = await db.execute(
        _teachers_stmt(tenant_id, holding=by_teacher)
        .options(selectinload(User.preferred_subjects).selectinload(TeacherPreferredSubject.subject))
        .execution_options(populate_existing=True)
    )
    teachers = result.scalars().all()
    teacher_workload = sorted(
        (
            TeacherWorkload(
                teacher_id=t.id,
                teacher_name=t.full_name,
                total_periods=by_teacher.get(t.id, 0),
                utilization_rate=utilization_rate(by_teacher.get(t.id, 0), teaching_periods, working_days),
                preferred_subjects=sorted(p.subject.name for p in t.preferred_subjects if p.subject),
            )
            for t in teachers
        ),
        key=lambda w: -w.total_periods,
    )

    result = await db.execute(
        select(SchoolSubject).where(SchoolSubject.tenant_id == tenant_id).order_by(SchoolSubject.name)
    )
    subjects = result.scalars().all()
    subject_distribution = [
        SubjectDistribution(
            subject_id=s.id,
            subject_name=s.name,
            subject_code=s.code,
            total_periods=by_subject.get(s.id, 0),
        )
        for s in subjects
    ]

    result = await db.execute(select(Room).where(Room.tenant_id == tenant_id).order_by(Room.name))
    rooms = result.scalars().all()
    room_utilization = [
        RoomUtilization(
            room_id=r.id,
            room_name=r.name,
            room_type=r.room_type,
            capacity=r.capacity,
            total_bookings=by_room.get(r.id, 0),
            utilization_rate=utilization_rate(by_room.get(r.id, 0), teaching_periods, working_days),
        )
        for r in rooms
    ]

    result = await db.execute(
        select(Section)
        .where(
            Section.tenant_id == tenant_id,
            Section.academic_year_id == academic_year_id,
        )
        .order_by(Section.class_id, Section.name)
    )
    sections = result.scalars().all()
    section_coverage = [
        SectionCoverage(
            section_id=s.id,
            section_name=s.name,
            class_id=s.class_id,
            total_periods=by_section.get(s.id, 0),
            coverage_rate=utilization_rate(by_section.get(s.id, 0), teaching_periods, working_days),
        )
        for s in sections
    ]

    total_classes = await db.scalar(select(func.count(SchoolClass.id)).where(SchoolClass.tenant_id == tenant_id))
    summary = AnalyticsSummary(
        total_entries=len(entries),
        total_periods=teaching_periods + break_periods,
        teaching_periods=teaching_periods,
        break_periods=break_periods,
        working_days=working_days,
        total_teachers=len(teachers),
        total_subjects=len(subjects),
        total_classes=total_classes or 0,
        total_sections=len(sections),
        total_rooms=len(rooms),
        average_periods_per_teacher=round(len(entries) / len(teachers), 2) if teachers else 0.0,
    )
    return TimetableAnalyticsResponse(
        summary=summary,
        teacher_workload=teacher_workload,
        subject_distribution=subject_distribution,
        room_utilization=room_utilization,
        section_coverage=section_coverage,
        day_distribution={day: by_day.get(day.value, 0) for day in DayOfWeek},
    )
