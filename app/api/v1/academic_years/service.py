"""Read-only academic year and working-pattern lookups used as the timetable engine's lock and holiday gates.

Year lifecycle (create/close/reopen) is owned elsewhere; nothing here mutates a year.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import LOCKED_ACADEMIC_YEAR_STATUSES, DayOfWeek
from app.core.exceptions import LockedError, NotFoundError
from app.core.models import AcademicYear, WorkingPattern

LOCKED_YEAR_MESSAGE = "Cannot modify timetable for a closed or archived academic year."


async def get_academic_year(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
) -> Optional[AcademicYear]:
    """Get one academic year by id (tenant-scoped)."""
    result = await db.execute(
        select(AcademicYear).where(
            AcademicYear.id == academic_year_id,
            AcademicYear.tenant_id == tenant_id,
        )
    )
    return result.scalar_one_or_none()


def is_year_locked(ay: AcademicYear) -> bool:
    return ay.status in LOCKED_ACADEMIC_YEAR_STATUSES


async def check_year_lock(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
) -> AcademicYear:
    """Raise LockedError for a CLOSED/ARCHIVED year, NotFoundError when the year is not this tenant's."""
    ay = await get_academic_year(db, tenant_id, academic_year_id)
    if not ay:
        raise NotFoundError("Academic year not found")
    if is_year_locked(ay):
        raise LockedError(f"{LOCKED_YEAR_MESSAGE} ({ay.name} is {ay.status})")
    return ay


async def is_working_day(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    day: DayOfWeek,
) -> bool:
    """A day is working unless a pattern row explicitly marks it otherwise."""
    result = await db.execute(
        select(WorkingPattern.is_working).where(
            WorkingPattern.tenant_id == tenant_id,
            WorkingPattern.academic_year_id == academic_year_id,
            WorkingPattern.day_of_week == DayOfWeek(day).value,
        )
    )
    is_working = result.scalar_one_or_none()
    return is_working is None or bool(is_working)


async def count_working_days(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    default: int,
) -> int:
    """Number of working weekdays in the year's pattern; `default` when no pattern is configured."""
    result = await db.execute(
        select(func.count(WorkingPattern.id), func.count(WorkingPattern.id).filter(WorkingPattern.is_working.is_(True)))
        .where(
            WorkingPattern.tenant_id == tenant_id,
            WorkingPattern.academic_year_id == academic_year_id,
        )
    )
    configured, working = result.one()
    if not configured:
        return default
    # Days without a row count as working.
    return working + (len(DayOfWeek) - configured)
