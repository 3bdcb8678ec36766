import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.academic_years import service as academic_years_service
from app.api.v1.time_periods.service import clone_period
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.models import Schedule, SchoolClass, TimePeriod

from .schemas import ScheduleCreate, ScheduleResponse, ScheduleUpdate

logger = logging.getLogger(__name__)

DUPLICATE_NAME_MESSAGE = "Schedule with this name already exists for this academic year"


def _to_response(s: Schedule, period_count: int = 0) -> ScheduleResponse:
    return ScheduleResponse(
        id=s.id,
        tenant_id=s.tenant_id,
        academic_year_id=s.academic_year_id,
        name=s.name,
        description=s.description,
        is_default=s.is_default,
        is_active=s.is_active,
        period_count=period_count,
        created_at=s.created_at,
        updated_at=s.updated_at,
    )


async def _get_schedule_row(db: AsyncSession, tenant_id: UUID, schedule_id: UUID) -> Optional[Schedule]:
    result = await db.execute(
        select(Schedule).where(
            Schedule.id == schedule_id,
            Schedule.tenant_id == tenant_id,
        )
    )
    return result.scalar_one_or_none()


async def _count_periods(db: AsyncSession, schedule_id: UUID) -> int:
    count = await db.scalar(select(func.count(TimePeriod.id)).where(TimePeriod.schedule_id == schedule_id))
    return count or 0


async def _ensure_unique_name(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    name: str,
    exclude_schedule_id: Optional[UUID] = None,
) -> None:
    stmt = select(Schedule.id).where(
        Schedule.tenant_id == tenant_id,
        Schedule.academic_year_id == academic_year_id,
        func.lower(Schedule.name) == name.lower(),
    )
    if exclude_schedule_id is not None:
        stmt = stmt.where(Schedule.id != exclude_schedule_id)
    result = await db.execute(stmt.limit(1))
    if result.scalar_one_or_none() is not None:
        raise ConflictError(DUPLICATE_NAME_MESSAGE, conflict_type="DUPLICATE")


async def _clear_default(db: AsyncSession, tenant_id: UUID, academic_year_id: UUID) -> None:
    """Unset is_default on every schedule of the year. Runs inside the caller's transaction."""
    await db.execute(
        update(Schedule)
        .where(
            Schedule.tenant_id == tenant_id,
            Schedule.academic_year_id == academic_year_id,
            Schedule.is_default.is_(True),
        )
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )


async def create_schedule(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    payload: ScheduleCreate,
) -> ScheduleResponse:
    await academic_years_service.check_year_lock(db, tenant_id, academic_year_id)
    name = payload.name.strip()
    await _ensure_unique_name(db, tenant_id, academic_year_id, name)
    try:
        if payload.is_default:
            await _clear_default(db, tenant_id, academic_year_id)
        obj = Schedule(
            tenant_id=tenant_id,
            academic_year_id=academic_year_id,
            name=name,
            description=payload.description,
            is_default=payload.is_default,
            is_active=payload.is_active,
        )
        db.add(obj)
        await db.commit()
        await db.refresh(obj)
    except IntegrityError:
        await db.rollback()
        raise ConflictError(DUPLICATE_NAME_MESSAGE, conflict_type="DUPLICATE")
    logger.info("Created schedule %s (%s) in year %s", obj.id, obj.name, academic_year_id)
    return _to_response(obj)


async def list_schedules(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
) -> List[ScheduleResponse]:
    """Default schedule first, then by name, each with its period count."""
    period_counts = (
        select(TimePeriod.schedule_id, func.count(TimePeriod.id).label("period_count"))
        .where(TimePeriod.tenant_id == tenant_id)
        .group_by(TimePeriod.schedule_id)
        .subquery()
    )
    stmt = (
        select(Schedule, func.coalesce(period_counts.c.period_count, 0))
        .outerjoin(period_counts, period_counts.c.schedule_id == Schedule.id)
        .where(
            Schedule.tenant_id == tenant_id,
            Schedule.academic_year_id == academic_year_id,
        )
        .order_by(Schedule.is_default.desc(), Schedule.name)
    )
    result = await db.execute(stmt)
    return [_to_response(s, count) for s, count in result.all()]


async def get_schedule(
    db: AsyncSession,
    tenant_id: UUID,
    schedule_id: UUID,
) -> Optional[ScheduleResponse]:
    obj = await _get_schedule_row(db, tenant_id, schedule_id)
    if not obj:
        return None
    return _to_response(obj, await _count_periods(db, obj.id))


async def update_schedule(
    db: AsyncSession,
    tenant_id: UUID,
    schedule_id: UUID,
    payload: ScheduleUpdate,
) -> Optional[ScheduleResponse]:
    obj = await _get_schedule_row(db, tenant_id, schedule_id)
    if not obj:
        return None
    await academic_years_service.check_year_lock(db, tenant_id, obj.academic_year_id)
    if payload.name is not None:
        name = payload.name.strip()
        if name.lower() != obj.name.lower():
            await _ensure_unique_name(db, tenant_id, obj.academic_year_id, name, exclude_schedule_id=obj.id)
        obj.name = name
    if payload.description is not None:
        obj.description = payload.description
    if payload.is_active is not None:
        obj.is_active = payload.is_active
    try:
        if payload.is_default and not obj.is_default:
            await _clear_default(db, tenant_id, obj.academic_year_id)
        if payload.is_default is not None:
            obj.is_default = payload.is_default
        await db.commit()
        await db.refresh(obj)
    except IntegrityError:
        await db.rollback()
        raise ConflictError(DUPLICATE_NAME_MESSAGE, conflict_type="DUPLICATE")
    return _to_response(obj, await _count_periods(db, obj.id))


async def delete_schedule(
    db: AsyncSession,
    tenant_id: UUID,
    schedule_id: UUID,
) -> bool:
    """Refused while any period or class still points at the schedule."""
    obj = await _get_schedule_row(db, tenant_id, schedule_id)
    if not obj:
        return False
    await academic_years_service.check_year_lock(db, tenant_id, obj.academic_year_id)
    period_count = await _count_periods(db, obj.id)
    if period_count:
        raise ConflictError(
            f"Cannot delete schedule with {period_count} periods. Delete or move the periods first.",
            conflict_type="IN_USE",
        )
    class_count = await db.scalar(select(func.count(SchoolClass.id)).where(SchoolClass.schedule_id == obj.id))
    if class_count:
        raise ConflictError(
            f"Cannot delete schedule. {class_count} class(es) are currently using this schedule.",
            conflict_type="IN_USE",
        )
    await db.delete(obj)
    await db.commit()
    logger.info("Deleted schedule %s", schedule_id)
    return True


async def set_default_schedule(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    schedule_id: UUID,
) -> ScheduleResponse:
    obj = await _get_schedule_row(db, tenant_id, schedule_id)
    if not obj:
        raise NotFoundError("Schedule not found")
    if obj.academic_year_id != academic_year_id:
        raise ValidationError("Schedule does not belong to this academic year", field="schedule_id")
    await academic_years_service.check_year_lock(db, tenant_id, academic_year_id)
    await _clear_default(db, tenant_id, academic_year_id)
    obj.is_default = True
    await db.commit()
    await db.refresh(obj)
    return _to_response(obj, await _count_periods(db, obj.id))


async def duplicate_schedule(
    db: AsyncSession,
    tenant_id: UUID,
    schedule_id: UUID,
    new_name: str,
) -> ScheduleResponse:
    """Copy a schedule with all of its periods and slots under a new name. All or nothing."""
    source = await _get_schedule_row(db, tenant_id, schedule_id)
    if not source:
        raise NotFoundError("Schedule not found")
    await academic_years_service.check_year_lock(db, tenant_id, source.academic_year_id)
    name = new_name.strip()
    await _ensure_unique_name(db, tenant_id, source.academic_year_id, name)

    result = await db.execute(
        select(TimePeriod).where(TimePeriod.schedule_id == source.id).order_by(TimePeriod.start_time)
    )
    periods = result.scalars().all()
    try:
        copy = Schedule(
            tenant_id=tenant_id,
            academic_year_id=source.academic_year_id,
            name=name,
            description=source.description,
            is_default=False,
            is_active=source.is_active,
        )
        db.add(copy)
        await db.flush()
        for period in periods:
            await clone_period(db, period, source.academic_year_id, copy.id)
        await db.commit()
        await db.refresh(copy)
    except IntegrityError:
        await db.rollback()
        raise ConflictError(DUPLICATE_NAME_MESSAGE, conflict_type="DUPLICATE")
    logger.info("Duplicated schedule %s as %s with %d periods", schedule_id, copy.id, len(periods))
    return _to_response(copy, len(periods))
