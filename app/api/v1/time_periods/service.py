"""Bell periods, their per-weekday time slots, and copying a year's bell structure into another year."""

import logging
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.academic_years import service as academic_years_service
from app.core.enums import DayOfWeek
from app.core.exceptions import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from app.core.models import Schedule, TimePeriod, TimeSlot, TimetableEntry
from app.core.timeutils import ranges_overlap, to_minutes

from .schemas import (
    CopyStructureResponse,
    TimePeriodCreate,
    TimePeriodResponse,
    TimePeriodUpdate,
)

logger = logging.getLogger(__name__)


def _to_response(p: TimePeriod) -> TimePeriodResponse:
    return TimePeriodResponse(
        id=p.id,
        tenant_id=p.tenant_id,
        academic_year_id=p.academic_year_id,
        schedule_id=p.schedule_id,
        name=p.name,
        start_time=p.start_time,
        end_time=p.end_time,
        period_type=p.period_type,
        days=list(p.days or []),
        created_at=p.created_at,
        updated_at=p.updated_at,
    )


def _validate_range(start_time: str, end_time: str) -> None:
    if to_minutes(start_time) >= to_minutes(end_time):
        raise ValidationError("Start time must be before end time", field="end_time")


def _bucket_filter(schedule_id: Optional[UUID]):
    """Periods of one schedule, or the unscheduled bucket when schedule_id is None."""
    if schedule_id is None:
        return TimePeriod.schedule_id.is_(None)
    return TimePeriod.schedule_id == schedule_id


async def _get_period_row(db: AsyncSession, tenant_id: UUID, period_id: UUID) -> Optional[TimePeriod]:
    result = await db.execute(
        select(TimePeriod).where(
            TimePeriod.id == period_id,
            TimePeriod.tenant_id == tenant_id,
        )
    )
    return result.scalar_one_or_none()


async def _check_schedule_in_year(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    schedule_id: UUID,
) -> Schedule:
    result = await db.execute(
        select(Schedule).where(
            Schedule.id == schedule_id,
            Schedule.tenant_id == tenant_id,
            Schedule.academic_year_id == academic_year_id,
        )
    )
    schedule = result.scalar_one_or_none()
    if not schedule:
        raise ConfigurationError("Invalid schedule ID")
    return schedule


async def _ensure_unique_name(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    schedule_id: Optional[UUID],
    name: str,
    exclude_period_id: Optional[UUID] = None,
) -> None:
    stmt = select(TimePeriod.id).where(
        TimePeriod.tenant_id == tenant_id,
        TimePeriod.academic_year_id == academic_year_id,
        _bucket_filter(schedule_id),
        func.lower(TimePeriod.name) == name.lower(),
    )
    if exclude_period_id is not None:
        stmt = stmt.where(TimePeriod.id != exclude_period_id)
    result = await db.execute(stmt.limit(1))
    if result.scalar_one_or_none() is not None:
        raise ConflictError(
            "Time period with this name already exists in this schedule",
            conflict_type="DUPLICATE",
        )


async def validate_time_overlap(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    schedule_id: Optional[UUID],
    start_time: str,
    end_time: str,
    exclude_period_id: Optional[UUID] = None,
) -> None:
    """Raise ConflictError if [start, end) intersects another period of the same schedule bucket."""
    stmt = select(TimePeriod).where(
        TimePeriod.tenant_id == tenant_id,
        TimePeriod.academic_year_id == academic_year_id,
        _bucket_filter(schedule_id),
    )
    if exclude_period_id is not None:
        stmt = stmt.where(TimePeriod.id != exclude_period_id)
    result = await db.execute(stmt.order_by(TimePeriod.start_time))
    for period in result.scalars().all():
        if ranges_overlap(start_time, end_time, period.start_time, period.end_time):
            raise ConflictError(
                f'Time overlap detected with period "{period.name}" ({period.start_time} - {period.end_time})',
                conflict_type="OVERLAP",
            )


async def sync_time_slots(db: AsyncSession, period: TimePeriod, days: Iterable[DayOfWeek]) -> int:
    """Replace every slot of the period with one slot per given day. Caller commits."""
    await db.execute(delete(TimeSlot).where(TimeSlot.period_id == period.id))
    count = 0
    for day in dict.fromkeys(DayOfWeek(d) for d in days):
        db.add(
            TimeSlot(
                tenant_id=period.tenant_id,
                academic_year_id=period.academic_year_id,
                period_id=period.id,
                day=day.value,
            )
        )
        count += 1
    await db.flush()
    return count


async def clone_period(
    db: AsyncSession,
    source: TimePeriod,
    academic_year_id: UUID,
    schedule_id: Optional[UUID],
    name: Optional[str] = None,
) -> Tuple[TimePeriod, int]:
    """Copy a period and its slots into (academic_year_id, schedule_id). Returns the clone and its slot count."""
    clone = TimePeriod(
        tenant_id=source.tenant_id,
        academic_year_id=academic_year_id,
        schedule_id=schedule_id,
        name=name or source.name,
        start_time=source.start_time,
        end_time=source.end_time,
        period_type=source.period_type,
        days=list(source.days or []),
    )
    db.add(clone)
    await db.flush()
    result = await db.execute(select(TimeSlot.day).where(TimeSlot.period_id == source.id))
    slot_days = result.scalars().all()
    for day in slot_days:
        db.add(
            TimeSlot(
                tenant_id=source.tenant_id,
                academic_year_id=academic_year_id,
                period_id=clone.id,
                day=day,
            )
        )
    await db.flush()
    return clone, len(slot_days)


async def create_time_period(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    payload: TimePeriodCreate,
) -> TimePeriodResponse:
    _validate_range(payload.start_time, payload.end_time)
    await academic_years_service.check_year_lock(db, tenant_id, academic_year_id)
    if payload.schedule_id is not None:
        await _check_schedule_in_year(db, tenant_id, academic_year_id, payload.schedule_id)
    name = payload.name.strip()
    await validate_time_overlap(
        db, tenant_id, academic_year_id, payload.schedule_id, payload.start_time, payload.end_time
    )
    await _ensure_unique_name(db, tenant_id, academic_year_id, payload.schedule_id, name)

    obj = TimePeriod(
        tenant_id=tenant_id,
        academic_year_id=academic_year_id,
        schedule_id=payload.schedule_id,
        name=name,
        start_time=payload.start_time,
        end_time=payload.end_time,
        period_type=payload.period_type.value,
        days=[d.value for d in payload.days],
    )
    db.add(obj)
    await db.flush()
    await sync_time_slots(db, obj, payload.days)
    await db.commit()
    await db.refresh(obj)
    logger.info("Created time period %s (%s-%s) in year %s", obj.id, obj.start_time, obj.end_time, academic_year_id)
    return _to_response(obj)


async def list_time_periods(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    schedule_id: Optional[UUID] = None,
) -> List[TimePeriodResponse]:
    stmt = select(TimePeriod).where(
        TimePeriod.tenant_id == tenant_id,
        TimePeriod.academic_year_id == academic_year_id,
    )
    if schedule_id is not None:
        stmt = stmt.where(TimePeriod.schedule_id == schedule_id)
    stmt = stmt.order_by(TimePeriod.start_time, TimePeriod.name)
    result = await db.execute(stmt)
    return [_to_response(p) for p in result.scalars().all()]


async def get_time_period(
    db: AsyncSession,
    tenant_id: UUID,
    period_id: UUID,
) -> Optional[TimePeriodResponse]:
    obj = await _get_period_row(db, tenant_id, period_id)
    return _to_response(obj) if obj else None


async def update_time_period(
    db: AsyncSession,
    tenant_id: UUID,
    period_id: UUID,
    payload: TimePeriodUpdate,
) -> Optional[TimePeriodResponse]:
    obj = await _get_period_row(db, tenant_id, period_id)
    if not obj:
        return None
    start_time = payload.start_time if payload.start_time is not None else obj.start_time
    end_time = payload.end_time if payload.end_time is not None else obj.end_time
    _validate_range(start_time, end_time)
    await academic_years_service.check_year_lock(db, tenant_id, obj.academic_year_id)

    schedule_id = payload.schedule_id if "schedule_id" in payload.model_fields_set else obj.schedule_id
    if schedule_id is not None and schedule_id != obj.schedule_id:
        await _check_schedule_in_year(db, tenant_id, obj.academic_year_id, schedule_id)
    await validate_time_overlap(
        db, tenant_id, obj.academic_year_id, schedule_id, start_time, end_time, exclude_period_id=obj.id
    )
    name = payload.name.strip() if payload.name is not None else obj.name
    if name != obj.name or schedule_id != obj.schedule_id:
        await _ensure_unique_name(db, tenant_id, obj.academic_year_id, schedule_id, name, exclude_period_id=obj.id)

    obj.name = name
    obj.start_time = start_time
    obj.end_time = end_time
    obj.schedule_id = schedule_id
    if payload.period_type is not None:
        obj.period_type = payload.period_type.value
    if payload.days is not None:
        obj.days = [d.value for d in payload.days]
        await sync_time_slots(db, obj, payload.days)
    await db.commit()
    await db.refresh(obj)
    return _to_response(obj)


async def delete_time_period(
    db: AsyncSession,
    tenant_id: UUID,
    period_id: UUID,
) -> bool:
    obj = await _get_period_row(db, tenant_id, period_id)
    if not obj:
        return False
    await academic_years_service.check_year_lock(db, tenant_id, obj.academic_year_id)
    booked = await db.scalar(
        select(func.count(TimetableEntry.id)).where(
            TimetableEntry.tenant_id == tenant_id,
            TimetableEntry.period_id == obj.id,
        )
    )
    if booked:
        raise ConflictError(
            f'Cannot delete period "{obj.name}": {booked} timetable entries are booked in it. '
            "Remove or move them first.",
            conflict_type="IN_USE",
        )
    await db.execute(delete(TimeSlot).where(TimeSlot.period_id == obj.id))
    await db.delete(obj)
    await db.commit()
    logger.info("Deleted time period %s", period_id)
    return True


async def copy_timetable_structure(
    db: AsyncSession,
    tenant_id: UUID,
    from_academic_year_id: UUID,
    to_academic_year_id: UUID,
) -> CopyStructureResponse:
    """Copy schedules, periods and slots from one year into another in a single transaction.

    Entries are never copied. The target must have no periods yet; target schedules with the
    same name are reused, and a copied default schedule only stays default if the target has none.
    """
    if from_academic_year_id == to_academic_year_id:
        raise ValidationError(
            "Source and target academic year must be different",
            field="from_academic_year_id",
        )
    await academic_years_service.check_year_lock(db, tenant_id, to_academic_year_id)
    source_year = await academic_years_service.get_academic_year(db, tenant_id, from_academic_year_id)
    if not source_year:
        raise NotFoundError("Source academic year not found. Ensure the year exists and belongs to your school.")

    result = await db.execute(
        select(TimePeriod)
        .where(
            TimePeriod.tenant_id == tenant_id,
            TimePeriod.academic_year_id == from_academic_year_id,
        )
        .order_by(TimePeriod.start_time)
    )
    source_periods = result.scalars().all()
    if not source_periods:
        raise NotFoundError("No periods found in the source academic year.")

    existing = await db.scalar(
        select(func.count(TimePeriod.id)).where(
            TimePeriod.tenant_id == tenant_id,
            TimePeriod.academic_year_id == to_academic_year_id,
        )
    )
    if existing:
        raise ConflictError(
            f"Target academic year already has {existing} periods configured",
            conflict_type="DUPLICATE",
        )

    result = await db.execute(
        select(Schedule).where(
            Schedule.tenant_id == tenant_id,
            Schedule.academic_year_id == from_academic_year_id,
        )
    )
    source_schedules = result.scalars().all()
    result = await db.execute(
        select(Schedule).where(
            Schedule.tenant_id == tenant_id,
            Schedule.academic_year_id == to_academic_year_id,
        )
    )
    target_by_name = {s.name: s for s in result.scalars().all()}
    has_default = any(s.is_default for s in target_by_name.values())

    schedules_copied = 0
    slots_copied = 0
    schedule_map = {}
    try:
        for source in source_schedules:
            target = target_by_name.get(source.name)
            if target is None:
                target = Schedule(
                    tenant_id=tenant_id,
                    academic_year_id=to_academic_year_id,
                    name=source.name,
                    description=source.description,
                    is_default=source.is_default and not has_default,
                    is_active=source.is_active,
                )
                db.add(target)
                await db.flush()
                has_default = has_default or target.is_default
                schedules_copied += 1
            schedule_map[source.id] = target.id

        for period in source_periods:
            target_schedule_id = schedule_map.get(period.schedule_id) if period.schedule_id else None
            _, slot_count = await clone_period(db, period, to_academic_year_id, target_schedule_id)
            slots_copied += slot_count
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning(
            "Structure copy %s -> %s hit a constraint violation; rolled back",
            from_academic_year_id,
            to_academic_year_id,
        )
        raise ConflictError("Copying the timetable structure failed; nothing was copied", conflict_type="DUPLICATE")
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Copied %d periods, %d slots, %d schedules from year %s to %s",
        len(source_periods),
        slots_copied,
        schedules_copied,
        from_academic_year_id,
        to_academic_year_id,
    )
    return CopyStructureResponse(
        message=f"Successfully copied {len(source_periods)} periods and structure.",
        schedules_copied=schedules_copied,
        periods_copied=len(source_periods),
        slots_copied=slots_copied,
    )
