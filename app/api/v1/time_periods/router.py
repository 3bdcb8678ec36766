from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user, require_academic_year, require_writable_academic_year
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    CopyStructureRequest,
    CopyStructureResponse,
    TimePeriodCreate,
    TimePeriodResponse,
    TimePeriodUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/timetables", tags=["time-periods"])


@router.post(
    "/periods",
    response_model=TimePeriodResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("timetable", "create")), Depends(require_writable_academic_year)],
)
async def create_time_period(
    payload: TimePeriodCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.create_time_period(
            db, current_user.tenant_id, current_user.academic_year_id, payload
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/periods",
    response_model=List[TimePeriodResponse],
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def list_time_periods(
    schedule_id: Optional[UUID] = Query(None),
    academic_year_id: UUID = Depends(require_academic_year),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_time_periods(db, current_user.tenant_id, academic_year_id, schedule_id=schedule_id)


@router.get(
    "/periods/{period_id}",
    response_model=TimePeriodResponse,
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def get_time_period(
    period_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    obj = await service.get_time_period(db, current_user.tenant_id, period_id)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Time period not found")
    return obj


@router.put(
    "/periods/{period_id}",
    response_model=TimePeriodResponse,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def update_time_period(
    period_id: UUID,
    payload: TimePeriodUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        obj = await service.update_time_period(db, current_user.tenant_id, period_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Time period not found")
    return obj


@router.delete(
    "/periods/{period_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("timetable", "delete")), Depends(require_writable_academic_year)],
)
async def delete_time_period(
    period_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        deleted = await service.delete_time_period(db, current_user.tenant_id, period_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Time period not found")


@router.post(
    "/copy-from-year",
    response_model=CopyStructureResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("timetable", "create")), Depends(require_writable_academic_year)],
)
async def copy_timetable_structure(
    payload: CopyStructureRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Copy schedules, periods and slots (never entries) from another year into the session's year."""
    to_year = payload.to_academic_year_id or current_user.academic_year_id
    try:
        return await service.copy_timetable_structure(
            db, current_user.tenant_id, payload.from_academic_year_id, to_year
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
