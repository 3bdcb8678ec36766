from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user, require_academic_year, require_writable_academic_year
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import ScheduleCreate, ScheduleDuplicateRequest, ScheduleResponse, ScheduleUpdate
from . import service

router = APIRouter(prefix="/api/v1/schedules", tags=["schedules"])


@router.post(
    "",
    response_model=ScheduleResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("timetable", "create")), Depends(require_writable_academic_year)],
)
async def create_schedule(
    payload: ScheduleCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.create_schedule(db, current_user.tenant_id, current_user.academic_year_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[ScheduleResponse],
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def list_schedules(
    academic_year_id: UUID = Depends(require_academic_year),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_schedules(db, current_user.tenant_id, academic_year_id)


@router.get(
    "/{schedule_id}",
    response_model=ScheduleResponse,
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def get_schedule(
    schedule_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    obj = await service.get_schedule(db, current_user.tenant_id, schedule_id)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule not found")
    return obj


@router.put(
    "/{schedule_id}",
    response_model=ScheduleResponse,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def update_schedule(
    schedule_id: UUID,
    payload: ScheduleUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        obj = await service.update_schedule(db, current_user.tenant_id, schedule_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule not found")
    return obj


@router.delete(
    "/{schedule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("timetable", "delete")), Depends(require_writable_academic_year)],
)
async def delete_schedule(
    schedule_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        deleted = await service.delete_schedule(db, current_user.tenant_id, schedule_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule not found")


@router.post(
    "/{schedule_id}/set-default",
    response_model=ScheduleResponse,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def set_default_schedule(
    schedule_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.set_default_schedule(
            db, current_user.tenant_id, current_user.academic_year_id, schedule_id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{schedule_id}/duplicate",
    response_model=ScheduleResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("timetable", "create")), Depends(require_writable_academic_year)],
)
async def duplicate_schedule(
    schedule_id: UUID,
    payload: ScheduleDuplicateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.duplicate_schedule(db, current_user.tenant_id, schedule_id, payload.new_name)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
