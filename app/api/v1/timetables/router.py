from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user, require_academic_year, require_writable_academic_year
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.enums import DayOfWeek
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    AvailabilityCheckRequest,
    AvailabilityResponse,
    FreeRoom,
    FreeTeacher,
    SubjectDistribution,
    TeacherWorkload,
    TimetableAnalyticsResponse,
    TimetableContextResponse,
    TimetableEntryCreate,
    TimetableEntryResponse,
)
from . import analytics_service, service

router = APIRouter(prefix="/api/v1/timetables", tags=["timetables"])


@router.post(
    "/entries",
    response_model=TimetableEntryResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("timetable", "create")), Depends(require_writable_academic_year)],
)
async def create_timetable_entry(
    payload: TimetableEntryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.create_entry(db, current_user.tenant_id, current_user.academic_year_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/check-availability",
    response_model=AvailabilityResponse,
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def check_availability(
    payload: AvailabilityCheckRequest,
    academic_year_id: UUID = Depends(require_academic_year),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Dry run of a booking: OK, or CONFLICT with the same message create would raise."""
    return await service.check_availability(db, current_user.tenant_id, academic_year_id, payload)


@router.get(
    "/entries/section/{section_id}",
    response_model=List[TimetableEntryResponse],
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def list_section_entries(
    section_id: UUID,
    academic_year_id: UUID = Depends(require_academic_year),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_entries(db, current_user.tenant_id, academic_year_id, section_id=section_id)


@router.get(
    "/entries/teacher/{teacher_id}",
    response_model=List[TimetableEntryResponse],
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def list_teacher_entries(
    teacher_id: UUID,
    academic_year_id: UUID = Depends(require_academic_year),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_entries(db, current_user.tenant_id, academic_year_id, teacher_id=teacher_id)


@router.get(
    "/entries/room/{room_id}",
    response_model=List[TimetableEntryResponse],
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def list_room_entries(
    room_id: UUID,
    academic_year_id: UUID = Depends(require_academic_year),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_entries(db, current_user.tenant_id, academic_year_id, room_id=room_id)


@router.get(
    "/entries/{entry_id}",
    response_model=TimetableEntryResponse,
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def get_timetable_entry(
    entry_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    obj = await service.get_entry(db, current_user.tenant_id, entry_id)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Timetable entry not found")
    return obj


@router.delete(
    "/entries/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("timetable", "delete")), Depends(require_writable_academic_year)],
)
async def delete_timetable_entry(
    entry_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        deleted = await service.delete_entry(db, current_user.tenant_id, entry_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Timetable entry not found")


@router.get(
    "/context/{class_id}/{section_id}",
    response_model=TimetableContextResponse,
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def get_timetable_context(
    class_id: UUID,
    section_id: UUID,
    academic_year_id: UUID = Depends(require_academic_year),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_timetable_context(
            db, current_user.tenant_id, academic_year_id, class_id, section_id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/find-free-teachers",
    response_model=List[FreeTeacher],
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def find_free_teachers(
    day: DayOfWeek = Query(...),
    period_id: UUID = Query(...),
    subject_id: Optional[UUID] = Query(None, description="Rank specialists of this subject first"),
    academic_year_id: UUID = Depends(require_academic_year),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await analytics_service.find_free_teachers(
        db, current_user.tenant_id, academic_year_id, day, period_id, subject_id=subject_id
    )


@router.get(
    "/find-free-rooms",
    response_model=List[FreeRoom],
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def find_free_rooms(
    day: DayOfWeek = Query(...),
    period_id: UUID = Query(...),
    academic_year_id: UUID = Depends(require_academic_year),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await analytics_service.find_free_rooms(db, current_user.tenant_id, academic_year_id, day, period_id)


@router.get(
    "/analytics",
    response_model=TimetableAnalyticsResponse,
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def get_timetable_analytics(
    academic_year_id: UUID = Depends(require_academic_year),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await analytics_service.get_analytics(db, current_user.tenant_id, academic_year_id)


@router.get(
    "/analytics/teacher-workload",
    response_model=List[TeacherWorkload],
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def get_teacher_workload(
    academic_year_id: UUID = Depends(require_academic_year),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await analytics_service.get_teacher_workload(db, current_user.tenant_id, academic_year_id)


@router.get(
    "/analytics/class-distribution/{class_id}/{section_id}",
    response_model=List[SubjectDistribution],
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def get_class_subject_distribution(
    class_id: UUID,
    section_id: UUID,
    academic_year_id: UUID = Depends(require_academic_year),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await analytics_service.get_class_subject_distribution(
        db, current_user.tenant_id, academic_year_id, class_id, section_id
    )
