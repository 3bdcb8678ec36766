from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user, require_writable_academic_year
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import LockEntryRequest, MoveEntryRequest, SwapEntriesRequest, WorkflowResult
from . import workflow_service

router = APIRouter(prefix="/api/v1/timetables/workflow", tags=["timetable-workflow"])


@router.post(
    "/move",
    response_model=WorkflowResult,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def move_entry(
    payload: MoveEntryRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await workflow_service.move_entry(
            db, current_user.tenant_id, payload.entry_id, payload.target_day, payload.target_period_id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/swap",
    response_model=WorkflowResult,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def swap_entries(
    payload: SwapEntriesRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await workflow_service.swap_entries(
            db, current_user.tenant_id, payload.entry_id_1, payload.entry_id_2, swap_rooms=payload.swap_rooms
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch(
    "/entries/{entry_id}/lock",
    response_model=WorkflowResult,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def lock_entry(
    entry_id: UUID,
    payload: LockEntryRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await workflow_service.lock_entry(db, current_user.tenant_id, entry_id, payload.is_locked)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/sections/{section_id}/publish",
    response_model=WorkflowResult,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def publish_timetable(
    section_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await workflow_service.publish_timetable(
            db, current_user.tenant_id, current_user.academic_year_id, section_id, published_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/sections/{section_id}/lock",
    response_model=WorkflowResult,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def lock_timetable(
    section_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await workflow_service.lock_timetable(
            db, current_user.tenant_id, current_user.academic_year_id, section_id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/sections/{section_id}/unlock",
    response_model=WorkflowResult,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def unlock_timetable(
    section_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await workflow_service.unlock_timetable(
            db, current_user.tenant_id, current_user.academic_year_id, section_id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/publish-all",
    response_model=WorkflowResult,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def publish_all_timetable(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await workflow_service.publish_all_timetable(
            db, current_user.tenant_id, current_user.academic_year_id, published_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
