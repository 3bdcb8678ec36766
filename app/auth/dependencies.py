"""Request identity for the timetable API.

Tokens are issued by the school's auth service. This module only verifies them and
resolves the caller's tenant, role permissions and the academic year the session works in.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import Role, User
from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.enums import LOCKED_ACADEMIC_YEAR_STATUSES
from app.db.session import get_db

bearer_scheme = HTTPBearer(auto_error=False)

CLOSED_ACADEMIC_YEAR_MESSAGE = "This academic year is closed and cannot be modified."


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _as_uuid(value: Any) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def decode_access_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise _unauthorized()


async def _role_permissions(db: AsyncSession, tenant_id: UUID, role_name: str) -> Dict[str, Dict[str, bool]]:
    result = await db.execute(
        select(Role.permissions).where(Role.tenant_id == tenant_id, Role.name == role_name)
    )
    return result.scalar_one_or_none() or {}


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the bearer token into a CurrentUser. Any missing or foreign claim is a 401."""
    if credentials is None:
        raise _unauthorized()
    claims = decode_access_token(credentials.credentials)

    user_id = _as_uuid(claims.get("user_id") or claims.get("sub"))
    tenant_id = _as_uuid(claims.get("tenant_id"))
    role_name = claims.get("role")
    if user_id is None or tenant_id is None or not role_name:
        raise _unauthorized()

    result = await db.execute(select(User).where(User.id == user_id, User.tenant_id == tenant_id))
    user = result.scalar_one_or_none()
    if not user or user.status != "ACTIVE":
        raise _unauthorized()

    return CurrentUser(
        id=user.id,
        tenant_id=user.tenant_id,
        role=user.role,
        permissions=await _role_permissions(db, tenant_id, role_name),
        academic_year_id=_as_uuid(claims.get("academic_year_id")),
        academic_year_status=claims.get("academic_year_status"),
    )


async def require_writable_academic_year(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Dependency: block CREATE/UPDATE/DELETE when the token's academic year is CLOSED/ARCHIVED or missing.
    Services re-check the year row itself; this only short-circuits stale or read-only sessions.
    """
    if current_user.academic_year_status in LOCKED_ACADEMIC_YEAR_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=CLOSED_ACADEMIC_YEAR_MESSAGE,
        )
    if current_user.academic_year_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No active academic year. Please contact administrator.",
        )
    return current_user


async def require_academic_year(
    current_user: CurrentUser = Depends(get_current_user),
) -> UUID:
    """Dependency: the academic year timetable reads are scoped to (from the token)."""
    if current_user.academic_year_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No academic year in session. Select an academic year first.",
        )
    return current_user.academic_year_id
