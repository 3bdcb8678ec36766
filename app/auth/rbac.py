from fastapi import Depends, HTTPException, status

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser

# Roles that see and change every module of their tenant without a permissions row.
UNRESTRICTED_ROLES = frozenset({"SUPER_ADMIN", "PLATFORM_ADMIN"})


def has_permission(user: CurrentUser, module: str, action: str) -> bool:
    if user.role in UNRESTRICTED_ROLES:
        return True
    return bool(user.permissions.get(module, {}).get(action, False))


def check_permission(module: str, action: str):
    """
    Dependency factory: 403 unless the caller's role grants `action` on `module`.

    Every timetable route uses module "timetable" with create/read/update/delete.
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> None:
        if not has_permission(current_user, module, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )

    return _checker
