from typing import Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(ServiceError):
    """Malformed input (bad time, start >= end). Raised before any lock or conflict check."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)
        self.field = field


class LockedError(ServiceError):
    """Academic year CLOSED/ARCHIVED, or entry locked."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class NotFoundError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ConfigurationError(ServiceError):
    """Bell structure does not allow the operation (no slot for the day, unknown schedule, holiday)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class ConflictError(ServiceError):
    """A resource is already taken. conflict_type is TEACHER, SECTION, ROOM, OVERLAP or DUPLICATE."""

    def __init__(self, message: str, conflict_type: Optional[str] = None) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)
        self.conflict_type = conflict_type
