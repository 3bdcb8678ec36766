from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ScheduleCreate(BaseModel):
    """Create a bell schedule. name must be unique per academic year."""

    name: str = Field(..., min_length=1, max_length=100, description="e.g. Regular, Exam Day")
    description: Optional[str] = None
    is_default: bool = Field(False, description="If true, every other schedule of the year stops being default")
    is_active: bool = True


class ScheduleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None


class ScheduleDuplicateRequest(BaseModel):
    new_name: str = Field(..., min_length=1, max_length=100)


class ScheduleResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    academic_year_id: UUID
    name: str
    description: Optional[str] = None
    is_default: bool
    is_active: bool
    period_count: int = 0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
