from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.core.enums import WEEKDAY_ORDER, DayOfWeek, PeriodType
from app.core.timeutils import normalize_time_24


def _unique_days(days: Optional[List[DayOfWeek]]) -> Optional[List[DayOfWeek]]:
    """Drop repeats and return days in weekday order."""
    if days is None:
        return None
    return sorted({DayOfWeek(d) for d in days}, key=WEEKDAY_ORDER.__getitem__)


class TimePeriodCreate(BaseModel):
    """Create a bell period. schedule_id omitted = the year's unscheduled bucket."""

    schedule_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=100, description="e.g. Period 1, Lunch")
    start_time: str = Field(..., description="24-hour format, e.g. 09:00")
    end_time: str = Field(..., description="24-hour format, e.g. 09:45")
    period_type: PeriodType = PeriodType.TEACHING
    days: List[DayOfWeek] = Field(default_factory=list, description="Weekdays this period runs on")

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, v) -> str:
        return normalize_time_24(v)

    @field_validator("days")
    @classmethod
    def dedupe_days(cls, v: List[DayOfWeek]) -> List[DayOfWeek]:
        return _unique_days(v)


class TimePeriodUpdate(BaseModel):
    """Partial update. Send schedule_id: null explicitly to move a period into the unscheduled bucket."""

    schedule_id: Optional[UUID] = None
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    start_time: Optional[str] = Field(None, description="24-hour format, e.g. 09:00")
    end_time: Optional[str] = Field(None, description="24-hour format, e.g. 09:45")
    period_type: Optional[PeriodType] = None
    days: Optional[List[DayOfWeek]] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, v) -> Optional[str]:
        if v is None:
            return None
        return normalize_time_24(v)

    @field_validator("days")
    @classmethod
    def dedupe_days(cls, v: Optional[List[DayOfWeek]]) -> Optional[List[DayOfWeek]]:
        return _unique_days(v)


class TimePeriodResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    academic_year_id: UUID
    schedule_id: Optional[UUID] = None
    name: str
    start_time: str
    end_time: str
    period_type: PeriodType
    days: List[DayOfWeek]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CopyStructureRequest(BaseModel):
    from_academic_year_id: UUID
    to_academic_year_id: Optional[UUID] = Field(
        None, description="Defaults to the academic year of the current session"
    )


class CopyStructureResponse(BaseModel):
    message: str
    schedules_copied: int
    periods_copied: int
    slots_copied: int
