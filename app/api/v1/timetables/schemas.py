from datetime import datetime
from typing import Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import DayOfWeek, PeriodType, TimetableStatus


class TimetableEntryCreate(BaseModel):
    """Book a subject+teacher(+room) into a section's (day, period) slot."""

    class_id: UUID
    section_id: UUID
    subject_id: UUID
    teacher_id: UUID
    period_id: UUID
    day: DayOfWeek
    room_id: Optional[UUID] = None


class AvailabilityCheckRequest(BaseModel):
    """Dry run of a placement. Nothing is written."""

    section_id: UUID
    teacher_id: UUID
    period_id: UUID
    day: DayOfWeek
    room_id: Optional[UUID] = None
    entry_id: Optional[UUID] = Field(None, description="Entry being relocated; it never conflicts with itself")


class AvailabilityResponse(BaseModel):
    status: Literal["OK", "CONFLICT"]
    message: Optional[str] = None
    conflict_type: Optional[str] = None


class TimetableEntryResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    academic_year_id: UUID
    class_id: UUID
    section_id: UUID
    subject_id: UUID
    teacher_id: UUID
    period_id: Optional[UUID] = None
    day: DayOfWeek
    room_id: Optional[UUID] = None
    is_locked: bool
    status: TimetableStatus
    published_at: Optional[datetime] = None
    published_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime
    # Display fields, filled when the related rows were loaded
    class_name: Optional[str] = None
    section_name: Optional[str] = None
    subject_name: Optional[str] = None
    teacher_name: Optional[str] = None
    room_name: Optional[str] = None
    period_name: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    class Config:
        from_attributes = True


class ContextPeriod(BaseModel):
    period_id: UUID
    slot_id: UUID
    name: str
    start_time: str
    end_time: str
    period_type: PeriodType


class SubjectAllocation(BaseModel):
    subject_id: UUID
    subject_name: str
    subject_code: str
    color: Optional[str] = None
    teacher_id: UUID
    teacher_name: str


class RoomOption(BaseModel):
    id: UUID
    name: str
    room_type: str
    capacity: Optional[int] = None

    class Config:
        from_attributes = True


class TimetableContextResponse(BaseModel):
    """Everything the grid editor needs for one class-section."""

    class_id: UUID
    section_id: UUID
    schedule_id: Optional[UUID] = None
    calendar: Dict[DayOfWeek, List[ContextPeriod]]
    entries: List[TimetableEntryResponse]
    allocations: List[SubjectAllocation]
    rooms: List[RoomOption]


# ----- Workflow -----


class MoveEntryRequest(BaseModel):
    entry_id: UUID
    target_day: DayOfWeek
    target_period_id: UUID


class SwapEntriesRequest(BaseModel):
    entry_id_1: UUID
    entry_id_2: UUID
    swap_rooms: Optional[bool] = Field(
        None,
        description="Exchange rooms along with slots. Defaults to the TIMETABLE_SWAP_MOVES_ROOMS setting.",
    )


class LockEntryRequest(BaseModel):
    is_locked: bool


class WorkflowResult(BaseModel):
    message: str
    updated: Optional[int] = None


# ----- Discovery & analytics -----


class FreeTeacher(BaseModel):
    id: UUID
    full_name: str
    email: str
    is_subject_specialist: bool = False


class FreeRoom(BaseModel):
    id: UUID
    name: str
    room_type: str
    capacity: Optional[int] = None

    class Config:
        from_attributes = True


class TeacherWorkload(BaseModel):
    teacher_id: UUID
    teacher_name: str
    total_periods: int
    utilization_rate: Optional[float] = None
    preferred_subjects: List[str] = Field(default_factory=list)


class SubjectDistribution(BaseModel):
    subject_id: UUID
    subject_name: str
    subject_code: Optional[str] = None
    total_periods: int


class RoomUtilization(BaseModel):
    room_id: UUID
    room_name: str
    room_type: str
    capacity: Optional[int] = None
    total_bookings: int
    utilization_rate: float


class SectionCoverage(BaseModel):
    section_id: UUID
    section_name: str
    class_id: UUID
    total_periods: int
    coverage_rate: float


class AnalyticsSummary(BaseModel):
    total_entries: int
    total_periods: int
    teaching_periods: int
    break_periods: int
    working_days: int
    total_teachers: int
    total_subjects: int
    total_classes: int
    total_sections: int
    total_rooms: int
    average_periods_per_teacher: float


class TimetableAnalyticsResponse(BaseModel):
    summary: AnalyticsSummary
    teacher_workload: List[TeacherWorkload]
    subject_distribution: List[SubjectDistribution]
    room_utilization: List[RoomUtilization]
    section_coverage: List[SectionCoverage]
    day_distribution: Dict[DayOfWeek, int]
