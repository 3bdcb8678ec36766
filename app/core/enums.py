from enum import Enum
from typing import Dict, FrozenSet


class DayOfWeek(str, Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"


WEEKDAY_ORDER = {day: index for index, day in enumerate(DayOfWeek)}


class PeriodType(str, Enum):
    TEACHING = "TEACHING"
    BREAK = "BREAK"


class AcademicYearStatus(str, Enum):
    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    ARCHIVED = "ARCHIVED"


LOCKED_ACADEMIC_YEAR_STATUSES = frozenset({AcademicYearStatus.CLOSED.value, AcademicYearStatus.ARCHIVED.value})


class TimetableStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    LOCKED = "LOCKED"


INITIAL_TIMETABLE_STATUS = TimetableStatus.DRAFT

# DRAFT -> PUBLISHED -> LOCKED; unlock (LOCKED -> PUBLISHED) is the only way back.
# Bulk lock may take a DRAFT entry straight to LOCKED. Re-publishing refreshes the stamp.
TIMETABLE_STATUS_TRANSITIONS: Dict[TimetableStatus, FrozenSet[TimetableStatus]] = {
    TimetableStatus.DRAFT: frozenset({TimetableStatus.PUBLISHED, TimetableStatus.LOCKED}),
    TimetableStatus.PUBLISHED: frozenset({TimetableStatus.PUBLISHED, TimetableStatus.LOCKED}),
    TimetableStatus.LOCKED: frozenset({TimetableStatus.PUBLISHED}),
}


def statuses_leading_to(target: TimetableStatus, exclude: FrozenSet[TimetableStatus] = frozenset()) -> list:
    """Source statuses that may move to target, as plain strings for SQL IN filters."""
    return [
        source.value
        for source, targets in TIMETABLE_STATUS_TRANSITIONS.items()
        if target in targets and source not in exclude
    ]
