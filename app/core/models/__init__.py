from app.auth.models import Role, User
from app.core.models.academic_year import AcademicYear
from app.core.models.class_model import SchoolClass
from app.core.models.section_model import Section
from app.core.models.school_subject import SchoolSubject
from app.core.models.teacher_subject_assignment import TeacherSubjectAssignment
from app.core.models.teacher_preferred_subject import TeacherPreferredSubject
from app.core.models.room import Room
from app.core.models.working_pattern import WorkingPattern
from app.core.models.schedule import Schedule
from app.core.models.time_period import TimePeriod, TimeSlot
from app.core.models.timetable import TimetableEntry, TimetableOverride
from app.core.models.tenant import Tenant

__all__ = [
    "AcademicYear",
    "SchoolClass",
    "Section",
    "SchoolSubject",
    "TeacherSubjectAssignment",
    "TeacherPreferredSubject",
    "Room",
    "WorkingPattern",
    "Schedule",
    "TimePeriod",
    "TimeSlot",
    "TimetableEntry",
    "TimetableOverride",
    "Tenant",
    "User",
    "Role",
]
