"""Timetable entries (source of truth). One booking of subject+teacher(+room) into a section's slot on a weekday.

The three unique constraints below are the authoritative double-booking guard: per (tenant, year, day, period)
at most one entry per teacher, one per section, and one per room. NULL room_id never collides.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.core.enums import INITIAL_TIMETABLE_STATUS
from app.db.session import Base


class TimetableEntry(Base):
    __tablename__ = "timetable_entries"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "academic_year_id", "day", "period_id", "teacher_id",
            name="uq_timetable_entry_teacher_slot",
        ),
        UniqueConstraint(
            "tenant_id", "academic_year_id", "day", "period_id", "section_id",
            name="uq_timetable_entry_section_slot",
        ),
        UniqueConstraint(
            "tenant_id", "academic_year_id", "day", "period_id", "room_id",
            name="uq_timetable_entry_room_slot",
        ),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False)
    academic_year_id = Column(
        UUID(as_uuid=True),
        ForeignKey("core.academic_years.id", ondelete="RESTRICT"),
        nullable=False,
    )
    class_id = Column(UUID(as_uuid=True), ForeignKey("core.classes.id"), nullable=False)
    section_id = Column(UUID(as_uuid=True), ForeignKey("core.sections.id"), nullable=False)
    subject_id = Column(UUID(as_uuid=True), ForeignKey("school.subjects.id", ondelete="CASCADE"), nullable=False)
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("auth.users.id", ondelete="RESTRICT"), nullable=False)
    # NULL only while a swap is in flight: a parked row sits outside every slot constraint.
    period_id = Column(UUID(as_uuid=True), ForeignKey("school.time_periods.id", ondelete="RESTRICT"), nullable=True)
    day = Column(String(10), nullable=False)  # MONDAY .. SUNDAY
    room_id = Column(UUID(as_uuid=True), ForeignKey("school.rooms.id", ondelete="SET NULL"), nullable=True)
    is_locked = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default=INITIAL_TIMETABLE_STATUS.value)  # DRAFT | PUBLISHED | LOCKED
    published_at = Column(DateTime(timezone=True), nullable=True)
    published_by = Column(UUID(as_uuid=True), ForeignKey("auth.users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    school_class = relationship("SchoolClass", foreign_keys=[class_id])
    section = relationship("Section", foreign_keys=[section_id])
    subject = relationship("SchoolSubject")
    teacher = relationship("User", foreign_keys=[teacher_id])
    period = relationship("TimePeriod")
    room = relationship("Room")


class TimetableOverride(Base):
    """Date-specific cancellation or substitution of a regular entry. Written by the daily-view side, never by the engine."""

    __tablename__ = "timetable_overrides"
    __table_args__ = (
        UniqueConstraint("entry_id", "override_date", name="uq_timetable_override_entry_date"),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False)
    entry_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.timetable_entries.id", ondelete="CASCADE"),
        nullable=False,
    )
    override_date = Column(Date, nullable=False)
    override_type = Column(String(20), nullable=False)  # CANCELLED | SUBSTITUTION
    substitute_teacher_id = Column(UUID(as_uuid=True), ForeignKey("auth.users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    entry = relationship("TimetableEntry", foreign_keys=[entry_id])
