"""Bell-structure periods and their per-weekday activation (time slots).

A TimePeriod is a named HH:MM range in one schedule bucket (schedule_id may be NULL).
A TimeSlot says "this period runs on this weekday"; entries can only be booked where a slot exists.
Slots are regenerated wholesale whenever the period's days change.
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


class TimePeriod(Base):
    __tablename__ = "time_periods"
    __table_args__ = {"schema": "school"}

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False)
    academic_year_id = Column(
        UUID(as_uuid=True),
        ForeignKey("core.academic_years.id", ondelete="RESTRICT"),
        nullable=False,
    )
    schedule_id = Column(UUID(as_uuid=True), ForeignKey("school.schedules.id", ondelete="RESTRICT"), nullable=True)
    name = Column(String(100), nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM, zero padded
    end_time = Column(String(5), nullable=False)
    period_type = Column(String(20), nullable=False, default="TEACHING")  # TEACHING | BREAK
    days = Column(JSON, nullable=False, default=list)  # ["MONDAY", ...]
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    schedule = relationship("Schedule", back_populates="time_periods")
    time_slots = relationship(
        "TimeSlot",
        back_populates="period",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class TimeSlot(Base):
    __tablename__ = "time_slots"
    __table_args__ = (
        UniqueConstraint("period_id", "day", name="uq_time_slot_period_day"),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False)
    academic_year_id = Column(
        UUID(as_uuid=True),
        ForeignKey("core.academic_years.id", ondelete="RESTRICT"),
        nullable=False,
    )
    period_id = Column(UUID(as_uuid=True), ForeignKey("school.time_periods.id", ondelete="CASCADE"), nullable=False)
    day = Column(String(10), nullable=False)  # MONDAY .. SUNDAY

    period = relationship("TimePeriod", back_populates="time_slots")
