"""Per-weekday working/holiday pattern for an academic year. A missing row means the day is a working day."""

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from app.db.session import Base


class WorkingPattern(Base):
    __tablename__ = "working_patterns"
    __table_args__ = (
        UniqueConstraint("tenant_id", "academic_year_id", "day_of_week", name="uq_working_pattern_tenant_ay_day"),
        {"schema": "core"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False)
    academic_year_id = Column(
        UUID(as_uuid=True),
        ForeignKey("core.academic_years.id", ondelete="CASCADE"),
        nullable=False,
    )
    day_of_week = Column(String(10), nullable=False)  # MONDAY .. SUNDAY
    is_working = Column(Boolean, nullable=False, default=True)
