import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID

from app.db.session import Base


class AcademicYear(Base):
    """
    One school year of a tenant. Every period, slot and entry belongs to exactly one year.

    The engine never changes a year; it only reads status. PLANNED and ACTIVE accept
    timetable changes, CLOSED and ARCHIVED are read-only (see check_year_lock).
    """

    __tablename__ = "academic_years"
    __table_args__ = {"schema": "core"}

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(50), nullable=False)  # "2025-2026", used in lock messages
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_current = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="ACTIVE")
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
