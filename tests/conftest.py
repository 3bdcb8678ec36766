import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from dataclasses import dataclass
from datetime import date
from typing import AsyncGenerator, Dict, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.v1.timetables import service as timetables_service
from app.api.v1.timetables.schemas import TimetableEntryCreate
from app.auth.models import Role, User
from app.auth.security import create_access_token
from app.core.models import (
    AcademicYear,
    Room,
    SchoolClass,
    SchoolSubject,
    Section,
    Tenant,
    TimePeriod,
    TimeSlot,
)
from app.db.session import Base, get_db
from app.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
WEEKDAYS = ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY"]


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test. SQLite has no schemas, so core/school/auth map to the default one."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        execution_options={"schema_translate_map": {"core": None, "school": None, "auth": None}},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.clear()
    await engine.dispose()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@dataclass
class School:
    tenant: Tenant
    year: AcademicYear
    next_year: AcademicYear
    school_class: SchoolClass
    section_a: Section
    section_b: Section
    math: SchoolSubject
    science: SchoolSubject
    teacher_1: User
    teacher_2: User
    teacher_3: User
    admin: User
    room_1: Room
    room_2: Room
    period_1: TimePeriod
    period_2: TimePeriod
    lunch: TimePeriod


async def add_period(
    db: AsyncSession,
    tenant_id,
    academic_year_id,
    name: str,
    start_time: str,
    end_time: str,
    days: List[str],
    period_type: str = "TEACHING",
    schedule_id=None,
) -> TimePeriod:
    period = TimePeriod(
        tenant_id=tenant_id,
        academic_year_id=academic_year_id,
        schedule_id=schedule_id,
        name=name,
        start_time=start_time,
        end_time=end_time,
        period_type=period_type,
        days=list(days),
    )
    db.add(period)
    await db.flush()
    for day in days:
        db.add(TimeSlot(tenant_id=tenant_id, academic_year_id=academic_year_id, period_id=period.id, day=day))
    await db.flush()
    return period


@pytest.fixture()
async def school(db_session: AsyncSession) -> School:
    """One tenant with an ACTIVE year, a class with two sections, three teachers, two rooms and three periods."""
    tenant = Tenant(organization_name="Greenfield School")
    db_session.add(tenant)
    await db_session.flush()

    year = AcademicYear(
        tenant_id=tenant.id,
        name="2025-2026",
        start_date=date(2025, 6, 1),
        end_date=date(2026, 3, 31),
        is_current=True,
        status="ACTIVE",
    )
    next_year = AcademicYear(
        tenant_id=tenant.id,
        name="2026-2027",
        start_date=date(2026, 6, 1),
        end_date=date(2027, 3, 31),
        status="PLANNED",
    )
    db_session.add_all([year, next_year])
    await db_session.flush()

    school_class = SchoolClass(tenant_id=tenant.id, name="Grade 5", display_order=5)
    db_session.add(school_class)
    await db_session.flush()
    section_a = Section(tenant_id=tenant.id, class_id=school_class.id, academic_year_id=year.id, name="A")
    section_b = Section(tenant_id=tenant.id, class_id=school_class.id, academic_year_id=year.id, name="B")
    math = SchoolSubject(tenant_id=tenant.id, name="Mathematics", code="MATH", color="#4f46e5")
    science = SchoolSubject(tenant_id=tenant.id, name="Science", code="SCI")
    teacher_1 = User(tenant_id=tenant.id, full_name="Asha Rao", email="asha@example.com", role="TEACHER", user_type="employee")
    teacher_2 = User(tenant_id=tenant.id, full_name="Bilal Khan", email="bilal@example.com", role="TEACHER", user_type="employee")
    teacher_3 = User(tenant_id=tenant.id, full_name="Chen Li", email="chen@example.com", role="TEACHER", user_type="employee")
    admin = User(tenant_id=tenant.id, full_name="Principal", email="principal@example.com", role="SUPER_ADMIN")
    room_1 = Room(tenant_id=tenant.id, name="Room 101", capacity=40)
    room_2 = Room(tenant_id=tenant.id, name="Science Lab", room_type="LAB", capacity=30)
    db_session.add_all(
        [section_a, section_b, math, science, teacher_1, teacher_2, teacher_3, admin, room_1, room_2]
    )
    await db_session.flush()

    period_1 = await add_period(db_session, tenant.id, year.id, "Period 1", "09:00", "09:45", WEEKDAYS)
    period_2 = await add_period(db_session, tenant.id, year.id, "Period 2", "09:45", "10:30", WEEKDAYS)
    lunch = await add_period(db_session, tenant.id, year.id, "Lunch", "10:30", "11:00", WEEKDAYS, period_type="BREAK")
    await db_session.commit()

    return School(
        tenant=tenant,
        year=year,
        next_year=next_year,
        school_class=school_class,
        section_a=section_a,
        section_b=section_b,
        math=math,
        science=science,
        teacher_1=teacher_1,
        teacher_2=teacher_2,
        teacher_3=teacher_3,
        admin=admin,
        room_1=room_1,
        room_2=room_2,
        period_1=period_1,
        period_2=period_2,
        lunch=lunch,
    )


def make_token_headers(
    user: User,
    academic_year: Optional[AcademicYear],
    role: Optional[str] = None,
    academic_year_status: Optional[str] = None,
) -> Dict[str, str]:
    subject = {
        "user_id": str(user.id),
        "tenant_id": str(user.tenant_id),
        "role": role or user.role,
    }
    if academic_year is not None:
        subject["academic_year_id"] = str(academic_year.id)
        subject["academic_year_status"] = academic_year_status or academic_year.status
    token = create_access_token(subject=subject)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_headers(school: School) -> Dict[str, str]:
    """SUPER_ADMIN token scoped to the ACTIVE year."""
    return make_token_headers(school.admin, school.year)


@pytest.fixture()
async def viewer_headers(db_session: AsyncSession, school: School) -> Dict[str, str]:
    """A user whose role may only read timetables."""
    db_session.add(
        Role(
            tenant_id=school.tenant.id,
            name="VIEWER",
            permissions={"timetable": {"read": True, "create": False, "update": False, "delete": False}},
        )
    )
    viewer = User(tenant_id=school.tenant.id, full_name="Parent", email="parent@example.com", role="VIEWER")
    db_session.add(viewer)
    await db_session.commit()
    return make_token_headers(viewer, school.year)


@pytest.fixture()
def book(db_session: AsyncSession, school: School):
    """Book an entry through the ledger service. Defaults: Grade 5-A, Mathematics, Monday."""

    async def _book(teacher, period, day="MONDAY", section=None, subject=None, room=None):
        section = section or school.section_a
        return await timetables_service.create_entry(
            db_session,
            school.tenant.id,
            school.year.id,
            TimetableEntryCreate(
                class_id=section.class_id,
                section_id=section.id,
                subject_id=(subject or school.math).id,
                teacher_id=teacher.id,
                period_id=period.id,
                day=day,
                room_id=room.id if room else None,
            ),
        )

    return _book
