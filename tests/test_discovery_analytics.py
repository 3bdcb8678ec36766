import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.timetables import analytics_service
from app.api.v1.timetables.analytics_service import utilization_rate
from app.core.models import Room, TeacherPreferredSubject, WorkingPattern


def test_utilization_rate() -> None:
    assert utilization_rate(2, 2, 5) == 20.0
    assert utilization_rate(1, 3, 5) == 6.67
    assert utilization_rate(4, 0, 5) == 0.0
    assert utilization_rate(4, 2, 0) == 0.0


@pytest.mark.asyncio
async def test_free_teachers_excludes_booked(db_session: AsyncSession, school, book) -> None:
    await book(school.teacher_1, school.period_1)

    teachers = await analytics_service.find_free_teachers(
        db_session, school.tenant.id, school.year.id, "MONDAY", school.period_1.id
    )

    # The admin has no user_type and is never offered as a substitute.
    assert [t.full_name for t in teachers] == ["Bilal Khan", "Chen Li"]
    assert not any(t.is_subject_specialist for t in teachers)


@pytest.mark.asyncio
async def test_free_teachers_ranks_specialists_first(db_session: AsyncSession, school, book) -> None:
    await book(school.teacher_1, school.period_1)
    db_session.add(
        TeacherPreferredSubject(tenant_id=school.tenant.id, teacher_id=school.teacher_3.id, subject_id=school.science.id)
    )
    await db_session.commit()

    teachers = await analytics_service.find_free_teachers(
        db_session, school.tenant.id, school.year.id, "MONDAY", school.period_1.id, subject_id=school.science.id
    )

    assert [(t.full_name, t.is_subject_specialist) for t in teachers] == [("Chen Li", True), ("Bilal Khan", False)]


@pytest.mark.asyncio
async def test_inactive_teachers_are_not_free(db_session: AsyncSession, school) -> None:
    school.teacher_2.status = "INACTIVE"
    await db_session.commit()

    teachers = await analytics_service.find_free_teachers(
        db_session, school.tenant.id, school.year.id, "TUESDAY", school.period_2.id
    )
    assert [t.full_name for t in teachers] == ["Asha Rao", "Chen Li"]


@pytest.mark.asyncio
async def test_free_rooms(db_session: AsyncSession, school, book) -> None:
    await book(school.teacher_1, school.period_1, room=school.room_1)
    db_session.add(Room(tenant_id=school.tenant.id, name="Old Hall", is_active=False))
    await db_session.commit()

    rooms = await analytics_service.find_free_rooms(db_session, school.tenant.id, school.year.id, "MONDAY", school.period_1.id)
    assert [r.name for r in rooms] == ["Science Lab"]

    rooms = await analytics_service.find_free_rooms(db_session, school.tenant.id, school.year.id, "TUESDAY", school.period_1.id)
    assert [r.name for r in rooms] == ["Room 101", "Science Lab"]


@pytest.mark.asyncio
async def test_teacher_workload_busiest_first(db_session: AsyncSession, school, book) -> None:
    await book(school.teacher_2, school.period_1, subject=school.science)
    await book(school.teacher_1, school.period_2)
    await book(school.teacher_1, school.period_1, day="TUESDAY")

    workload = await analytics_service.get_teacher_workload(db_session, school.tenant.id, school.year.id)

    assert [(w.teacher_name, w.total_periods) for w in workload] == [("Asha Rao", 2), ("Bilal Khan", 1)]


@pytest.mark.asyncio
async def test_class_subject_distribution(db_session: AsyncSession, school, book) -> None:
    await book(school.teacher_1, school.period_1)
    await book(school.teacher_1, school.period_1, day="TUESDAY")
    await book(school.teacher_2, school.period_2, subject=school.science)
    await book(school.teacher_3, school.period_2, day="TUESDAY", section=school.section_b)

    distribution = await analytics_service.get_class_subject_distribution(
        db_session, school.tenant.id, school.year.id, school.school_class.id, school.section_a.id
    )

    assert [(d.subject_name, d.subject_code, d.total_periods) for d in distribution] == [
        ("Mathematics", "MATH", 2),
        ("Science", "SCI", 1),
    ]


@pytest.mark.asyncio
async def test_analytics_with_default_working_days(db_session: AsyncSession, school, book) -> None:
    await book(school.teacher_1, school.period_1, room=school.room_1)
    await book(school.teacher_1, school.period_2, day="TUESDAY")
    db_session.add(
        TeacherPreferredSubject(tenant_id=school.tenant.id, teacher_id=school.teacher_2.id, subject_id=school.science.id)
    )
    await db_session.commit()

    analytics = await analytics_service.get_analytics(db_session, school.tenant.id, school.year.id)

    summary = analytics.summary
    assert summary.total_entries == 2
    assert (summary.teaching_periods, summary.break_periods, summary.total_periods) == (2, 1, 3)
    assert summary.working_days == 5
    assert summary.total_teachers == 3
    assert summary.total_sections == 2
    assert summary.total_rooms == 2
    assert summary.average_periods_per_teacher == 0.67

    busiest = analytics.teacher_workload[0]
    assert (busiest.teacher_name, busiest.total_periods, busiest.utilization_rate) == ("Asha Rao", 2, 20.0)
    bilal = next(w for w in analytics.teacher_workload if w.teacher_name == "Bilal Khan")
    assert bilal.preferred_subjects == ["Science"]
    assert bilal.utilization_rate == 0.0

    rooms = {r.room_name: r for r in analytics.room_utilization}
    assert rooms["Room 101"].total_bookings == 1
    assert rooms["Room 101"].utilization_rate == 10.0

    coverage = {c.section_name: c.coverage_rate for c in analytics.section_coverage}
    assert coverage == {"A": 20.0, "B": 0.0}

    assert analytics.day_distribution["MONDAY"] == 1
    assert analytics.day_distribution["TUESDAY"] == 1
    assert analytics.day_distribution["SUNDAY"] == 0
    assert len(analytics.day_distribution) == 7


@pytest.mark.asyncio
async def test_analytics_uses_working_pattern(db_session: AsyncSession, school, book) -> None:
    holidays = {"WEDNESDAY", "SATURDAY", "SUNDAY"}
    for day in ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY"]:
        db_session.add(
            WorkingPattern(
                tenant_id=school.tenant.id,
                academic_year_id=school.year.id,
                day_of_week=day,
                is_working=day not in holidays,
            )
        )
    await db_session.commit()
    await book(school.teacher_1, school.period_1)
    await book(school.teacher_1, school.period_2)

    analytics = await analytics_service.get_analytics(db_session, school.tenant.id, school.year.id)

    assert analytics.summary.working_days == 4
    assert analytics.teacher_workload[0].utilization_rate == 25.0


@pytest.mark.asyncio
async def test_analytics_keeps_deactivated_teachers_with_bookings(db_session: AsyncSession, school, book) -> None:
    await book(school.teacher_1, school.period_1)
    await book(school.teacher_2, school.period_2, subject=school.science)
    school.teacher_2.status = "INACTIVE"
    await db_session.commit()

    analytics = await analytics_service.get_analytics(db_session, school.tenant.id, school.year.id)

    workload = {w.teacher_name: w.total_periods for w in analytics.teacher_workload}
    assert workload == {"Asha Rao": 1, "Bilal Khan": 1, "Chen Li": 0}
    assert sum(workload.values()) == analytics.summary.total_entries
    assert analytics.summary.total_teachers == 3
    assert analytics.summary.average_periods_per_teacher == 0.67


@pytest.mark.asyncio
async def test_discovery_endpoints(client, school, book, auth_headers) -> None:
    await book(school.teacher_1, school.period_1, room=school.room_2)

    response = await client.get(
        "/api/v1/timetables/find-free-teachers",
        params={"day": "MONDAY", "period_id": str(school.period_1.id), "subject_id": str(school.math.id)},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert [t["full_name"] for t in response.json()] == ["Bilal Khan", "Chen Li"]

    response = await client.get(
        "/api/v1/timetables/find-free-rooms",
        params={"day": "MONDAY", "period_id": str(school.period_1.id)},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert [r["name"] for r in response.json()] == ["Room 101"]

    response = await client.get("/api/v1/timetables/analytics", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["summary"]["total_entries"] == 1

    response = await client.get("/api/v1/timetables/analytics/teacher-workload", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()[0]["teacher_name"] == "Asha Rao"
