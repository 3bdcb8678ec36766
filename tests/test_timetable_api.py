import pytest
from httpx import AsyncClient

from conftest import make_token_headers


def _entry_body(school, teacher, period, day="MONDAY", section=None, room=None):
    section = section or school.section_a
    body = {
        "class_id": str(school.school_class.id),
        "section_id": str(section.id),
        "subject_id": str(school.math.id),
        "teacher_id": str(teacher.id),
        "period_id": str(period.id),
        "day": day,
    }
    if room is not None:
        body["room_id"] = str(room.id)
    return body


@pytest.mark.asyncio
async def test_create_and_read_entry(client: AsyncClient, school, auth_headers) -> None:
    response = await client.post(
        "/api/v1/timetables/entries",
        json=_entry_body(school, school.teacher_1, school.period_1, room=school.room_1),
        headers=auth_headers,
    )
    assert response.status_code == 201
    entry = response.json()
    assert entry["status"] == "DRAFT"
    assert entry["teacher_name"] == "Asha Rao"
    assert entry["room_name"] == "Room 101"

    response = await client.get(f"/api/v1/timetables/entries/{entry['id']}", headers=auth_headers)
    assert response.status_code == 200

    response = await client.get(f"/api/v1/timetables/entries/section/{school.section_a.id}", headers=auth_headers)
    assert [e["id"] for e in response.json()] == [entry["id"]]
    response = await client.get(f"/api/v1/timetables/entries/teacher/{school.teacher_1.id}", headers=auth_headers)
    assert len(response.json()) == 1
    response = await client.get(f"/api/v1/timetables/entries/room/{school.room_1.id}", headers=auth_headers)
    assert len(response.json()) == 1


@pytest.mark.asyncio
async def test_double_booking_returns_409(client: AsyncClient, school, auth_headers) -> None:
    await client.post(
        "/api/v1/timetables/entries",
        json=_entry_body(school, school.teacher_1, school.period_1),
        headers=auth_headers,
    )
    response = await client.post(
        "/api/v1/timetables/entries",
        json=_entry_body(school, school.teacher_1, school.period_1, section=school.section_b),
        headers=auth_headers,
    )
    assert response.status_code == 409
    assert response.json()["detail"] == "Teacher is already assigned to Grade 5-A at this time."


@pytest.mark.asyncio
async def test_check_availability_endpoint(client: AsyncClient, school, auth_headers) -> None:
    body = _entry_body(school, school.teacher_1, school.period_1)
    response = await client.post("/api/v1/timetables/check-availability", json=body, headers=auth_headers)
    assert response.json() == {"status": "OK", "message": None, "conflict_type": None}

    await client.post("/api/v1/timetables/entries", json=body, headers=auth_headers)
    response = await client.post("/api/v1/timetables/check-availability", json=body, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "CONFLICT"
    assert response.json()["conflict_type"] == "TEACHER"


@pytest.mark.asyncio
async def test_context_endpoint(client: AsyncClient, school, auth_headers) -> None:
    response = await client.get(
        f"/api/v1/timetables/context/{school.school_class.id}/{school.section_a.id}", headers=auth_headers
    )
    assert response.status_code == 200
    context = response.json()
    assert list(context["calendar"]) == ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY"]
    assert [r["name"] for r in context["rooms"]] == ["Room 101", "Science Lab"]


@pytest.mark.asyncio
async def test_move_swap_and_lifecycle_endpoints(client: AsyncClient, school, auth_headers) -> None:
    first = (
        await client.post(
            "/api/v1/timetables/entries",
            json=_entry_body(school, school.teacher_1, school.period_1),
            headers=auth_headers,
        )
    ).json()
    second = (
        await client.post(
            "/api/v1/timetables/entries",
            json=_entry_body(school, school.teacher_2, school.period_2),
            headers=auth_headers,
        )
    ).json()

    response = await client.post(
        "/api/v1/timetables/workflow/move",
        json={"entry_id": first["id"], "target_day": "MONDAY", "target_period_id": str(school.period_2.id)},
        headers=auth_headers,
    )
    assert response.status_code == 409
    assert "Please swap instead" in response.json()["detail"]

    response = await client.post(
        "/api/v1/timetables/workflow/swap",
        json={"entry_id_1": first["id"], "entry_id_2": second["id"]},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["updated"] == 2

    response = await client.post(
        f"/api/v1/timetables/workflow/sections/{school.section_a.id}/publish", headers=auth_headers
    )
    assert response.json()["updated"] == 2
    response = await client.post(f"/api/v1/timetables/workflow/sections/{school.section_a.id}/lock", headers=auth_headers)
    assert response.json()["updated"] == 2

    response = await client.post(
        "/api/v1/timetables/workflow/move",
        json={"entry_id": first["id"], "target_day": "FRIDAY", "target_period_id": str(school.period_1.id)},
        headers=auth_headers,
    )
    assert response.status_code == 403

    response = await client.delete(f"/api/v1/timetables/entries/{first['id']}", headers=auth_headers)
    assert response.status_code == 403

    response = await client.post(
        f"/api/v1/timetables/workflow/sections/{school.section_a.id}/unlock", headers=auth_headers
    )
    assert response.json()["updated"] == 2
    response = await client.get(f"/api/v1/timetables/entries/{first['id']}", headers=auth_headers)
    assert response.json()["status"] == "PUBLISHED"

    response = await client.patch(
        f"/api/v1/timetables/workflow/entries/{first['id']}/lock", json={"is_locked": True}, headers=auth_headers
    )
    assert response.status_code == 200
    response = await client.get(f"/api/v1/timetables/entries/{first['id']}", headers=auth_headers)
    assert response.json()["is_locked"] is True


@pytest.mark.asyncio
async def test_viewer_can_read_but_not_write(client: AsyncClient, school, viewer_headers) -> None:
    response = await client.get(f"/api/v1/timetables/entries/section/{school.section_a.id}", headers=viewer_headers)
    assert response.status_code == 200

    response = await client.post(
        "/api/v1/timetables/entries",
        json=_entry_body(school, school.teacher_1, school.period_1),
        headers=viewer_headers,
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Insufficient permissions"


@pytest.mark.asyncio
async def test_closed_year_token_blocks_writes(client: AsyncClient, school) -> None:
    headers = make_token_headers(school.admin, school.year, academic_year_status="CLOSED")

    response = await client.post(
        "/api/v1/timetables/entries",
        json=_entry_body(school, school.teacher_1, school.period_1),
        headers=headers,
    )
    assert response.status_code == 403

    response = await client.get(f"/api/v1/timetables/entries/section/{school.section_a.id}", headers=headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_reads_need_an_academic_year(client: AsyncClient, school) -> None:
    headers = make_token_headers(school.admin, None)
    response = await client.get("/api/v1/timetables/analytics", headers=headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_missing_token(client: AsyncClient, school) -> None:
    response = await client.get("/api/v1/timetables/analytics")
    assert response.status_code == 401
