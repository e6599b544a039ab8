"""Tests for schedule CRUD and the double-booking guard."""

from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from roster.api.v1.deps import get_conflict_strategy
from roster.core.conflicts import TimeRangeStrategy
from roster.main import app
from roster.models.schedule import Schedule
from roster.services import scheduling
from tests.conftest import SERVICE_DAY, auth_headers


def _payload(data, member="maria", department="worship", position="singer", day=SERVICE_DAY, **extra):
    body = {
        "member_id": data[member].id,
        "department_id": data[department].id,
        "position_id": data[position].id,
        "date": day.isoformat(),
    }
    body.update(extra)
    return body


@pytest.mark.asyncio
async def test_create_schedule(async_client: AsyncClient, admin_headers, roster_data):
    resp = await async_client.post("/api/v1/schedules", json=_payload(roster_data), headers=admin_headers)
    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["member_id"] == roster_data["maria"].id
    assert data["date"] == "2025-06-01"


@pytest.mark.asyncio
async def test_second_department_same_day_conflicts(async_client: AsyncClient, admin_headers, roster_data, db_session):
    """Maria is in Worship on 2025-06-01; Kids on the same day is refused."""
    first = await async_client.post("/api/v1/schedules", json=_payload(roster_data), headers=admin_headers)
    assert first.status_code == 201

    resp = await async_client.post(
        "/api/v1/schedules",
        json=_payload(roster_data, department="kids", position="storyteller"),
        headers=admin_headers,
    )
    assert resp.status_code == 409
    body = resp.json()
    assert body["code"] == "schedule_conflict"
    assert body["department"] == "Worship"
    assert "Worship" in body["detail"]

    count = await db_session.scalar(select(func.count(Schedule.id)))
    assert count == 1


@pytest.mark.asyncio
async def test_same_member_other_day_is_fine(async_client: AsyncClient, admin_headers, roster_data):
    await async_client.post("/api/v1/schedules", json=_payload(roster_data), headers=admin_headers)
    resp = await async_client.post(
        "/api/v1/schedules",
        json=_payload(roster_data, department="kids", position="storyteller", day=date(2025, 6, 8)),
        headers=admin_headers,
    )
    assert resp.status_code == 201


@pytest.mark.asyncio
async def test_storage_rejects_duplicate_day(db_session, roster_data, make_schedule):
    """The unique day lock holds even when the pre-check is bypassed."""
    await make_schedule(roster_data["maria"], roster_data["worship"], roster_data["singer"])
    db_session.add(
        Schedule(
            member_id=roster_data["maria"].id,
            department_id=roster_data["kids"].id,
            position_id=roster_data["storyteller"].id,
            date=SERVICE_DAY,
            exclusive_day=SERVICE_DAY,
        )
    )
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


@pytest.mark.asyncio
async def test_conflict_check_endpoint(async_client: AsyncClient, admin_headers, roster_data, make_schedule):
    existing = await make_schedule(roster_data["maria"], roster_data["worship"], roster_data["singer"])
    params = {"member_id": roster_data["maria"].id, "date": SERVICE_DAY.isoformat()}

    resp = await async_client.get("/api/v1/schedules/conflicts", params=params, headers=admin_headers)
    assert resp.json() == {
        "conflict": True,
        "department_id": roster_data["worship"].id,
        "department_name": "Worship",
    }

    params["exclude_schedule_id"] = existing.id
    resp = await async_client.get("/api/v1/schedules/conflicts", params=params, headers=admin_headers)
    assert resp.json()["conflict"] is False


@pytest.mark.asyncio
async def test_update_in_place_does_not_self_conflict(async_client: AsyncClient, admin_headers, roster_data, make_schedule):
    schedule = await make_schedule(roster_data["maria"], roster_data["worship"], roster_data["singer"])
    resp = await async_client.put(
        f"/api/v1/schedules/{schedule.id}", json={"notes": "Bring sheet music"}, headers=admin_headers
    )
    assert resp.status_code == 200
    assert resp.json()["notes"] == "Bring sheet music"


@pytest.mark.asyncio
async def test_update_into_taken_day_conflicts(async_client: AsyncClient, admin_headers, roster_data, make_schedule):
    await make_schedule(roster_data["maria"], roster_data["worship"], roster_data["singer"])
    other = await make_schedule(
        roster_data["maria"], roster_data["kids"], roster_data["storyteller"], day=date(2025, 6, 8)
    )
    resp = await async_client.put(
        f"/api/v1/schedules/{other.id}", json={"date": "2025-06-01"}, headers=admin_headers
    )
    assert resp.status_code == 409
    assert resp.json()["department"] == "Worship"


@pytest.mark.asyncio
async def test_position_must_belong_to_department(async_client: AsyncClient, admin_headers, roster_data):
    resp = await async_client.post(
        "/api/v1/schedules", json=_payload(roster_data, position="storyteller"), headers=admin_headers
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_unknown_member_is_not_found(async_client: AsyncClient, admin_headers, roster_data):
    body = _payload(roster_data)
    body["member_id"] = 999
    resp = await async_client.post("/api/v1/schedules", json=body, headers=admin_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_half_open_time_range_is_rejected(async_client: AsyncClient, admin_headers, roster_data):
    resp = await async_client.post(
        "/api/v1/schedules", json=_payload(roster_data, start_time="09:00"), headers=admin_headers
    )
    assert resp.status_code == 422


# ── Leader scoping ──────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_leader_schedules_only_in_led_department(async_client: AsyncClient, make_user, roster_data):
    leader = await make_user(
        "leader@roster.test", role="department_leader", led_department_ids=(roster_data["worship"].id,)
    )
    headers = auth_headers(leader)

    ok = await async_client.post("/api/v1/schedules", json=_payload(roster_data), headers=headers)
    assert ok.status_code == 201

    denied = await async_client.post(
        "/api/v1/schedules",
        json=_payload(roster_data, member="joao", department="kids", position="storyteller"),
        headers=headers,
    )
    assert denied.status_code == 403


@pytest.mark.asyncio
async def test_leader_lists_only_led_departments(async_client: AsyncClient, make_user, roster_data, make_schedule):
    await make_schedule(roster_data["maria"], roster_data["worship"], roster_data["singer"])
    await make_schedule(roster_data["joao"], roster_data["kids"], roster_data["storyteller"])
    leader = await make_user(
        "leader@roster.test", role="department_leader", led_department_ids=(roster_data["kids"].id,)
    )

    resp = await async_client.get("/api/v1/schedules", headers=auth_headers(leader))
    assert resp.status_code == 200
    assert [s["department_id"] for s in resp.json()] == [roster_data["kids"].id]


@pytest.mark.asyncio
async def test_member_sees_own_schedules(async_client: AsyncClient, make_user, roster_data, make_schedule):
    mine = await make_schedule(roster_data["maria"], roster_data["worship"], roster_data["singer"])
    await make_schedule(roster_data["joao"], roster_data["kids"], roster_data["storyteller"])
    maria = await make_user("maria@roster.test", member_id=roster_data["maria"].id)

    resp = await async_client.get("/api/v1/schedules/mine", headers=auth_headers(maria))
    assert [s["id"] for s in resp.json()] == [mine.id]

    resp = await async_client.get("/api/v1/schedules", headers=auth_headers(maria))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_delete_schedule(async_client: AsyncClient, admin_headers, roster_data, make_schedule):
    schedule = await make_schedule(roster_data["maria"], roster_data["worship"], roster_data["singer"])
    resp = await async_client.delete(f"/api/v1/schedules/{schedule.id}", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    resp = await async_client.get(f"/api/v1/schedules/{schedule.id}", headers=admin_headers)
    assert resp.status_code == 404


# ── Time-range strategy ─────────────────────────────────────────────
@pytest.mark.asyncio
async def test_time_range_strategy_allows_disjoint_slots(async_client: AsyncClient, admin_headers, roster_data):
    app.dependency_overrides[get_conflict_strategy] = TimeRangeStrategy

    morning = _payload(roster_data, start_time="08:00", end_time="10:00")
    evening = _payload(roster_data, department="kids", position="storyteller", start_time="18:00", end_time="20:00")
    overlap = _payload(roster_data, department="kids", position="storyteller", start_time="09:00", end_time="11:00")

    assert (await async_client.post("/api/v1/schedules", json=morning, headers=admin_headers)).status_code == 201
    resp = await async_client.post("/api/v1/schedules", json=overlap, headers=admin_headers)
    assert resp.status_code == 409
    assert (await async_client.post("/api/v1/schedules", json=evening, headers=admin_headers)).status_code == 201


# ── Write-time lock ─────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_lost_race_surfaces_as_schedule_conflict(
    async_client: AsyncClient, admin_headers, roster_data, make_schedule, db_session, monkeypatch
):
    """A write that slips past the pre-check is still refused by the day lock, naming the holder."""
    await make_schedule(roster_data["maria"], roster_data["worship"], roster_data["singer"])

    async def _no_precheck(*_args, **_kwargs):
        return None

    monkeypatch.setattr(scheduling, "_raise_if_conflict", _no_precheck)
    resp = await async_client.post(
        "/api/v1/schedules",
        json=_payload(roster_data, department="kids", position="storyteller"),
        headers=admin_headers,
    )
    assert resp.status_code == 409
    body = resp.json()
    assert body["code"] == "schedule_conflict"
    assert body["department"] == "Worship"
    assert await db_session.scalar(select(func.count(Schedule.id))) == 1
