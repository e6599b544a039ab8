"""Tests for the geofenced check-in flow and the daily report."""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from roster.models.checkin import Checkin
from roster.services import attendance as attendance_service
from tests.conftest import auth_headers

# Default fence center from settings and a point roughly 50m away.
INSIDE = {"latitude": -23.550520, "longitude": -46.633800}
FAR_AWAY = {"latitude": -23.560520, "longitude": -46.633308}


@pytest.fixture
async def slot(roster_data, make_schedule):
    return await make_schedule(roster_data["maria"], roster_data["worship"], roster_data["singer"])


@pytest.fixture
async def maria_headers(make_user, roster_data):
    user = await make_user("maria@roster.test", member_id=roster_data["maria"].id)
    return auth_headers(user)


async def _count(db_session) -> int:
    return await db_session.scalar(select(func.count(Checkin.id)))


@pytest.mark.asyncio
async def test_checkin_before_deadline_is_on_time(async_client: AsyncClient, clock, slot, maria_headers):
    clock.set(17, 19)
    resp = await async_client.post(
        "/api/v1/checkins", json={"schedule_id": slot.id, **INSIDE}, headers=maria_headers
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["success"] is True
    assert data["checkin"]["status"] == "on_time"
    assert data["checkin"]["location_validated"] is True
    assert data["status_label"] == "Adimplente"
    assert 45 < data["distance_meters"] < 52


@pytest.mark.asyncio
async def test_checkin_at_deadline_minute_is_on_time(async_client: AsyncClient, clock, slot, maria_headers):
    clock.set(17, 20)
    resp = await async_client.post(
        "/api/v1/checkins", json={"schedule_id": slot.id, **INSIDE}, headers=maria_headers
    )
    assert resp.json()["checkin"]["status"] == "on_time"


@pytest.mark.asyncio
async def test_checkin_after_deadline_is_refused(async_client: AsyncClient, clock, slot, maria_headers, db_session):
    clock.set(17, 21)
    resp = await async_client.post(
        "/api/v1/checkins", json={"schedule_id": slot.id, **INSIDE}, headers=maria_headers
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "checkin_window_closed"
    assert await _count(db_session) == 0


@pytest.mark.asyncio
async def test_repeat_checkin_updates_single_row(async_client: AsyncClient, clock, slot, maria_headers, db_session):
    clock.set(16, 0)
    first = await async_client.post(
        "/api/v1/checkins", json={"schedule_id": slot.id, **INSIDE}, headers=maria_headers
    )
    clock.set(16, 30)
    second = await async_client.post(
        "/api/v1/checkins", json={"schedule_id": slot.id, **INSIDE}, headers=maria_headers
    )
    assert first.status_code == second.status_code == 200
    assert first.json()["checkin"]["id"] == second.json()["checkin"]["id"]
    assert await _count(db_session) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("reason", ["permission_denied", "unavailable", "timeout"])
async def test_location_failures_are_reported_by_kind(
    async_client: AsyncClient, clock, slot, maria_headers, db_session, reason
):
    clock.set(17, 0)
    resp = await async_client.post(
        "/api/v1/checkins",
        json={"schedule_id": slot.id, "location_error": reason},
        headers=maria_headers,
    )
    assert resp.status_code == 422
    body = resp.json()
    assert body["code"] == "location_unavailable"
    assert body["reason"] == reason
    assert await _count(db_session) == 0


@pytest.mark.asyncio
async def test_outside_fence_reports_distance(async_client: AsyncClient, clock, slot, maria_headers, db_session):
    clock.set(17, 0)
    resp = await async_client.post(
        "/api/v1/checkins", json={"schedule_id": slot.id, **FAR_AWAY}, headers=maria_headers
    )
    assert resp.status_code == 403
    body = resp.json()
    assert body["code"] == "outside_fence"
    assert body["distance_meters"] > 1000
    assert "km" in body["detail"]
    assert await _count(db_session) == 0


@pytest.mark.asyncio
async def test_missing_location_payload_is_invalid(async_client: AsyncClient, clock, slot, maria_headers):
    resp = await async_client.post("/api/v1/checkins", json={"schedule_id": slot.id}, headers=maria_headers)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_cannot_check_in_for_someone_else(async_client: AsyncClient, clock, make_user, roster_data, slot):
    joao = await make_user("joao@roster.test", member_id=roster_data["joao"].id)
    clock.set(17, 0)
    resp = await async_client.post(
        "/api/v1/checkins", json={"schedule_id": slot.id, **INSIDE}, headers=auth_headers(joao)
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "permission_denied"


@pytest.mark.asyncio
async def test_checkin_only_on_scheduled_day(async_client: AsyncClient, clock, slot, maria_headers):
    from datetime import date

    clock.set(10, 0, day=date(2025, 5, 31))
    resp = await async_client.post(
        "/api/v1/checkins", json={"schedule_id": slot.id, **INSIDE}, headers=maria_headers
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_unknown_schedule_is_not_found(async_client: AsyncClient, maria_headers):
    resp = await async_client.post("/api/v1/checkins", json={"schedule_id": 404, **INSIDE}, headers=maria_headers)
    assert resp.status_code == 404


# ── Replays ─────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_replayed_checkin_is_classified_by_recorded_time(async_client: AsyncClient, clock, slot, admin_headers):
    """Accepted before the deadline, recorded after it: late."""
    clock.set(17, 0)
    resp = await async_client.post(
        "/api/v1/checkins",
        json={"schedule_id": slot.id, "recorded_at": "2025-06-01T17:25:00-03:00", **INSIDE},
        headers=admin_headers,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["checkin"]["status"] == "late"
    assert resp.json()["status_label"] == "Atraso"


@pytest.mark.asyncio
async def test_replay_from_another_day_is_rejected(async_client: AsyncClient, clock, slot, admin_headers, db_session):
    clock.set(17, 0)
    resp = await async_client.post(
        "/api/v1/checkins",
        json={"schedule_id": slot.id, "recorded_at": "2025-05-31T16:00:00-03:00", **INSIDE},
        headers=admin_headers,
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"
    assert await _count(db_session) == 0


@pytest.mark.asyncio
async def test_members_cannot_replay(async_client: AsyncClient, clock, slot, maria_headers):
    clock.set(17, 0)
    resp = await async_client.post(
        "/api/v1/checkins",
        json={"schedule_id": slot.id, "recorded_at": "2025-06-01T16:00:00-03:00", **INSIDE},
        headers=maria_headers,
    )
    assert resp.status_code == 403


# ── Report ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_daily_report_counts_statuses(
    async_client: AsyncClient, clock, slot, maria_headers, admin_headers, roster_data, make_schedule
):
    await make_schedule(roster_data["joao"], roster_data["kids"], roster_data["storyteller"])
    clock.set(17, 0)
    await async_client.post("/api/v1/checkins", json={"schedule_id": slot.id, **INSIDE}, headers=maria_headers)

    resp = await async_client.get("/api/v1/checkins/report", params={"date": "2025-06-01"}, headers=admin_headers)
    assert resp.status_code == 200
    report = resp.json()
    assert report["total"] == 2
    assert report["counts"]["on_time"] == 1
    assert report["counts"]["pending"] == 1

    # After the service window the unattended slot shows as absent.
    clock.set(21, 30)
    resp = await async_client.get("/api/v1/checkins/report", headers=admin_headers)
    assert resp.json()["counts"]["absent"] == 1


@pytest.mark.asyncio
async def test_leader_report_is_scoped(async_client: AsyncClient, make_user, roster_data, slot, make_schedule):
    await make_schedule(roster_data["joao"], roster_data["kids"], roster_data["storyteller"])
    leader = await make_user(
        "leader@roster.test", role="department_leader", led_department_ids=(roster_data["kids"].id,)
    )
    resp = await async_client.get("/api/v1/checkins/report", headers=auth_headers(leader))
    entries = resp.json()["entries"]
    assert [e["department_name"] for e in entries] == ["Kids"]


# ── Concurrent writes ───────────────────────────────────────────────
@pytest.mark.asyncio
async def test_concurrent_first_checkin_becomes_update(
    async_client: AsyncClient, clock, slot, maria_headers, db_session, monkeypatch
):
    """Another attempt inserts the row between our read and our commit; ours is re-applied as the update."""
    original = attendance_service._upsert_checkin
    calls = []

    async def _racing_upsert(db, schedule, values):
        calls.append(schedule.id)
        if len(calls) == 1:
            db.add(
                Checkin(
                    schedule_id=schedule.id,
                    member_id=schedule.member_id,
                    department_id=schedule.department_id,
                    date=schedule.date,
                    status="pending",
                )
            )
            await db.commit()
            raise IntegrityError("INSERT INTO checkins", {}, Exception("UNIQUE constraint failed"))
        return await original(db, schedule, values)

    monkeypatch.setattr(attendance_service, "_upsert_checkin", _racing_upsert)
    clock.set(17, 0)
    resp = await async_client.post(
        "/api/v1/checkins", json={"schedule_id": slot.id, **INSIDE}, headers=maria_headers
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["checkin"]["status"] == "on_time"
    assert calls == [slot.id, slot.id]

    rows = (await db_session.execute(select(Checkin.status))).scalars().all()
    assert rows == ["on_time"]
