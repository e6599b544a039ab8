"""Tests for the check-in settings singleton and the health probe."""

import pytest
from httpx import AsyncClient

from tests.conftest import auth_headers

INSIDE_NEW_FENCE = {"latitude": -22.906800, "longitude": -43.172900}


@pytest.mark.asyncio
async def test_settings_seeded_from_environment(async_client: AsyncClient, make_user):
    member = await make_user("member@roster.test")
    resp = await async_client.get("/api/v1/settings", headers=auth_headers(member))
    assert resp.status_code == 200
    assert resp.json() == {
        "checkin_deadline": "17:20",
        "service_end_time": "21:00",
        "fence_latitude": -23.550520,
        "fence_longitude": -46.633308,
        "fence_radius_meters": 100.0,
    }


@pytest.mark.asyncio
async def test_only_admin_updates_settings(async_client: AsyncClient, admin_headers, make_user):
    member = await make_user("member@roster.test")
    denied = await async_client.put(
        "/api/v1/settings", json={"checkin_deadline": "18:00"}, headers=auth_headers(member)
    )
    assert denied.status_code == 403

    resp = await async_client.put("/api/v1/settings", json={"checkin_deadline": "18:00"}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["checkin_deadline"] == "18:00"


@pytest.mark.asyncio
@pytest.mark.parametrize("value", ["25:00", "7:5", "noon"])
async def test_settings_validate_time_format(async_client: AsyncClient, admin_headers, value):
    resp = await async_client.put("/api/v1/settings", json={"checkin_deadline": value}, headers=admin_headers)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_deadline_cannot_pass_service_end(async_client: AsyncClient, admin_headers):
    resp = await async_client.put("/api/v1/settings", json={"checkin_deadline": "22:00"}, headers=admin_headers)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_new_deadline_and_fence_apply_to_checkins(
    async_client: AsyncClient, admin_headers, clock, make_user, roster_data, make_schedule
):
    slot = await make_schedule(roster_data["maria"], roster_data["worship"], roster_data["singer"])
    maria = await make_user("maria@roster.test", member_id=roster_data["maria"].id)

    await async_client.put(
        "/api/v1/settings",
        json={"checkin_deadline": "18:00", "fence_latitude": -22.9068, "fence_longitude": -43.1729},
        headers=admin_headers,
    )

    clock.set(17, 45)
    resp = await async_client.post(
        "/api/v1/checkins", json={"schedule_id": slot.id, **INSIDE_NEW_FENCE}, headers=auth_headers(maria)
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["checkin"]["status"] == "on_time"


@pytest.mark.asyncio
async def test_health_is_public(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json() == {"db": True, "status": "ok"}
