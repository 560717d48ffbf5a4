"""Session template tests: CRUD and bulk session generation."""

from datetime import date, datetime, timedelta

from sqlalchemy import func, select

from padel.core.database import async_session_factory
from padel.models import Announcement, Session, SessionTemplate, UserRole

FRIDAY = 5  # 0 = Sunday


def _template_payload(community_id: int, **overrides) -> dict:
    payload = {
        "community_id": community_id,
        "title": "Friday Social",
        "day_of_week": FRIDAY,
        "time_of_day": "19:00:00",
        "price_fils": 6000,
        "max_players": 8,
    }
    payload.update(overrides)
    return payload


async def _create_template(client, headers, manager, community, **overrides) -> dict:
    resp = await client.post(
        "/api/session-templates",
        json=_template_payload(community.id, **overrides),
        headers=headers(manager, UserRole.COMMUNITY_MANAGER),
    )
    assert resp.status_code == 201
    return resp.json()


async def test_template_crud(client, make_user, make_community, headers, fetch):
    owner = await make_user()
    community = await make_community(owner)
    as_manager = headers(owner, UserRole.COMMUNITY_MANAGER)

    template = await _create_template(client, headers, owner, community)
    assert template["created_by"] == owner.id
    assert template["time_of_day"] == "19:00:00"

    listed = await client.get("/api/session-templates", headers=as_manager)
    assert [t["id"] for t in listed.json()] == [template["id"]]

    updated = await client.put(
        f"/api/session-templates/{template['id']}",
        json={"price_fils": 6500, "is_active": False},
        headers=as_manager,
    )
    assert updated.json()["price_fils"] == 6500
    assert updated.json()["is_active"] is False

    deleted = await client.delete(f"/api/session-templates/{template['id']}", headers=as_manager)
    assert deleted.status_code == 204
    assert await fetch(SessionTemplate, template["id"]) is None


async def test_templates_need_manager_role(client, make_user, make_community, headers):
    owner = await make_user()
    community = await make_community(owner)
    resp = await client.post("/api/session-templates", json=_template_payload(community.id), headers=headers(owner))
    assert resp.status_code == 403


async def test_template_for_unmanaged_community(client, make_user, make_community, headers):
    manager = await make_user()
    community = await make_community(await make_user())
    resp = await client.post(
        "/api/session-templates",
        json=_template_payload(community.id),
        headers=headers(manager, UserRole.COMMUNITY_MANAGER),
    )
    assert resp.status_code == 403


async def test_template_rejects_bad_day_and_foreign_sub(client, make_user, make_community, headers):
    owner = await make_user()
    community = await make_community(owner)
    as_manager = headers(owner, UserRole.COMMUNITY_MANAGER)

    bad_day = await client.post(
        "/api/session-templates", json=_template_payload(community.id, day_of_week=7), headers=as_manager
    )
    assert bad_day.status_code == 422

    foreign = await make_community(parent_community_id=(await make_community()).id)
    bad_sub = await client.post(
        "/api/session-templates",
        json=_template_payload(community.id, sub_community_id=foreign.id),
        headers=as_manager,
    )
    assert bad_sub.status_code == 400


async def test_bulk_create_sessions(client, make_user, make_community, headers):
    owner = await make_user()
    community = await make_community(owner)
    sub = await make_community(parent_community_id=community.id, location="Al Quoz Courts")
    template = await _create_template(client, headers, owner, community, sub_community_id=sub.id)

    resp = await client.post(
        "/api/session-templates/bulk-create-sessions",
        json={"template_ids": [template["id"]], "weeks_ahead": 3},
        headers=headers(owner, UserRole.COMMUNITY_MANAGER),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["created"] == 3
    assert body["errors"] == []

    starts = [datetime.fromisoformat(s["scheduled_at"]) for s in body["sessions"]]
    # 19:00 in Dubai (UTC+4) on Fridays, one week apart
    assert all(start.hour == 15 and start.minute == 0 for start in starts)
    assert all(start.weekday() == 4 for start in starts)
    assert [b - a for a, b in zip(starts, starts[1:])] == [timedelta(weeks=1)] * 2

    session = body["sessions"][0]
    assert session["location"] == "Al Quoz Courts"
    assert session["price_fils"] == 6000
    assert session["max_players"] == 8
    assert session["created_from_template_id"] == template["id"]

    async with async_session_factory() as db:
        # Generated sessions are not announced
        assert await db.scalar(select(func.count(Announcement.id))) == 0


async def test_bulk_create_skips_existing_sessions(client, make_user, make_community, headers):
    owner = await make_user()
    community = await make_community(owner)
    template = await _create_template(client, headers, owner, community)
    request = {"template_ids": [template["id"]], "weeks_ahead": 2}
    as_manager = headers(owner, UserRole.COMMUNITY_MANAGER)

    await client.post("/api/session-templates/bulk-create-sessions", json=request, headers=as_manager)
    again = await client.post("/api/session-templates/bulk-create-sessions", json=request, headers=as_manager)

    assert again.json()["created"] == 0
    assert len(again.json()["errors"]) == 2
    assert again.json()["sessions"] == []
    async with async_session_factory() as db:
        assert await db.scalar(select(func.count(Session.id))) == 2


async def test_bulk_create_in_the_past(client, make_user, make_community, headers):
    owner = await make_user()
    community = await make_community(owner)
    template = await _create_template(client, headers, owner, community)

    resp = await client.post(
        "/api/session-templates/bulk-create-sessions",
        json={
            "template_ids": [template["id"]],
            "weeks_ahead": 2,
            "start_date": (date.today() - timedelta(days=30)).isoformat(),
        },
        headers=headers(owner, UserRole.COMMUNITY_MANAGER),
    )
    assert resp.json()["created"] == 0
    assert {e["error"] for e in resp.json()["errors"]} == {"Occurrence is in the past"}


async def test_bulk_create_location_without_sub_community(client, make_user, make_community, headers):
    owner = await make_user()
    community = await make_community(owner)
    template = await _create_template(client, headers, owner, community)

    resp = await client.post(
        "/api/session-templates/bulk-create-sessions",
        json={"template_ids": [template["id"]]},
        headers=headers(owner, UserRole.COMMUNITY_MANAGER),
    )
    assert resp.json()["sessions"][0]["location"] == "TBD"


async def test_bulk_create_unknown_templates(client, make_user, headers):
    resp = await client.post(
        "/api/session-templates/bulk-create-sessions",
        json={"template_ids": [999]},
        headers=headers(await make_user(), UserRole.COMMUNITY_MANAGER),
    )
    assert resp.status_code == 404
