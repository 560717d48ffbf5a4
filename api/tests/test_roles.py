"""Role tests: my roles, super-admin assignment, community managers and manage permissions."""

from padel.core.database import async_session_factory
from padel.models import UserRole
from padel.services.roles import can_manage_community, has_role


async def test_my_roles_empty_for_new_user(client, make_user, headers):
    resp = await client.get("/api/roles/my-roles", headers=headers(await make_user()))
    assert resp.status_code == 200
    assert resp.json() == []


async def test_all_roles_requires_super_admin(client, make_user, grant_role, headers):
    user = await make_user()
    assert (await client.get("/api/roles/all", headers=headers(user))).status_code == 403

    await grant_role(user, UserRole.SUPER_ADMIN)
    resp = await client.get("/api/roles/all", headers=headers(user))
    assert resp.status_code == 200
    assert {r["name"] for r in resp.json()} == {"member", "community_manager", "super_admin"}


async def test_assign_role_by_email(client, make_user, make_community, grant_role, headers):
    admin = await make_user()
    await grant_role(admin, UserRole.SUPER_ADMIN)
    target = await make_user(email="coach@example.com")
    community = await make_community()

    resp = await client.post(
        "/api/roles/assign",
        json={"user_email": "Coach@Example.com", "role_name": "community_manager", "community_id": community.id},
        headers=headers(admin),
    )
    assert resp.status_code == 201
    assignment = resp.json()
    assert assignment["user_id"] == target.id
    assert assignment["role"] == "community_manager"
    assert assignment["community_id"] == community.id
    assert assignment["assigned_by"] == admin.id

    # Assigning again returns the same assignment
    again = await client.post(
        "/api/roles/assign",
        json={"user_email": "coach@example.com", "role_name": "community_manager", "community_id": community.id},
        headers=headers(admin),
    )
    assert again.json()["id"] == assignment["id"]

    mine = await client.get("/api/roles/my-roles", headers=headers(target))
    assert [r["role"] for r in mine.json()] == ["community_manager"]


async def test_assign_community_manager_needs_community(client, make_user, grant_role, headers):
    admin = await make_user()
    await grant_role(admin, UserRole.SUPER_ADMIN)
    await make_user(email="coach@example.com")

    resp = await client.post(
        "/api/roles/assign",
        json={"user_email": "coach@example.com", "role_name": "community_manager"},
        headers=headers(admin),
    )
    assert resp.status_code == 400


async def test_assign_by_non_admin(client, make_user, headers):
    user = await make_user()
    await make_user(email="coach@example.com")
    resp = await client.post(
        "/api/roles/assign",
        json={"user_email": "coach@example.com", "role_name": "super_admin"},
        headers=headers(user),
    )
    assert resp.status_code == 403


async def test_assign_unknown_user(client, make_user, grant_role, headers):
    admin = await make_user()
    await grant_role(admin, UserRole.SUPER_ADMIN)
    resp = await client.post(
        "/api/roles/assign",
        json={"user_email": "nobody@example.com", "role_name": "super_admin"},
        headers=headers(admin),
    )
    assert resp.status_code == 404


async def test_remove_role(client, make_user, grant_role, headers):
    admin = await make_user()
    await grant_role(admin, UserRole.SUPER_ADMIN)
    target = await make_user()
    await grant_role(target, UserRole.SUPER_ADMIN)

    member = await client.request(
        "DELETE",
        "/api/roles/remove",
        json={"user_id": target.id, "role_name": "member"},
        headers=headers(admin),
    )
    assert member.status_code == 400

    resp = await client.request(
        "DELETE",
        "/api/roles/remove",
        json={"user_id": target.id, "role_name": "super_admin"},
        headers=headers(admin),
    )
    assert resp.status_code == 200

    missing = await client.request(
        "DELETE",
        "/api/roles/remove",
        json={"user_id": target.id, "role_name": "super_admin"},
        headers=headers(admin),
    )
    assert missing.status_code == 404

    async with async_session_factory() as db:
        assert not await has_role(db, target.id, UserRole.SUPER_ADMIN)


async def test_managed_communities(client, make_user, make_community, grant_role, headers):
    user = await make_user()
    owned = await make_community(user, name="A Owned")
    assigned = await make_community(name="B Assigned")
    await make_community(name="C Other")
    await grant_role(user, UserRole.COMMUNITY_MANAGER, assigned)

    resp = await client.get("/api/roles/managed-communities", headers=headers(user))
    assert [c["id"] for c in resp.json()] == [owned.id, assigned.id]


async def test_super_admin_manages_everything(client, make_user, make_community, grant_role, headers):
    admin = await make_user()
    await grant_role(admin, UserRole.SUPER_ADMIN)
    await make_community()
    await make_community()

    resp = await client.get("/api/roles/managed-communities", headers=headers(admin))
    assert len(resp.json()) == 2


# ---------------------------------------------------------------------------
# Community managers
# ---------------------------------------------------------------------------


async def test_owner_adds_and_removes_manager(client, make_user, make_community, headers):
    owner = await make_user()
    helper = await make_user(name="Helper")
    community = await make_community(owner)

    resp = await client.post(
        f"/api/roles/community/{community.id}/managers",
        json={"user_id": helper.id},
        headers=headers(owner),
    )
    assert resp.status_code == 201

    managers = await client.get(f"/api/roles/community/{community.id}/managers", headers=headers(owner))
    assert [m["user"]["name"] for m in managers.json()] == ["Helper"]

    removed = await client.delete(f"/api/roles/community/{community.id}/managers/{helper.id}", headers=headers(owner))
    assert removed.status_code == 200

    gone = await client.delete(f"/api/roles/community/{community.id}/managers/{helper.id}", headers=headers(owner))
    assert gone.status_code == 404


async def test_assigned_manager_cannot_add_managers(client, make_user, make_community, grant_role, headers):
    community = await make_community(await make_user())
    manager = await make_user()
    await grant_role(manager, UserRole.COMMUNITY_MANAGER, community)

    resp = await client.post(
        f"/api/roles/community/{community.id}/managers",
        json={"user_id": (await make_user()).id},
        headers=headers(manager),
    )
    assert resp.status_code == 403


async def test_search_users(client, make_user, make_community, headers):
    owner = await make_user()
    community = await make_community(owner)
    await make_user(name="Yousef Haddad")
    await make_user(name="Maya Haddad")
    await make_user(name="Tom Jones")

    resp = await client.get(
        f"/api/roles/community/{community.id}/search-users",
        params={"q": "hadd"},
        headers=headers(owner),
    )
    assert resp.status_code == 200
    assert [u["name"] for u in resp.json()] == ["Maya Haddad", "Yousef Haddad"]


async def test_can_manage_community_rules(make_user, make_community, grant_role):
    owner = await make_user()
    parent_manager = await make_user()
    stranger = await make_user()
    parent = await make_community(owner)
    sub = await make_community(parent_community_id=parent.id)
    await grant_role(parent_manager, UserRole.COMMUNITY_MANAGER, parent)

    async with async_session_factory() as db:
        assert await can_manage_community(db, owner.id, parent.id)
        assert await can_manage_community(db, owner.id, sub.id)
        assert await can_manage_community(db, parent_manager.id, sub.id)
        assert not await can_manage_community(db, stranger.id, sub.id)
        assert not await can_manage_community(db, owner.id, 9999)
