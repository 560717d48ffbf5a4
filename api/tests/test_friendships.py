"""Friendship tests: requests, answers, friend lists, status and suggestions."""

from padel.models import Friendship


async def _send(client, headers, sender, addressee):
    return await client.post("/api/friendships/request", json={"addressee_id": addressee.id}, headers=headers(sender))


async def test_request_and_accept(client, make_user, headers):
    alice = await make_user(name="Alice")
    bilal = await make_user(name="Bilal")

    sent = await _send(client, headers, alice, bilal)
    assert sent.status_code == 201
    assert sent.json()["status"] == "pending"
    friendship_id = sent.json()["id"]

    pending = await client.get("/api/friendships/requests/pending", headers=headers(bilal))
    assert [f["user"]["name"] for f in pending.json()] == ["Alice"]
    outgoing = await client.get("/api/friendships/requests/sent", headers=headers(alice))
    assert [f["user"]["name"] for f in outgoing.json()] == ["Bilal"]

    accepted = await client.post(f"/api/friendships/accept/{friendship_id}", headers=headers(bilal))
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"

    friends = await client.get("/api/friendships/friends", headers=headers(alice))
    assert [f["user"]["id"] for f in friends.json()] == [bilal.id]
    assert "email" not in friends.json()[0]["user"]
    assert "phone" not in friends.json()[0]["user"]
    friends = await client.get("/api/friendships/friends", headers=headers(bilal))
    assert [f["user"]["id"] for f in friends.json()] == [alice.id]


async def test_cannot_befriend_self(client, make_user, headers):
    user = await make_user()
    resp = await _send(client, headers, user, user)
    assert resp.status_code == 400


async def test_request_unknown_user(client, make_user, headers):
    resp = await client.post("/api/friendships/request", json={"addressee_id": 999}, headers=headers(await make_user()))
    assert resp.status_code == 404


async def test_duplicate_request_in_either_direction(client, make_user, headers):
    alice = await make_user()
    bilal = await make_user()
    await _send(client, headers, alice, bilal)

    assert (await _send(client, headers, alice, bilal)).status_code == 409
    reverse = await _send(client, headers, bilal, alice)
    assert reverse.status_code == 409
    assert reverse.json()["detail"] == "Friend request already exists"


async def test_only_addressee_can_accept(client, make_user, headers):
    alice = await make_user()
    bilal = await make_user()
    friendship_id = (await _send(client, headers, alice, bilal)).json()["id"]

    resp = await client.post(f"/api/friendships/accept/{friendship_id}", headers=headers(alice))
    assert resp.status_code == 403


async def test_reject_deletes_request(client, make_user, headers, fetch):
    alice = await make_user()
    bilal = await make_user()
    friendship_id = (await _send(client, headers, alice, bilal)).json()["id"]

    resp = await client.post(f"/api/friendships/reject/{friendship_id}", headers=headers(bilal))
    assert resp.status_code == 200
    assert await fetch(Friendship, friendship_id) is None

    # Free to ask again
    assert (await _send(client, headers, alice, bilal)).status_code == 201


async def test_unfriend(client, make_user, headers):
    alice = await make_user()
    bilal = await make_user()
    carla = await make_user()
    friendship_id = (await _send(client, headers, alice, bilal)).json()["id"]
    await client.post(f"/api/friendships/accept/{friendship_id}", headers=headers(bilal))

    outsider = await client.delete(f"/api/friendships/{friendship_id}", headers=headers(carla))
    assert outsider.status_code == 403

    resp = await client.delete(f"/api/friendships/{friendship_id}", headers=headers(bilal))
    assert resp.status_code == 200
    assert (await client.get("/api/friendships/friends", headers=headers(alice))).json() == []


async def test_friendship_status(client, make_user, headers):
    alice = await make_user()
    bilal = await make_user()

    none = await client.get(f"/api/friendships/status/{bilal.id}", headers=headers(alice))
    assert none.json()["status"] == "none"

    friendship_id = (await _send(client, headers, alice, bilal)).json()["id"]
    sent = await client.get(f"/api/friendships/status/{bilal.id}", headers=headers(alice))
    received = await client.get(f"/api/friendships/status/{alice.id}", headers=headers(bilal))
    assert (sent.json()["status"], sent.json()["direction"]) == ("pending", "sent")
    assert received.json()["direction"] == "received"

    await client.post(f"/api/friendships/accept/{friendship_id}", headers=headers(bilal))
    accepted = await client.get(f"/api/friendships/status/{bilal.id}", headers=headers(alice))
    assert accepted.json() == {"status": "accepted", "direction": None, "friendship_id": friendship_id}


async def test_suggestions_are_unconnected_community_members(
    client, make_user, make_community, add_member, headers
):
    me = await make_user(name="Me")
    friend = await make_user(name="Friend")
    stranger = await make_user(name="Stranger")
    teammate = await make_user(name="Teammate")
    elsewhere = await make_user(name="Elsewhere")
    community = await make_community()
    other = await make_community()
    for user in (me, friend, stranger, teammate):
        await add_member(community, user)
    await add_member(other, elsewhere)
    await _send(client, headers, friend, me)

    resp = await client.get("/api/friendships/suggestions", headers=headers(me))
    assert resp.status_code == 200
    assert [u["name"] for u in resp.json()] == ["Stranger", "Teammate"]
    assert all("email" not in u and "phone" not in u for u in resp.json())
