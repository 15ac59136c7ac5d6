from chatsync.core.config import settings

from conftest import message_args


def create_room(client, headers, room_id="room1", owner="alice"):
    return client.post("/api/mutate/room.create", headers=headers, json={
        "id": room_id, "name": "General", "owner_id": owner, "created_at": 1,
    })


def create_chat(client, headers, chat_id="chat1", room_id="room1", owner="alice"):
    return client.post("/api/mutate/chat.create", headers=headers, json={
        "id": chat_id, "title": "General", "room_id": room_id, "owner_id": owner, "created_at": 1,
    })


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_mutators_listed(client):
    names = client.get("/api/mutators").json()["mutators"]
    assert "message.branch" in names
    assert names == sorted(names)


# ==================== MUTATE ====================

def test_mutate_status_codes(client, auth_header):
    alice, bob = auth_header("alice"), auth_header("bob")

    response = create_room(client, {})
    assert response.status_code == 401
    assert response.json() == {"error": "Must be logged in", "kind": "Unauthenticated"}

    assert create_room(client, alice).status_code == 200
    assert create_room(client, alice).status_code == 409

    response = client.post("/api/mutate/room.delete", headers=bob, json="room1")
    assert response.status_code == 403
    assert response.json()["kind"] == "Forbidden"

    assert client.post("/api/mutate/room.explode", headers=alice, json={}).status_code == 404
    assert client.post("/api/mutate/room.create", headers=alice, json={"id": "x"}).status_code == 400


def test_wrong_authorization_scheme(client, make_token):
    response = client.post(
        "/api/mutate/room.create",
        headers={"Authorization": f"Basic {make_token(sub='alice')}"},
        json={"id": "room1", "name": "x", "owner_id": "alice"},
    )
    assert response.status_code == 401


def test_invalid_token_is_anonymous(client):
    response = create_room(client, {"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert client.get("/api/rooms").json() == []


# ==================== PUSH ====================

def test_push_applies_each_intent_independently(client, auth_header):
    alice, bob = auth_header("alice"), auth_header("bob")
    create_room(client, alice)
    create_chat(client, alice)

    response = client.post("/api/push", headers=bob, json={"mutations": [
        {"id": 1, "name": "message.create", "args": message_args("m1", sender_id="bob", timestamp=1)},
        {"id": 2, "name": "chat.delete", "args": "chat1"},
        {"id": 3, "name": "message.create", "args": message_args("m2", sender_id="bob", timestamp=2)},
    ]})

    assert response.status_code == 200
    results = response.json()["mutations"]
    assert results[0] == {"id": 1, "result": {}}
    assert results[1]["error"]["kind"] == "Forbidden"
    assert results[2] == {"id": 3, "result": {}}

    messages = client.get("/api/chats/chat1/messages").json()
    assert [m["id"] for m in messages] == ["m1", "m2"]


def test_push_without_identity_writes_nothing(client, auth_header):
    response = client.post("/api/push", json={"mutations": [
        {"id": "a", "name": "room.create", "args": {"id": "room1", "name": "x", "owner_id": "alice"}},
    ]})
    assert response.json()["mutations"][0]["error"]["kind"] == "Unauthenticated"
    assert client.get("/api/rooms").json() == []


# ==================== READS ====================

def test_room_reads(client, auth_header):
    alice, bob = auth_header("alice"), auth_header("bob")
    create_room(client, alice)
    create_chat(client, alice)
    client.post("/api/mutate/roomMember.join", headers=bob, json={"room_id": "room1", "user_id": "bob"})

    assert [r["id"] for r in client.get("/api/rooms").json()] == ["room1"]
    assert [c["id"] for c in client.get("/api/rooms/room1/chats").json()] == ["chat1"]
    assert [m["user_id"] for m in client.get("/api/rooms/room1/members").json()] == ["bob"]


def test_branch_reads(client, auth_header):
    alice = auth_header("alice")
    create_room(client, alice)
    create_chat(client, alice)
    client.post("/api/mutate/message.create", headers=alice, json=message_args("a", timestamp=1))
    client.post("/api/mutate/message.create", headers=alice, json=message_args("b", parent_id="a", timestamp=2))
    response = client.post("/api/mutate/message.branch", headers=alice, json={
        "original_message_id": "a",
        "message": message_args("c", parent_id="b", timestamp=3),
    })
    assert response.status_code == 200

    assert [m["id"] for m in client.get("/api/messages/a/branches").json()] == ["b", "c"]
    assert [m["id"] for m in client.get("/api/messages/c/thread").json()] == ["a", "c"]

    response = client.get("/api/messages/nope/thread")
    assert response.status_code == 404
    assert response.json() == {"error": "Message not found"}


def test_reads_can_require_identity(client, auth_header, monkeypatch):
    monkeypatch.setattr(settings, "READ_PERMISSION", "authenticated")
    assert client.get("/api/rooms").status_code == 401
    assert client.get("/api/rooms", headers=auth_header("alice")).status_code == 200


# ==================== SHARE ====================

def test_share_link(client, auth_header):
    alice = auth_header("alice")
    create_room(client, alice)
    create_chat(client, alice)

    assert client.post("/api/share", json={"chat_id": "chat1"}).status_code == 401

    response = client.post("/api/share", headers=alice, json={"chat_id": "chat1", "allow_collaboration": True})
    assert response.status_code == 200
    link = response.json()
    assert link["id"].startswith("share_")
    assert link["created_by"] == "alice"
    assert link["allow_collaboration"] is True
    assert link["url"] == f"{settings.SITE_URL.rstrip('/')}/share/{link['id']}"

    assert client.get(f"/api/share/{link['id']}").json()["chat_id"] == "chat1"
    assert client.get("/api/share/missing").status_code == 404

    response = client.post("/api/mutate/shareLink.delete", headers=auth_header("bob"), json=link["id"])
    assert response.status_code == 403
