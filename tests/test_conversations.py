from concurrent.futures import ThreadPoolExecutor

import pytest

from agrilink.db import SessionLocal
from agrilink.models import Conversation
from agrilink.services import conversations as conversations_service
from agrilink.services.conversations import get_or_create_conversation
from agrilink.services.errors import InvalidArgumentError, NotFoundError
from tests.utils.auth import auth_headers, make_user


def _count_conversations() -> int:
    with SessionLocal() as db:
        return db.query(Conversation).count()


def test_create_then_reuse_in_either_order(client):
    a = make_user("Alice")
    b = make_user("Bob")

    first = client.post(
        "/api/conversations", json={"recipient": b.id}, headers=auth_headers(a.id)
    )
    assert first.status_code == 201
    body = first.json()
    assert body["recipient"] == {"id": b.id, "name": "Bob"}
    assert body["last_message"] is None

    second = client.post(
        "/api/conversations", json={"recipient": a.id}, headers=auth_headers(b.id)
    )
    assert second.status_code == 200
    assert second.json()["id"] == body["id"]
    assert second.json()["recipient"] == {"id": a.id, "name": "Alice"}
    assert _count_conversations() == 1


def test_create_unknown_recipient(client):
    a = make_user("Alice")
    resp = client.post(
        "/api/conversations", json={"recipient": 999_999}, headers=auth_headers(a.id)
    )
    assert resp.status_code == 404
    assert resp.json() == {"code": "NOT_FOUND", "message": "Recipient not found"}


def test_create_with_self_rejected(client):
    a = make_user("Alice")
    resp = client.post(
        "/api/conversations", json={"recipient": a.id}, headers=auth_headers(a.id)
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_ARGUMENT"


def test_create_missing_recipient_field(client):
    a = make_user("Alice")
    resp = client.post("/api/conversations", json={}, headers=auth_headers(a.id))
    assert resp.status_code == 400
    assert resp.json()["code"] == "BAD_REQUEST"
    assert "detail" not in resp.json()


def test_concurrent_get_or_create_returns_single_conversation():
    a = make_user("Alice")
    b = make_user("Bob")

    def _call(i: int) -> int:
        user_id, recipient_id = (a.id, b.id) if i % 2 else (b.id, a.id)
        with SessionLocal() as db:
            view, _ = get_or_create_conversation(
                db, user_id=user_id, recipient_id=recipient_id
            )
            return view.conversation.id

    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = list(pool.map(_call, range(16)))

    assert len(set(ids)) == 1
    assert _count_conversations() == 1


def test_lost_race_is_resolved_by_lookup(monkeypatch):
    a = make_user("Alice")
    b = make_user("Bob")
    with SessionLocal() as db:
        existing, created = get_or_create_conversation(db, user_id=a.id, recipient_id=b.id)
    assert created

    real_find = conversations_service.find_by_pair
    calls = []

    def _stale_find(db, x, y):
        calls.append((x, y))
        # first lookup misses, as if the other writer had not committed yet
        if len(calls) == 1:
            return None
        return real_find(db, x, y)

    monkeypatch.setattr(conversations_service, "find_by_pair", _stale_find)
    with SessionLocal() as db:
        view, created = get_or_create_conversation(db, user_id=b.id, recipient_id=a.id)

    # the view stays usable after its session is closed
    assert not created
    assert view.conversation.id == existing.conversation.id
    assert view.recipient.id == a.id
    assert view.recipient.name == "Alice"
    assert view.conversation.participant_ids == tuple(sorted((a.id, b.id)))
    assert len(calls) == 2
    assert _count_conversations() == 1


def test_service_validation():
    a = make_user("Alice")
    with SessionLocal() as db:
        with pytest.raises(InvalidArgumentError):
            get_or_create_conversation(db, user_id=a.id, recipient_id=a.id)
        with pytest.raises(NotFoundError):
            get_or_create_conversation(db, user_id=a.id, recipient_id=a.id + 1000)


def test_list_conversations_most_recent_first(client):
    a = make_user("Alice")
    b = make_user("Bob")
    c = make_user("Carol")
    headers = auth_headers(a.id)

    with_b = client.post("/api/conversations", json={"recipient": b.id}, headers=headers).json()
    with_c = client.post("/api/conversations", json={"recipient": c.id}, headers=headers).json()

    resp = client.get("/api/conversations", headers=headers)
    assert [conv["id"] for conv in resp.json()] == [with_c["id"], with_b["id"]]

    sent = client.post(
        "/api/messages",
        json={"conversationId": with_b["id"], "content": "Bonjour Bob"},
        headers=headers,
    )
    assert sent.status_code == 201

    resp = client.get("/api/conversations", headers=headers)
    listed = resp.json()
    assert [conv["id"] for conv in listed] == [with_b["id"], with_c["id"]]
    assert listed[0]["recipient"] == {"id": b.id, "name": "Bob"}
    assert listed[0]["last_message"]["id"] == sent.json()["id"]
    assert listed[0]["last_message"]["content"] == "Bonjour Bob"
    assert listed[1]["last_message"] is None


def test_list_conversations_shows_other_participant(client):
    a = make_user("Alice")
    b = make_user("Bob")
    client.post("/api/conversations", json={"recipient": b.id}, headers=auth_headers(a.id))

    resp = client.get("/api/conversations", headers=auth_headers(b.id))
    assert resp.status_code == 200
    assert [conv["recipient"]["id"] for conv in resp.json()] == [a.id]


def test_list_conversations_empty(client):
    a = make_user("Alice")
    resp = client.get("/api/conversations", headers=auth_headers(a.id))
    assert resp.status_code == 200
    assert resp.json() == []
