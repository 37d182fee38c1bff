import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from agrilink.db import SessionLocal, as_utc
from agrilink.models import Conversation, Message
from agrilink.services.conversations import get_or_create_conversation
from agrilink.services.errors import ForbiddenError, InvalidArgumentError
from agrilink.services import messages as messages_service
from agrilink.services.messages import append_message, list_messages
from tests.utils.auth import auth_headers, make_user


def _conversation(a, b) -> int:
    with SessionLocal() as db:
        view, _ = get_or_create_conversation(db, user_id=a.id, recipient_id=b.id)
        return view.conversation.id


def _message_count(conversation_id: int) -> int:
    with SessionLocal() as db:
        return db.query(Message).filter_by(conversation_id=conversation_id).count()


def test_send_and_list_messages_oldest_first(client):
    a = make_user("Alice")
    b = make_user("Bob")
    conv_id = _conversation(a, b)

    for i, (sender, text) in enumerate(
        [(a, "Salut"), (b, "Bonjour"), (a, "Tu as un tracteur ?"), (b, "Oui")]
    ):
        resp = client.post(
            "/api/messages",
            json={"conversationId": conv_id, "content": text},
            headers=auth_headers(sender.id),
        )
        assert resp.status_code == 201, i
        assert resp.json()["sender_id"] == sender.id

    resp = client.get(f"/api/messages/{conv_id}", headers=auth_headers(b.id))
    assert resp.status_code == 200
    messages = resp.json()
    assert [m["content"] for m in messages] == ["Salut", "Bonjour", "Tu as un tracteur ?", "Oui"]
    created = [datetime.fromisoformat(m["created_at"]) for m in messages]
    assert created == sorted(created)


def test_send_accepts_snake_case_body(client):
    a = make_user("Alice")
    b = make_user("Bob")
    conv_id = _conversation(a, b)
    resp = client.post(
        "/api/messages",
        json={"conversation_id": conv_id, "content": "ok"},
        headers=auth_headers(a.id),
    )
    assert resp.status_code == 201
    assert resp.json()["conversation_id"] == conv_id


@pytest.mark.parametrize("content", ["", "   ", "\n\t "])
def test_blank_message_rejected_and_not_persisted(client, content):
    a = make_user("Alice")
    b = make_user("Bob")
    conv_id = _conversation(a, b)
    resp = client.post(
        "/api/messages",
        json={"conversationId": conv_id, "content": content},
        headers=auth_headers(a.id),
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_ARGUMENT"
    assert _message_count(conv_id) == 0


def test_non_participant_cannot_read_or_write(client):
    a = make_user("Alice")
    b = make_user("Bob")
    mallory = make_user("Mallory")
    conv_id = _conversation(a, b)

    resp = client.get(f"/api/messages/{conv_id}", headers=auth_headers(mallory.id))
    assert resp.status_code == 403
    assert resp.json()["code"] == "FORBIDDEN"

    resp = client.post(
        "/api/messages",
        json={"conversationId": conv_id, "content": "hello"},
        headers=auth_headers(mallory.id),
    )
    assert resp.status_code == 403
    assert _message_count(conv_id) == 0


def test_unknown_conversation_is_forbidden(client):
    a = make_user("Alice")
    resp = client.get("/api/messages/987654", headers=auth_headers(a.id))
    assert resp.status_code == 403


def test_append_moves_last_message_pointer():
    a = make_user("Alice")
    b = make_user("Bob")
    conv_id = _conversation(a, b)

    with SessionLocal() as db:
        first = append_message(db, conversation_id=conv_id, sender_id=a.id, content="un")
        second = append_message(db, conversation_id=conv_id, sender_id=b.id, content="deux")

    with SessionLocal() as db:
        conversation = db.get(Conversation, conv_id)
        assert conversation.last_message_id == second.id
        log = list_messages(db, conversation_id=conv_id, requester_id=a.id)
        assert [m.id for m in log] == [first.id, second.id]
        assert log[-1].id == conversation.last_message_id


def test_message_time_never_precedes_conversation_activity():
    a = make_user("Alice")
    b = make_user("Bob")
    conv_id = _conversation(a, b)
    future = datetime.now(timezone.utc) + timedelta(minutes=5)
    with SessionLocal() as db:
        conversation = db.get(Conversation, conv_id)
        conversation.updated_at = future
        db.commit()

    with SessionLocal() as db:
        first = append_message(db, conversation_id=conv_id, sender_id=a.id, content="un")
        second = append_message(db, conversation_id=conv_id, sender_id=b.id, content="deux")

    assert first.created_at >= future
    assert second.created_at >= first.created_at


def test_content_is_stored_as_sent():
    a = make_user("Alice")
    b = make_user("Bob")
    conv_id = _conversation(a, b)
    with SessionLocal() as db:
        message = append_message(
            db, conversation_id=conv_id, sender_id=a.id, content="  espaces  "
        )
    assert message.content == "  espaces  "


def test_service_errors():
    a = make_user("Alice")
    b = make_user("Bob")
    c = make_user("Carol")
    conv_id = _conversation(a, b)
    with SessionLocal() as db:
        with pytest.raises(InvalidArgumentError):
            append_message(db, conversation_id=conv_id, sender_id=a.id, content="   ")
        with pytest.raises(ForbiddenError):
            append_message(db, conversation_id=conv_id, sender_id=c.id, content="hi")
        with pytest.raises(ForbiddenError):
            list_messages(db, conversation_id=conv_id, requester_id=c.id)


def _send(conversation_id: int, sender_id: int, content: str) -> int:
    with SessionLocal() as db:
        message = append_message(
            db, conversation_id=conversation_id, sender_id=sender_id, content=content
        )
        return message.id


def test_stalled_sender_cannot_rewind_pointer(monkeypatch):
    a = make_user("Alice")
    b = make_user("Bob")
    conv_id = _conversation(a, b)

    t0 = datetime.now(timezone.utc)
    reading_clock = threading.Event()
    release = threading.Event()
    calls = []
    calls_lock = threading.Lock()

    def _clock():
        with calls_lock:
            calls.append(threading.current_thread().name)
            first = len(calls) == 1
        if first:
            # first sender stalls after reading the clock
            reading_clock.set()
            assert release.wait(10)
            return t0
        return t0 + timedelta(seconds=1)

    monkeypatch.setattr(messages_service, "_utcnow", _clock)

    with ThreadPoolExecutor(max_workers=2) as pool:
        slow = pool.submit(_send, conv_id, a.id, "lent")
        assert reading_clock.wait(10)
        fast = pool.submit(_send, conv_id, b.id, "rapide")
        time.sleep(0.3)
        release.set()
        slow_id = slow.result(timeout=30)
        fast_id = fast.result(timeout=30)

    with SessionLocal() as db:
        conversation = db.get(Conversation, conv_id)
        log = list_messages(db, conversation_id=conv_id, requester_id=a.id)

    assert [m.id for m in log] == [slow_id, fast_id]
    assert conversation.last_message_id == log[-1].id
    assert as_utc(conversation.updated_at) == as_utc(log[-1].created_at)
    assert as_utc(log[0].created_at) <= as_utc(log[-1].created_at)


def test_concurrent_appends_keep_pointer_on_last_message():
    a = make_user("Alice")
    b = make_user("Bob")
    conv_id = _conversation(a, b)

    def _burst(i: int) -> list[int]:
        sender = a if i % 2 else b
        return [_send(conv_id, sender.id, f"msg {i}-{n}") for n in range(5)]

    with ThreadPoolExecutor(max_workers=4) as pool:
        sent = [mid for ids in pool.map(_burst, range(4)) for mid in ids]

    with SessionLocal() as db:
        conversation = db.get(Conversation, conv_id)
        log = list_messages(db, conversation_id=conv_id, requester_id=b.id)

    assert sorted(m.id for m in log) == sorted(sent)
    # log order follows commit order
    assert [m.id for m in log] == sorted(sent)
    assert conversation.last_message_id == log[-1].id
    assert as_utc(conversation.updated_at) == as_utc(log[-1].created_at)


def test_timestamps_always_carry_utc_offset(client):
    a = make_user("Alice")
    b = make_user("Bob")
    conv_id = _conversation(a, b)

    sent = client.post(
        "/api/messages",
        json={"conversationId": conv_id, "content": "bonjour"},
        headers=auth_headers(a.id),
    ).json()
    listed = client.get(f"/api/messages/{conv_id}", headers=auth_headers(b.id)).json()
    conversations = client.get("/api/conversations", headers=auth_headers(a.id)).json()

    stamps = [
        sent["created_at"],
        listed[0]["created_at"],
        conversations[0]["updated_at"],
        conversations[0]["last_message"]["created_at"],
    ]
    for stamp in stamps:
        assert datetime.fromisoformat(stamp).utcoffset() == timedelta(0)
    assert datetime.fromisoformat(sent["created_at"]) == datetime.fromisoformat(
        listed[0]["created_at"]
    )
