from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from agrilink.db import as_utc
from agrilink.models import Conversation, Message
from agrilink.services.errors import ForbiddenError, InvalidArgumentError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_participant(conversation: Conversation | None, user_id: int) -> Conversation:
    if conversation is None or not conversation.has_participant(user_id):
        raise ForbiddenError("Access to this conversation is not allowed")
    return conversation


def get_participant_conversation(
    db: Session, *, conversation_id: int, user_id: int
) -> Conversation:
    """Load a conversation ``user_id`` takes part in.

    Unknown conversations are reported as forbidden so that ids cannot be
    probed.
    """
    return _ensure_participant(db.get(Conversation, conversation_id), user_id)


def _lock_conversation(db: Session, conversation_id: int) -> Conversation | None:
    """Take the conversation's write lock, then load its current state.

    The no-op UPDATE locks the row (the whole database on SQLite) until the
    transaction ends, so concurrent appends to one conversation commit in the
    order they read ``updated_at``.
    """
    db.execute(
        update(Conversation)
        .where(Conversation.id == conversation_id)
        .values(updated_at=Conversation.updated_at)
        .execution_options(synchronize_session=False)
    )
    return db.scalars(
        select(Conversation)
        .where(Conversation.id == conversation_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).one_or_none()


def append_message(
    db: Session, *, conversation_id: int, sender_id: int, content: str
) -> Message:
    """Append a message and move the conversation's summary pointer.

    Both writes are committed together under the conversation lock;
    ``created_at`` and ``updated_at`` never go backwards within a
    conversation.
    """
    conversation = _lock_conversation(db, conversation_id)
    try:
        _ensure_participant(conversation, sender_id)
        if content is None or not content.strip():
            raise InvalidArgumentError("Message content must not be empty")
    except (ForbiddenError, InvalidArgumentError):
        db.rollback()
        raise

    now = _utcnow()
    previous = as_utc(conversation.updated_at)
    if previous is not None and previous > now:
        now = previous

    message = Message(
        conversation_id=conversation.id,
        sender_id=sender_id,
        content=content,
        created_at=now,
    )
    db.add(message)
    db.flush()
    conversation.last_message_id = message.id
    conversation.updated_at = now
    db.commit()
    logger.info(
        "message appended",
        extra={
            "message_id": message.id,
            "conversation_id": conversation.id,
            "user_id": sender_id,
        },
    )
    return message


def list_messages(
    db: Session, *, conversation_id: int, requester_id: int
) -> list[Message]:
    """Messages of a conversation, oldest first."""
    get_participant_conversation(
        db, conversation_id=conversation_id, user_id=requester_id
    )
    return list(
        db.scalars(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
    )


__all__ = ["get_participant_conversation", "append_message", "list_messages"]
