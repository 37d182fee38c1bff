from __future__ import annotations

import logging
from typing import NamedTuple

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agrilink.metrics import conversation_race_total
from agrilink.models import Conversation, Message, User
from agrilink.services.errors import ConflictError, InvalidArgumentError, NotFoundError

logger = logging.getLogger(__name__)


class ConversationView(NamedTuple):
    """Conversation as seen by one participant."""

    conversation: Conversation
    recipient: User
    last_message: Message | None


def normalize_pair(a: int, b: int) -> tuple[int, int]:
    return (a, b) if a < b else (b, a)


def find_by_pair(db: Session, a: int, b: int) -> Conversation | None:
    low, high = normalize_pair(a, b)
    return db.scalars(
        select(Conversation).where(
            Conversation.participant_low_id == low,
            Conversation.participant_high_id == high,
        )
    ).one_or_none()


def _insert(db: Session, a: int, b: int) -> Conversation:
    low, high = normalize_pair(a, b)
    conversation = Conversation(participant_low_id=low, participant_high_id=high)
    db.add(conversation)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Conversation already exists") from exc
    return conversation


def get_or_create_conversation(
    db: Session, *, user_id: int, recipient_id: int
) -> tuple[ConversationView, bool]:
    """Return the single conversation between two users, creating it if needed.

    The second element is ``True`` when this call created the record. A
    concurrent creator losing the unique-constraint race re-reads the winner.
    """
    if user_id == recipient_id:
        raise InvalidArgumentError("Cannot start a conversation with yourself")
    recipient = db.get(User, recipient_id)
    if recipient is None:
        raise NotFoundError("Recipient not found")

    conversation = find_by_pair(db, user_id, recipient_id)
    if conversation is not None:
        return _view(db, conversation, recipient), False

    try:
        conversation = _insert(db, user_id, recipient_id)
    except ConflictError:
        conversation = find_by_pair(db, user_id, recipient_id)
        if conversation is None:
            raise
        # rollback expired everything loaded before the failed insert
        db.refresh(recipient)
        conversation_race_total.inc()
        logger.info(
            "audit: conversation race resolved",
            extra={
                "conversation_id": conversation.id,
                "user_id": user_id,
                "recipient_id": recipient_id,
            },
        )
        return _view(db, conversation, recipient), False

    logger.info(
        "audit: conversation created",
        extra={
            "conversation_id": conversation.id,
            "user_id": user_id,
            "recipient_id": recipient_id,
        },
    )
    return _view(db, conversation, recipient), True


def _view(db: Session, conversation: Conversation, recipient: User) -> ConversationView:
    last_message = None
    if conversation.last_message_id is not None:
        last_message = db.get(Message, conversation.last_message_id)
    return ConversationView(conversation, recipient, last_message)


def list_conversations(db: Session, *, user_id: int) -> list[ConversationView]:
    """Conversations of ``user_id``, most recently active first."""
    conversations = list(
        db.scalars(
            select(Conversation)
            .where(
                or_(
                    Conversation.participant_low_id == user_id,
                    Conversation.participant_high_id == user_id,
                )
            )
            .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        )
    )
    if not conversations:
        return []

    other_ids = {c.other_participant(user_id) for c in conversations}
    users = {
        u.id: u for u in db.scalars(select(User).where(User.id.in_(other_ids)))
    }
    message_ids = {c.last_message_id for c in conversations if c.last_message_id}
    messages = {}
    if message_ids:
        messages = {
            m.id: m
            for m in db.scalars(select(Message).where(Message.id.in_(message_ids)))
        }
    return [
        ConversationView(
            c,
            users[c.other_participant(user_id)],
            messages.get(c.last_message_id),
        )
        for c in conversations
    ]


__all__ = [
    "ConversationView",
    "normalize_pair",
    "find_by_pair",
    "get_or_create_conversation",
    "list_conversations",
]
