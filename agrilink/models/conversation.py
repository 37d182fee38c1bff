from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    UniqueConstraint,
)

from agrilink.models.base import Base


def _now():
    return datetime.now(timezone.utc)


class Conversation(Base):
    """Two-party thread; the pair is stored normalised as (low, high)."""

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint(
            "participant_low_id",
            "participant_high_id",
            name="conversations_participants_key",
        ),
        CheckConstraint(
            "participant_low_id < participant_high_id",
            name="conversations_participants_ordered",
        ),
    )

    id = Column(Integer, primary_key=True)
    participant_low_id = Column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    participant_high_id = Column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    last_message_id = Column(Integer)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    @property
    def participant_ids(self) -> tuple[int, int]:
        return (self.participant_low_id, self.participant_high_id)

    def has_participant(self, user_id: int) -> bool:
        return user_id in self.participant_ids

    def other_participant(self, user_id: int) -> int:
        if user_id == self.participant_low_id:
            return self.participant_high_id
        return self.participant_low_id


__all__ = ["Conversation"]
