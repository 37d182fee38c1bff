"""Response projections shared by several controllers.

Credential fields never appear here.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict

from agrilink.db import as_utc

# Timestamps always leave the API with an explicit UTC offset.
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class _FromOrm(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class UserRef(_FromOrm):
    id: int
    name: str


class FarmerOut(_FromOrm):
    id: int
    name: str
    email: str
    longitude: float | None = None
    latitude: float | None = None
    crops: list[str] = []
    expertise: str | None = None
    equipment: list[str] = []
    experience: int = 0
    created_at: UtcDatetime | None = None


class NearbyFarmerOut(FarmerOut):
    distance_m: float


class MessageOut(_FromOrm):
    id: int
    conversation_id: int
    sender_id: int
    content: str
    created_at: UtcDatetime


class ConversationOut(BaseModel):
    id: int
    recipient: UserRef
    last_message: MessageOut | None = None
    created_at: UtcDatetime
    updated_at: UtcDatetime


class DiseaseOut(_FromOrm):
    id: int
    name: str
    description: str
    symptoms: list[str] = []
    treatment: str | None = None
    affected_crops: list[str] = []
