"""Identity store: registration, credential checks and profile updates."""
from __future__ import annotations

import logging
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agrilink.models import User
from agrilink.services.auth import hash_password, verify_password
from agrilink.services.errors import (
    EmailTakenError,
    InvalidArgumentError,
    InvalidCredentialsError,
    NotFoundError,
)
from agrilink.services.geo import Point

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "crops", "expertise", "equipment", "experience")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _clean_tags(tags: Iterable[str] | None) -> list[str]:
    seen: list[str] = []
    for tag in tags or []:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def _location(longitude: float | None, latitude: float | None) -> Point | None:
    if longitude is None and latitude is None:
        return None
    if longitude is None or latitude is None:
        raise InvalidArgumentError("longitude and latitude must be given together")
    point = Point(float(longitude), float(latitude))
    if not point.is_valid():
        raise InvalidArgumentError("Coordinates out of range")
    return point


def get_identity(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def find_by_login_handle(db: Session, email: str) -> User:
    user = db.scalars(
        select(User).where(User.email == normalize_email(email))
    ).one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user


def register_user(
    db: Session,
    *,
    name: str,
    email: str,
    password: str,
    longitude: float | None = None,
    latitude: float | None = None,
    crops: Iterable[str] | None = None,
    expertise: str | None = None,
    equipment: Iterable[str] | None = None,
    experience: int = 0,
) -> User:
    point = _location(longitude, latitude)
    email = normalize_email(email)
    if db.scalars(select(User.id).where(User.email == email)).first() is not None:
        raise EmailTakenError("Email already registered")

    user = User(
        name=name.strip(),
        email=email,
        password_hash=hash_password(password),
        longitude=point.longitude if point else None,
        latitude=point.latitude if point else None,
        crops=_clean_tags(crops),
        expertise=expertise or None,
        equipment=_clean_tags(equipment),
        experience=experience or 0,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise EmailTakenError("Email already registered") from exc
    logger.info("audit: user %s registered", user.id)
    return user


def authenticate(db: Session, *, email: str, password: str) -> User:
    try:
        user = find_by_login_handle(db, email)
    except NotFoundError as exc:
        raise InvalidCredentialsError("Invalid email or password") from exc
    if not verify_password(password, user.password_hash):
        raise InvalidCredentialsError("Invalid email or password")
    return user


def update_profile(db: Session, *, user_id: int, changes: dict[str, Any]) -> User:
    """Apply a partial profile update; location moves only with both coordinates."""
    user = get_identity(db, user_id)
    for field in PROFILE_FIELDS:
        if field not in changes or changes[field] is None:
            continue
        value = changes[field]
        if field in ("crops", "equipment"):
            value = _clean_tags(value)
        elif field == "name":
            value = value.strip()
        setattr(user, field, value)

    longitude = changes.get("longitude")
    latitude = changes.get("latitude")
    if longitude is not None and latitude is not None:
        point = _location(longitude, latitude)
        user.longitude = point.longitude
        user.latitude = point.latitude

    db.commit()
    return user


__all__ = [
    "normalize_email",
    "get_identity",
    "find_by_login_handle",
    "register_user",
    "authenticate",
    "update_profile",
]
