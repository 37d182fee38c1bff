"""Password hashing and bearer token handling."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from passlib.context import CryptContext

from agrilink.config import Settings

settings = Settings()
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def issue_token(user_id: int, *, now: datetime | None = None) -> str:
    issued = now or datetime.now(timezone.utc)
    payload = {
        "user_id": user_id,
        "iat": issued,
        "exp": issued + timedelta(days=settings.jwt_ttl_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> int:
    """Return the user id carried by ``token``.

    Raises ``jwt.PyJWTError`` subclasses for expired, tampered or malformed
    tokens.
    """
    payload = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[JWT_ALGORITHM],
        options={"verify_exp": True, "require": ["exp", "user_id"]},
    )
    user_id = payload["user_id"]
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise jwt.InvalidTokenError("user_id must be an integer")
    return user_id
