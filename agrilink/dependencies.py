from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import jwt
import redis.asyncio as redis
from redis.exceptions import RedisError
from fastapi import Depends, Header, HTTPException, Request
from pydantic import BaseModel

from agrilink import db as db_module
from agrilink.config import Settings
from agrilink.models import ErrorCode, User
from agrilink.services.auth import decode_token
from agrilink.services.errors import ServiceError

settings = Settings()
redis_client = redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    code: str
    message: str


@dataclass(frozen=True)
class RequestContext:
    """Authenticated caller, passed explicitly to every protected handler."""

    user_id: int
    user: User


def http_error(exc: ServiceError) -> HTTPException:
    err = ErrorResponse(code=exc.code.value, message=exc.message)
    return HTTPException(status_code=exc.status_code, detail=err.model_dump())


def _unauthorized(message: str) -> HTTPException:
    err = ErrorResponse(code=ErrorCode.UNAUTHORIZED, message=message)
    return HTTPException(status_code=401, detail=err.model_dump())


async def get_request_context(
    authorization: str | None = Header(None, alias="Authorization"),
) -> RequestContext:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise _unauthorized("Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    try:
        user_id = decode_token(token)
    except jwt.ExpiredSignatureError as exc:
        raise _unauthorized("Expired token") from exc
    except jwt.PyJWTError as exc:
        raise _unauthorized("Invalid token") from exc

    def _load() -> User | None:
        with db_module.SessionLocal() as db:
            return db.get(User, user_id)

    user = await asyncio.to_thread(_load)
    if user is None:
        raise _unauthorized("User not found")
    return RequestContext(user_id=user_id, user=user)


def _client_ip(request: Request) -> str:
    client_host = request.client.host if request.client else ""
    ip = client_host
    xff = request.headers.get("X-Forwarded-For")
    if xff and client_host in settings.trusted_proxies:
        forwarded = [h.strip() for h in xff.split(",") if h.strip()]
        proxies = forwarded[1:] + [client_host]
        if forwarded and all(p in settings.trusted_proxies for p in proxies):
            ip = forwarded[0]
    return ip


async def _count(keys: list[str]) -> list[int]:
    try:
        pipe = redis_client.pipeline()
        for key in keys:
            pipe.incr(key)
            pipe.expire(key, 60)
        results = await pipe.execute()
    except RedisError as exc:
        logger.exception("Redis unavailable for rate limiting: %s", exc)
        err = ErrorResponse(
            code=ErrorCode.SERVICE_UNAVAILABLE, message="Rate limiter unavailable"
        )
        raise HTTPException(status_code=503, detail=err.model_dump()) from exc
    return results[::2]


def _too_many() -> HTTPException:
    err = ErrorResponse(code=ErrorCode.TOO_MANY_REQUESTS, message="Rate limit exceeded")
    return HTTPException(status_code=429, detail=err.model_dump())


async def rate_limit_ip(request: Request) -> str:
    """Throttle anonymous requests by client IP via Redis."""
    ip = _client_ip(request)
    (ip_count,) = await _count([f"rate:ip:{ip}"])
    if ip_count > settings.rate_limit_ip_per_min:
        raise _too_many()
    return ip


async def rate_limit(
    request: Request, ctx: RequestContext = Depends(get_request_context)
) -> RequestContext:
    """Throttle authenticated requests by IP and user via Redis."""
    ip = _client_ip(request)
    ip_count, user_count = await _count([f"rate:ip:{ip}", f"rate:user:{ctx.user_id}"])
    if (
        ip_count > settings.rate_limit_ip_per_min
        or user_count > settings.rate_limit_user_per_min
    ):
        raise _too_many()
    return ctx
