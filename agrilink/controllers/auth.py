import asyncio

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from agrilink import db as db_module
from agrilink.dependencies import ErrorResponse, http_error, rate_limit_ip
from agrilink.schemas import FarmerOut
from agrilink.services.auth import issue_token
from agrilink.services.errors import ServiceError
from agrilink.services.users import authenticate, register_user

router = APIRouter()


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=6, max_length=256)
    longitude: float | None = Field(None, ge=-180, le=180)
    latitude: float | None = Field(None, ge=-90, le=90)
    crops: list[str] = Field(default_factory=list)
    expertise: str | None = None
    equipment: list[str] = Field(default_factory=list)
    experience: int = Field(0, ge=0)


class LoginRequest(BaseModel):
    email: str
    password: str


class AuthResponse(BaseModel):
    token: str
    user: FarmerOut


@router.post(
    "/register",
    status_code=201,
    response_model=AuthResponse,
    responses={400: {"model": ErrorResponse}},
)
async def register(body: RegisterRequest, _ip: str = Depends(rate_limit_ip)):
    def _db_call() -> FarmerOut:
        with db_module.SessionLocal() as db:
            user = register_user(db, **body.model_dump())
            return FarmerOut.model_validate(user)

    try:
        user = await asyncio.to_thread(_db_call)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return AuthResponse(token=issue_token(user.id), user=user)


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={400: {"model": ErrorResponse}},
)
async def login(body: LoginRequest, _ip: str = Depends(rate_limit_ip)):
    def _db_call() -> FarmerOut:
        with db_module.SessionLocal() as db:
            user = authenticate(db, email=body.email, password=body.password)
            return FarmerOut.model_validate(user)

    try:
        user = await asyncio.to_thread(_db_call)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return AuthResponse(token=issue_token(user.id), user=user)
