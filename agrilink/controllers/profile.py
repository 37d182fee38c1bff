import asyncio

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from agrilink import db as db_module
from agrilink.dependencies import ErrorResponse, RequestContext, http_error, rate_limit
from agrilink.schemas import FarmerOut
from agrilink.services.errors import ServiceError
from agrilink.services.users import update_profile

router = APIRouter()


class ProfileUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    crops: list[str] | None = None
    expertise: str | None = None
    equipment: list[str] | None = None
    experience: int | None = Field(None, ge=0)
    longitude: float | None = Field(None, ge=-180, le=180)
    latitude: float | None = Field(None, ge=-90, le=90)


@router.get("/profile", response_model=FarmerOut, responses={401: {"model": ErrorResponse}})
async def get_profile(ctx: RequestContext = Depends(rate_limit)):
    return FarmerOut.model_validate(ctx.user)


@router.put(
    "/profile",
    response_model=FarmerOut,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def put_profile(body: ProfileUpdate, ctx: RequestContext = Depends(rate_limit)):
    def _db_call() -> FarmerOut:
        with db_module.SessionLocal() as db:
            user = update_profile(
                db, user_id=ctx.user_id, changes=body.model_dump(exclude_unset=True)
            )
            return FarmerOut.model_validate(user)

    try:
        return await asyncio.to_thread(_db_call)
    except ServiceError as exc:
        raise http_error(exc) from exc
