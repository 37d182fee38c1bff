import asyncio
import logging
import time

from fastapi import APIRouter, Depends, Query, Response

from agrilink import db as db_module
from agrilink.config import Settings
from agrilink.dependencies import ErrorResponse, RequestContext, http_error, rate_limit
from agrilink.metrics import nearby_results_total, nearby_search_seconds
from agrilink.schemas import FarmerOut, NearbyFarmerOut
from agrilink.services.errors import ServiceError
from agrilink.services.proximity import (
    ORIGIN_FROM_PROFILE,
    SearchFilters,
    find_nearby,
    resolve_origin,
)

settings = Settings()
logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/farmers",
    response_model=list[NearbyFarmerOut],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def nearby_farmers(
    response: Response,
    longitude: float | None = Query(None),
    latitude: float | None = Query(None),
    max_distance: float | None = Query(None, alias="maxDistance"),
    crop_type: str | None = Query(None, alias="cropType"),
    expertise: str | None = Query(None),
    equipment: str | None = Query(None),
    ctx: RequestContext = Depends(rate_limit),
):
    """Farmers around a point, nearest first.

    Without coordinates the caller's stored location is the origin; the
    ``X-Search-Origin`` header says which one was used.
    """
    filters = SearchFilters(crop=crop_type, expertise=expertise, equipment=equipment)
    distance = settings.nearby_default_distance_m if max_distance is None else max_distance

    def _db_call() -> tuple[list[NearbyFarmerOut], str]:
        origin, source = resolve_origin(ctx.user, longitude, latitude)
        with db_module.SessionLocal() as db:
            found = find_nearby(
                db,
                origin=origin,
                max_distance_m=distance,
                filters=filters,
                exclude_id=ctx.user_id,
            )
            farmers = [
                NearbyFarmerOut(
                    **FarmerOut.model_validate(item.user).model_dump(),
                    distance_m=round(item.distance_m, 1),
                )
                for item in found
            ]
        return farmers, source

    start = time.perf_counter()
    try:
        farmers, source = await asyncio.to_thread(_db_call)
    except ServiceError as exc:
        raise http_error(exc) from exc
    nearby_search_seconds.observe(time.perf_counter() - start)
    nearby_results_total.inc(len(farmers))
    if source == ORIGIN_FROM_PROFILE:
        logger.info("nearby search for %s used stored profile location", ctx.user_id)
    response.headers["X-Search-Origin"] = source
    return farmers
