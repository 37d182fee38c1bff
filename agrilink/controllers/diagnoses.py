import asyncio
import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from agrilink import db as db_module
from agrilink.config import Settings
from agrilink.dependencies import ErrorResponse, RequestContext, http_error, rate_limit
from agrilink.metrics import diag_requests_total
from agrilink.models import ErrorCode
from agrilink.schemas import DiseaseOut, UserRef, UtcDatetime
from agrilink.services.diagnosis import (
    DiagnosisEngine,
    RandomDiagnosisEngine,
    community_feed,
    record_diagnosis,
    share_diagnosis,
)
from agrilink.services.errors import ServiceError
from agrilink.services.storage import StorageError, get_public_url, upload_image

settings = Settings()
logger = logging.getLogger(__name__)

IMAGE_FILE = File(...)

router = APIRouter()

_engine: DiagnosisEngine = RandomDiagnosisEngine()


def get_diagnosis_engine() -> DiagnosisEngine:
    return _engine


class DiagnosisOut(BaseModel):
    id: int
    disease_name: str
    confidence: int
    description: str
    treatment: str | None = None
    image_key: str
    image_url: str


class ShareRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    diagnosis_id: int = Field(alias="diagnosisId")


class CommunityDiagnosisOut(BaseModel):
    id: int
    user: UserRef
    disease: DiseaseOut | None = None
    image_url: str
    confidence: int | None = None
    notes: str | None = None
    created_at: UtcDatetime


@router.post(
    "/diagnose",
    response_model=DiagnosisOut,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        415: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def diagnose(
    image: UploadFile = IMAGE_FILE,
    ctx: RequestContext = Depends(rate_limit),
    engine: DiagnosisEngine = Depends(get_diagnosis_engine),
):
    """Store the uploaded plant photo and return a (simulated) diagnosis."""
    diag_requests_total.inc()
    content_type = image.content_type or ""
    if not content_type.startswith("image/"):
        err = ErrorResponse(
            code=ErrorCode.UNSUPPORTED_MEDIA_TYPE, message="Only images are accepted"
        )
        raise HTTPException(status_code=415, detail=err.model_dump())

    contents = await image.read()
    if not contents:
        err = ErrorResponse(code=ErrorCode.BAD_REQUEST, message="No image provided")
        raise HTTPException(status_code=400, detail=err.model_dump())
    if len(contents) > settings.upload_max_bytes:
        err = ErrorResponse(
            code=ErrorCode.PAYLOAD_TOO_LARGE, message="image too large"
        )
        raise HTTPException(status_code=413, detail=err.model_dump())

    try:
        key = await upload_image(ctx.user_id, contents, content_type)
    except StorageError as exc:
        err = ErrorResponse(
            code=ErrorCode.SERVICE_UNAVAILABLE, message="Image storage unavailable"
        )
        raise HTTPException(status_code=503, detail=err.model_dump()) from exc

    def _db_call() -> DiagnosisOut:
        with db_module.SessionLocal() as db:
            diagnosis, result = record_diagnosis(
                db, user_id=ctx.user_id, image_key=key, engine=engine
            )
            return DiagnosisOut(
                id=diagnosis.id,
                disease_name=result.disease_name,
                confidence=result.confidence,
                description=result.description,
                treatment=result.treatment,
                image_key=key,
                image_url=get_public_url(key),
            )

    out = await asyncio.to_thread(_db_call)
    logger.info("diagnosis %s recorded for user %s", out.id, ctx.user_id)
    return out


@router.post(
    "/share-diagnosis",
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def share(body: ShareRequest, ctx: RequestContext = Depends(rate_limit)):
    def _db_call() -> None:
        with db_module.SessionLocal() as db:
            share_diagnosis(db, user_id=ctx.user_id, diagnosis_id=body.diagnosis_id)

    try:
        await asyncio.to_thread(_db_call)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return {"status": "shared"}


@router.get(
    "/community-diagnoses",
    response_model=list[CommunityDiagnosisOut],
    responses={401: {"model": ErrorResponse}},
)
async def community_diagnoses(
    crop: str | None = Query(None),
    ctx: RequestContext = Depends(rate_limit),
):
    def _db_call() -> list[CommunityDiagnosisOut]:
        with db_module.SessionLocal() as db:
            items = community_feed(
                db,
                requester=ctx.user,
                crop=crop,
                limit=settings.community_feed_limit,
            )
            return [
                CommunityDiagnosisOut(
                    id=item.diagnosis.id,
                    user=UserRef.model_validate(item.user),
                    disease=(
                        DiseaseOut.model_validate(item.disease)
                        if item.disease is not None
                        else None
                    ),
                    image_url=get_public_url(item.diagnosis.image_key),
                    confidence=item.diagnosis.confidence,
                    notes=item.diagnosis.notes,
                    created_at=item.diagnosis.created_at,
                )
                for item in items
            ]

    return await asyncio.to_thread(_db_call)
