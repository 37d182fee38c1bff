from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException

from agrilink import db as db_module
from agrilink.config import Settings
from agrilink.controllers import api
from agrilink.db import init_db
from agrilink.dependencies import ErrorResponse
from agrilink.logger import setup_logging
from agrilink.models import ErrorCode
from agrilink.services.diagnosis import seed_diseases
from agrilink.services.storage import close_client, init_storage

settings = Settings()
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)


def _seed() -> None:
    with db_module.SessionLocal() as db:
        seed_diseases(db)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_storage(settings)
    await asyncio.to_thread(init_db, settings)
    if settings.seed_diseases:
        await asyncio.to_thread(_seed)
    yield
    await close_client()


app = FastAPI(
    title="AgriLink API",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Return ``ErrorResponse`` bodies without the ``detail`` wrapper."""
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {"code": str(exc.detail), "message": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("rejected request to %s: %s", request.url.path, exc.errors())
    err = ErrorResponse(code=ErrorCode.BAD_REQUEST, message="Invalid request parameters")
    return JSONResponse(status_code=400, content=err.model_dump(mode="json"))


app.include_router(api.router)

Instrumentator().instrument(app).expose(app)
