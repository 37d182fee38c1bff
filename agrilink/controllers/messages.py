import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from agrilink import db as db_module
from agrilink.dependencies import ErrorResponse, RequestContext, http_error, rate_limit
from agrilink.metrics import conversation_forbidden_total, messages_sent_total
from agrilink.schemas import MessageOut
from agrilink.services.errors import ForbiddenError, ServiceError
from agrilink.services.messages import append_message, list_messages

logger = logging.getLogger(__name__)

router = APIRouter()


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: int = Field(alias="conversationId")
    content: str = Field(max_length=5000)


def _service_failure(exc: ServiceError, user_id: int) -> HTTPException:
    if isinstance(exc, ForbiddenError):
        conversation_forbidden_total.inc()
        logger.warning("audit: user %s denied conversation access", user_id)
    return http_error(exc)


@router.get(
    "/messages/{conversation_id}",
    response_model=list[MessageOut],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def get_messages(conversation_id: int, ctx: RequestContext = Depends(rate_limit)):
    """Conversation history, oldest first."""

    def _db_call() -> list[MessageOut]:
        with db_module.SessionLocal() as db:
            messages = list_messages(
                db, conversation_id=conversation_id, requester_id=ctx.user_id
            )
            return [MessageOut.model_validate(m) for m in messages]

    try:
        return await asyncio.to_thread(_db_call)
    except ServiceError as exc:
        raise _service_failure(exc, ctx.user_id) from exc


@router.post(
    "/messages",
    status_code=201,
    response_model=MessageOut,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
    },
)
async def send_message(body: SendMessageRequest, ctx: RequestContext = Depends(rate_limit)):
    def _db_call() -> MessageOut:
        with db_module.SessionLocal() as db:
            message = append_message(
                db,
                conversation_id=body.conversation_id,
                sender_id=ctx.user_id,
                content=body.content,
            )
            return MessageOut.model_validate(message)

    try:
        message = await asyncio.to_thread(_db_call)
    except ServiceError as exc:
        raise _service_failure(exc, ctx.user_id) from exc
    messages_sent_total.inc()
    return message
