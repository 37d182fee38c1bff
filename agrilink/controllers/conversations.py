import asyncio

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, ConfigDict, Field

from agrilink import db as db_module
from agrilink.dependencies import ErrorResponse, RequestContext, http_error, rate_limit
from agrilink.metrics import conversations_created_total
from agrilink.schemas import ConversationOut, MessageOut, UserRef
from agrilink.services.conversations import (
    ConversationView,
    get_or_create_conversation,
    list_conversations,
)
from agrilink.services.errors import ServiceError

router = APIRouter()


class StartConversationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipient_id: int = Field(alias="recipient")


def to_conversation_out(view: ConversationView) -> ConversationOut:
    conversation = view.conversation
    last_message = None
    if view.last_message is not None:
        last_message = MessageOut.model_validate(view.last_message)
    return ConversationOut(
        id=conversation.id,
        recipient=UserRef.model_validate(view.recipient),
        last_message=last_message,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
    )


@router.get(
    "/conversations",
    response_model=list[ConversationOut],
    responses={401: {"model": ErrorResponse}},
)
async def get_conversations(ctx: RequestContext = Depends(rate_limit)):
    """Caller's conversations, most recently active first."""

    def _db_call() -> list[ConversationOut]:
        with db_module.SessionLocal() as db:
            views = list_conversations(db, user_id=ctx.user_id)
            return [to_conversation_out(v) for v in views]

    return await asyncio.to_thread(_db_call)


@router.post(
    "/conversations",
    status_code=201,
    response_model=ConversationOut,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def start_conversation(
    body: StartConversationRequest,
    response: Response,
    ctx: RequestContext = Depends(rate_limit),
):
    """Open the conversation with ``recipient`` or return the existing one."""

    def _db_call() -> tuple[ConversationOut, bool]:
        with db_module.SessionLocal() as db:
            view, created = get_or_create_conversation(
                db, user_id=ctx.user_id, recipient_id=body.recipient_id
            )
            return to_conversation_out(view), created

    try:
        conversation, created = await asyncio.to_thread(_db_call)
    except ServiceError as exc:
        raise http_error(exc) from exc
    if created:
        conversations_created_total.inc()
    else:
        response.status_code = 200
    return conversation
