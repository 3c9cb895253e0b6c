"""Chat API endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ledger_chat.api.auth import get_current_user_id
from ledger_chat.api.dependencies import get_chat_orchestrator
from ledger_chat.core.logging import bind_log_context, get_logger
from ledger_chat.domain.models import ChatRequest, ChatResponse, Message
from ledger_chat.services.chat import ChatOrchestrator

logger = get_logger(__name__)
router = APIRouter()


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RefreshResponse(_CamelModel):
    message: str = "User data refreshed"


class CreateConversationResponse(_CamelModel):
    conversation_id: str


class ConversationResponse(_CamelModel):
    conversation_id: str
    messages: list[Message]
    message_count: int
    created_at: datetime
    last_accessed: datetime


def _not_found(conversation_id: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Conversation {conversation_id} not found")


@router.post("", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> ChatResponse:
    """Answer a question about the user's business, optionally with an image."""
    bind_log_context(user_id=user_id, conversation_id=request.conversation_id)

    if request.conversation_id:
        owner = orchestrator.conversations.owner_of(request.conversation_id)
        if owner is not None and owner != user_id:
            raise _not_found(request.conversation_id)

    return await orchestrator.handle_turn(user_id, request)


@router.put("/refresh", response_model=RefreshResponse)
async def refresh_user_data(
    user_id: str = Depends(get_current_user_id),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> RefreshResponse:
    """Rebuild the user's index after their products, sales or debts changed."""
    bind_log_context(user_id=user_id)
    await orchestrator.refresh_user_data(user_id)
    return RefreshResponse()


@router.post("/conversations", response_model=CreateConversationResponse, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    user_id: str = Depends(get_current_user_id),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> CreateConversationResponse:
    bind_log_context(user_id=user_id)
    return CreateConversationResponse(conversation_id=orchestrator.start_conversation(user_id))


@router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> ConversationResponse:
    bind_log_context(user_id=user_id, conversation_id=conversation_id)

    if orchestrator.conversations.owner_of(conversation_id) != user_id:
        raise _not_found(conversation_id)

    context = orchestrator.get_conversation(conversation_id)
    return ConversationResponse(
        conversation_id=context.id,
        messages=context.messages,
        message_count=context.get_message_count(),
        created_at=context.created_at,
        last_accessed=context.last_accessed,
    )
