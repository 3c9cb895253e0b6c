"""Chat orchestration: one grounded answer per user turn.

A turn reads and writes two pieces of shared state, the user's vector index
and the conversation history. Every answer is grounded in the user's records:
if the index cannot be built the turn fails instead of answering without
context.

The user's message is appended to the conversation before retrieval and
generation run. When a later step fails the message stays recorded and the
raised :class:`ChatTurnError` says so through ``user_message_recorded``.
"""

from __future__ import annotations

import asyncio

from ledger_chat.core.base import ErrorLevel
from ledger_chat.core.config import settings
from ledger_chat.core.decorators import with_error_handling
from ledger_chat.core.errors import ChatFailure, ChatTurnError, RetrievalUnavailableError
from ledger_chat.core.logging import get_logger
from ledger_chat.domain.models import (
    IMAGE_ANALYSIS_SOURCE,
    USER_DATA_SOURCE,
    ChatRequest,
    ChatResponse,
    ConversationContext,
    MessageRole,
)
from ledger_chat.domain.services import GenerationService
from ledger_chat.services.conversations import ConversationStore
from ledger_chat.services.index_manager import VectorIndexManager
from ledger_chat.services.prompts import IMAGE_ANALYSIS_INSTRUCTION, PromptBuilder

logger = get_logger(__name__)


def build_retrieval_query(message: str, image_analysis: str) -> str:
    if not image_analysis:
        return message
    return f"{message}\n\nImage analysis: {image_analysis}"


class _TurnState:
    """Progress of a turn, used to describe a failure."""

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        self.user_message_recorded = False


class ChatOrchestrator:
    def __init__(
        self,
        index_manager: VectorIndexManager,
        conversations: ConversationStore,
        generator: GenerationService,
        prompt_builder: PromptBuilder | None = None,
        retrieval_k: int | None = None,
        history_window: int | None = None,
        turn_timeout: float | None = None,
    ) -> None:
        self.index_manager = index_manager
        self.conversations = conversations
        self.generator = generator
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.retrieval_k = retrieval_k or settings.retrieval_k
        self.history_window = settings.history_window if history_window is None else history_window
        self.turn_timeout = turn_timeout or settings.chat_turn_timeout

    def start_conversation(self, user_id: str) -> str:
        return self.conversations.create_conversation(user_id)

    def get_conversation(self, conversation_id: str) -> ConversationContext:
        return self.conversations.get_context(conversation_id)

    async def refresh_user_data(self, user_id: str) -> None:
        """Rebuild the user's index after their records changed."""
        await self.index_manager.refresh(user_id)

    def _format_history(self, conversation_id: str) -> str:
        context = self.conversations.get_context(conversation_id)
        return "\n".join(message.to_history_line() for message in context.recent(self.history_window))

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def handle_turn(self, user_id: str, request: ChatRequest) -> ChatResponse:
        """Answer one user message.

        Raises:
            ChatTurnError: If retrieval, image analysis or generation failed or
                the turn exceeded ``turn_timeout``
        """
        conversation_id = request.conversation_id or self.conversations.create_conversation(user_id)
        state = _TurnState(conversation_id)

        try:
            async with asyncio.timeout(self.turn_timeout):
                response = await self._run_turn(user_id, request, state)
        except TimeoutError as e:
            raise ChatTurnError(
                failure=ChatFailure.TIMEOUT,
                conversation_id=conversation_id,
                user_message_recorded=state.user_message_recorded,
                cause=e,
            ) from e

        self.conversations.append_message(conversation_id, MessageRole.ASSISTANT, response.response, user_id=user_id)
        logger.info(
            "Chat turn completed",
            user_id=user_id,
            conversation_id=conversation_id,
            sources=response.sources,
            references=len(response.references),
        )
        return response

    def _fail(self, failure: ChatFailure, state: _TurnState, cause: Exception) -> ChatTurnError:
        return ChatTurnError(
            failure=failure,
            conversation_id=state.conversation_id,
            user_message_recorded=state.user_message_recorded,
            cause=cause,
        )

    async def _run_turn(self, user_id: str, request: ChatRequest, state: _TurnState) -> ChatResponse:
        conversation_id = state.conversation_id

        try:
            await self.index_manager.get_or_build_index(user_id)
        except RetrievalUnavailableError as e:
            raise self._fail(ChatFailure.RETRIEVAL_UNAVAILABLE, state, e) from e

        image_analysis = ""
        if request.image_base64:
            try:
                image_analysis = await self.generator.generate_from_image(
                    IMAGE_ANALYSIS_INSTRUCTION, request.image_base64
                )
            except Exception as e:
                raise self._fail(ChatFailure.IMAGE_ANALYSIS_FAILED, state, e) from e

        # Stored history keeps the raw message; the image analysis rides along
        self.conversations.append_message(
            conversation_id,
            MessageRole.USER,
            request.message,
            image_analysis=image_analysis or None,
            user_id=user_id,
        )
        state.user_message_recorded = True

        conversation_history = self._format_history(conversation_id)
        query = build_retrieval_query(request.message, image_analysis)

        try:
            documents = await self.index_manager.retrieve(user_id, query, self.retrieval_k)
        except RetrievalUnavailableError as e:
            raise self._fail(ChatFailure.RETRIEVAL_UNAVAILABLE, state, e) from e

        prompt = self.prompt_builder.build(
            question=request.message,
            conversation_history=conversation_history,
            documents=documents,
            image_analysis=image_analysis,
        )

        try:
            answer = await self.generator.generate_text(prompt)
        except Exception as e:
            raise self._fail(ChatFailure.GENERATION_FAILED, state, e) from e

        sources = [USER_DATA_SOURCE]
        if request.image_base64:
            sources.append(IMAGE_ANALYSIS_SOURCE)

        return ChatResponse(
            response=answer,
            conversation_id=conversation_id,
            sources=sources,
            image_analysis=image_analysis or None,
            references=[doc.metadata for doc in documents],
        )
