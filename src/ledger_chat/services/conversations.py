"""In-memory conversation history store.

A flat map from conversation id to its message history. It does not check
who owns a conversation: callers only pass ids that belong to the requesting
user.
"""

from __future__ import annotations

import secrets
import time

from ledger_chat.core.cache import KeyedCache
from ledger_chat.core.config import settings
from ledger_chat.core.logging import get_logger
from ledger_chat.domain.models import ConversationContext, Message, MessageRole
from ledger_chat.domain.models.utils import utc_now

logger = get_logger(__name__)


def new_conversation_id() -> str:
    """``conv_<epoch-ms>_<8 random hex chars>``."""
    return f"conv_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class ConversationStore:
    def __init__(self, cache: KeyedCache[ConversationContext] | None = None) -> None:
        self.cache: KeyedCache[ConversationContext] = (
            cache
            if cache is not None
            else KeyedCache(
                name="conversations",
                max_entries=settings.conversation_max_entries,
                ttl_seconds=settings.conversation_ttl_seconds,
            )
        )

    def create_conversation(self, user_id: str) -> str:
        """Start an empty conversation owned by ``user_id`` and return its id."""
        conversation_id = new_conversation_id()
        while conversation_id in self.cache:
            conversation_id = new_conversation_id()
        self.cache.put(conversation_id, ConversationContext(id=conversation_id, user_id=user_id))
        logger.info("Created conversation", conversation_id=conversation_id, user_id=user_id)
        return conversation_id

    def get_context(self, conversation_id: str) -> ConversationContext:
        """Return a copy of the stored conversation.

        Unknown ids yield a fresh empty context that is not stored.
        """
        context = self.cache.get(conversation_id)
        if context is None:
            return ConversationContext(id=conversation_id)
        return context.model_copy(deep=True)

    def append_message(
        self,
        conversation_id: str,
        role: MessageRole | str,
        content: str,
        image_analysis: str | None = None,
        user_id: str | None = None,
    ) -> Message:
        """Append a message, creating the conversation if it does not exist."""
        context = self.cache.get(conversation_id)
        if context is None:
            context = ConversationContext(id=conversation_id, user_id=user_id)
        elif context.user_id is None and user_id is not None:
            context.user_id = user_id

        message = Message(role=MessageRole(role), content=content, image_analysis=image_analysis or None)
        context.messages.append(message)
        context.last_accessed = utc_now()
        self.cache.put(conversation_id, context)
        return message

    def owner_of(self, conversation_id: str) -> str | None:
        context = self.cache.get(conversation_id)
        return context.user_id if context else None

    def exists(self, conversation_id: str) -> bool:
        return conversation_id in self.cache
