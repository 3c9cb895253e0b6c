"""Conversation models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ledger_chat.domain.models.utils import utc_now


class MessageRole(str, Enum):
    """Message roles in a conversation."""

    USER = "user"
    ASSISTANT = "assistant"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class Message(BaseModel):
    """A single message in a conversation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    image_analysis: str | None = None

    def to_history_line(self) -> str:
        return f"{self.role.label}: {self.content}"


class ConversationContext(BaseModel):
    """Ordered message history of one conversation."""

    id: str
    user_id: str | None = None
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    last_accessed: datetime = Field(default_factory=utc_now)

    def recent(self, n: int) -> list[Message]:
        """Last ``n`` messages, oldest first."""
        if n <= 0:
            return []
        return self.messages[-n:]

    def get_message_count(self) -> int:
        return len(self.messages)
