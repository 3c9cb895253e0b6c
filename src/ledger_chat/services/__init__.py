"""Service layer: document building, vector indexes, conversations and chat."""

from ledger_chat.services.chat import ChatOrchestrator
from ledger_chat.services.conversations import ConversationStore
from ledger_chat.services.documents import DocumentBuilder
from ledger_chat.services.index_manager import VectorIndexManager
from ledger_chat.services.prompts import PromptBuilder
from ledger_chat.services.vector_index import VectorIndex

__all__ = [
    "ChatOrchestrator",
    "ConversationStore",
    "DocumentBuilder",
    "PromptBuilder",
    "VectorIndex",
    "VectorIndexManager",
]
