"""Domain models for Ledger Chat."""

from .chat import IMAGE_ANALYSIS_SOURCE, USER_DATA_SOURCE, ChatRequest, ChatResponse
from .conversation import ConversationContext, Message, MessageRole
from .document import Document, DocumentMetadata, RecordType, ScoredDocument
from .embedding import EmbeddingType
from .records import Debt, DebtStatus, DebtType, Product, Sale, UserRecordSet

__all__ = [
    "IMAGE_ANALYSIS_SOURCE",
    "USER_DATA_SOURCE",
    # Chat
    "ChatRequest",
    "ChatResponse",
    # Conversation
    "ConversationContext",
    "Message",
    "MessageRole",
    # Records
    "Debt",
    "DebtStatus",
    "DebtType",
    # Documents
    "Document",
    "DocumentMetadata",
    "EmbeddingType",
    "Product",
    "RecordType",
    "Sale",
    "ScoredDocument",
    "UserRecordSet",
]
