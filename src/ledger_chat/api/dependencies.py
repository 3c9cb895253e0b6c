"""API dependencies."""

from fastapi import HTTPException

from ledger_chat.infrastructure.embeddings import VoyageEmbeddingService
from ledger_chat.infrastructure.generation import AnthropicGenerationService
from ledger_chat.services.chat import ChatOrchestrator

# These will be set by the main.py lifespan
embedding_service: VoyageEmbeddingService | None = None
generation_service: AnthropicGenerationService | None = None
chat_orchestrator: ChatOrchestrator | None = None


def get_chat_orchestrator() -> ChatOrchestrator:
    if chat_orchestrator is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return chat_orchestrator
