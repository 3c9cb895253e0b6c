"""Core API endpoints for Ledger Chat."""

from fastapi import APIRouter

from ledger_chat import __version__
from ledger_chat.api import dependencies
from ledger_chat.domain.models.utils import utc_now

router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint with application status."""
    return {
        "message": "Ledger Chat API",
        "version": __version__,
        "status": "running",
        "features": [
            "per_user_retrieval",
            "image_questions",
            "conversation_history",
        ],
    }


@router.get("/health", operation_id="health")
async def health_check():
    """Health check endpoint, with the circuit state of each model gateway."""
    ready = dependencies.chat_orchestrator is not None
    circuits = {}
    if dependencies.embedding_service is not None:
        circuits["embeddings"] = dependencies.embedding_service.get_circuit_state()["state"]
    if dependencies.generation_service is not None:
        circuits["generation"] = dependencies.generation_service.get_circuit_state()["state"]
    return {
        "status": "healthy" if ready else "starting",
        "circuits": circuits,
        "timestamp": utc_now().isoformat(),
    }
