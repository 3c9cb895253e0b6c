"""Domain service protocols.

The assistant depends on three external capabilities: text embeddings, text
and image generation, and a source of the user's business records.
"""

from typing import Protocol, runtime_checkable

from ledger_chat.domain.models.embedding import EmbeddingType
from ledger_chat.domain.models.records import UserRecordSet


@runtime_checkable
class EmbeddingService(Protocol):
    """Protocol for embedding services."""

    async def embed_text(self, text: str, embedding_type: EmbeddingType = EmbeddingType.QUERY) -> list[float]:
        """Generate embedding for a single text."""
        ...

    async def embed_batch(
        self, texts: list[str], embedding_type: EmbeddingType = EmbeddingType.DOCUMENT
    ) -> list[list[float]]:
        """Generate embeddings for multiple texts, in input order."""
        ...


@runtime_checkable
class GenerationService(Protocol):
    """Protocol for generative model services."""

    async def generate_text(self, prompt: str) -> str:
        """Generate a completion for a single prompt."""
        ...

    async def generate_from_image(self, instruction: str, image_base64: str) -> str:
        """Describe a base64 encoded image following ``instruction``."""
        ...


@runtime_checkable
class RecordSource(Protocol):
    """Protocol for the persistence collaborator holding products, sales and debts."""

    async def fetch_user_records(self, user_id: str) -> UserRecordSet:
        """Fetch a user's records, newest first."""
        ...
