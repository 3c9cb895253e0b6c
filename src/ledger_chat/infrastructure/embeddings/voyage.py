"""Voyage AI embedding service."""

from typing import Any, cast

import voyageai

from ledger_chat.core.base import AIServiceErrorDetails, ApplicationError, ErrorLevel
from ledger_chat.core.circuit_breaker import CircuitBreaker, RetryWithCircuitBreaker
from ledger_chat.core.config import settings
from ledger_chat.core.decorators import with_error_handling
from ledger_chat.core.errors import (
    AuthenticationError,
    EmbeddingError,
    RateLimitError,
    RequestTimeoutError,
    ServiceError,
)
from ledger_chat.core.logging import get_logger
from ledger_chat.domain.models import EmbeddingType

logger = get_logger(__name__)

# Voyage accepts at most 128 texts per request
MAX_BATCH_SIZE = 128

MODEL_DIMENSIONS = {
    "voyage-3": 1024,
    "voyage-3-large": 1024,
    "voyage-3-lite": 512,
    "voyage-3.5": 1024,
    "voyage-3.5-lite": 1024,
    "voyage-finance-2": 1024,
    "voyage-large-2": 1536,
}


class VoyageEmbeddingService:
    """Voyage AI embedding service implementation.

    Document and query texts are embedded with Voyage's matching input types,
    and the vectors are compared with cosine similarity.
    """

    @with_error_handling(error_level=ErrorLevel.ERROR)
    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        client: Any | None = None,
    ) -> None:
        """Initialize the Voyage embedding service.

        Args:
            model: Optional model override (defaults to settings.voyage_model)
            api_key: Optional API key override
            client: Preconfigured ``voyageai.AsyncClient``

        Raises:
            AuthenticationError: If the API key is not configured
        """
        api_key = api_key or settings.voyage_api_key.get_secret_value()
        if client is None and not api_key:
            raise AuthenticationError(
                message="Voyage API key not found in settings",
                details=AIServiceErrorDetails(
                    source="VoyageEmbeddingService",
                    operation="initialization",
                    service_name="Voyage AI",
                ),
            )

        self.model = model or settings.voyage_model
        # voyageai client doesn't expose a public type
        self.client: Any = client or voyageai.AsyncClient(api_key=api_key)

        self._circuit_breaker = CircuitBreaker(
            name="voyage_api",
            failure_threshold=3,
            recovery_timeout=30.0,
            expected_exception_types=(RateLimitError, RequestTimeoutError, ServiceError),
            success_threshold=2,
        )
        self._retry_handler = RetryWithCircuitBreaker(
            circuit_breaker=self._circuit_breaker,
            max_retries=3,
            initial_delay=1.0,
            backoff_factor=2.0,
            max_delay=30.0,
            retryable_exceptions=(RateLimitError, RequestTimeoutError),
        )

    def _details(self, operation: str, status_code: int | None, batch_size: int) -> AIServiceErrorDetails:
        return AIServiceErrorDetails(
            source="VoyageEmbeddingService",
            operation=operation,
            service_name="Voyage AI",
            endpoint="/embeddings",
            status_code=status_code,
            model_name=self.model,
            batch_size=batch_size,
        )

    def _handle_error(self, e: Exception, texts: list[str]) -> ApplicationError:
        """Map provider errors to our exception types."""
        error_msg = str(e).lower()
        error_type = type(e).__name__.lower()
        if "ratelimit" in error_type or "rate limit" in error_msg:
            return RateLimitError(
                message="Rate limit exceeded for embeddings API",
                details=self._details("embed_batch", 429, len(texts)),
            )
        if "timeout" in error_type or "timeout" in error_msg or "connection" in error_type:
            return RequestTimeoutError(
                message="Embeddings API request timed out",
                details=self._details("embed_batch", 408, len(texts)),
            )
        if "authentication" in error_type or "api key" in error_msg:
            return AuthenticationError(
                message="Authentication failed for embeddings API",
                details=self._details("embed_batch", 401, len(texts)),
            )
        if "serviceunavailable" in error_type or "server" in error_type:
            return ServiceError(
                message=f"Embeddings API unavailable: {e!s}",
                details=self._details("embed_batch", 503, len(texts)),
            )
        return EmbeddingError(
            message=f"Failed to generate embeddings: {e!s}",
            details=self._details("embed_batch", None, len(texts)),
        )

    async def _call_voyage_api_internal(self, texts: list[str], input_type: str) -> list[list[float]]:
        """Call the Voyage API once. Wrapped by the circuit breaker."""
        try:
            response = await self.client.embed(texts=texts, model=self.model, input_type=input_type)
        except ApplicationError:
            raise
        except Exception as e:
            raise self._handle_error(e, texts) from e

        embeddings = getattr(response, "embeddings", [])
        if not embeddings or len(embeddings) != len(texts):
            # The API answered but with unusable data; not retryable
            raise EmbeddingError(
                message="Voyage API returned incomplete embeddings",
                details=self._details("embed_batch", 200, len(texts)),
            )
        return [cast("list[float]", emb) for emb in embeddings]

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def embed_batch(
        self, texts: list[str], embedding_type: EmbeddingType = EmbeddingType.DOCUMENT
    ) -> list[list[float]]:
        """
        Generate embedding vectors for a batch of texts with circuit breaker and retry logic.

        Args:
            texts: List of texts to embed
            embedding_type: Whether the texts are documents or queries

        Returns:
            List of embedding vectors corresponding to the input texts

        Raises:
            EmbeddingError: If a text is empty or the provider returned bad data
            ServiceError: If the circuit is open or service fails
        """
        if not texts:
            return []

        if any(not text.strip() for text in texts):
            raise EmbeddingError(
                message="Batch contains empty texts",
                details=self._details("embed_batch", None, len(texts)),
            )

        vectors: list[list[float]] = []
        for start in range(0, len(texts), MAX_BATCH_SIZE):
            batch = texts[start : start + MAX_BATCH_SIZE]
            vectors.extend(
                await self._retry_handler.call_async(
                    self._call_voyage_api_internal,
                    batch,
                    embedding_type.value,
                )
            )
        return vectors

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def embed_text(self, text: str, embedding_type: EmbeddingType = EmbeddingType.QUERY) -> list[float]:
        """Generate an embedding vector for a single text."""
        if not text.strip():
            raise EmbeddingError(
                message="Cannot embed empty text",
                details=self._details("embed_text", None, 1),
            )
        vectors = await self._retry_handler.call_async(
            self._call_voyage_api_internal,
            [text],
            embedding_type.value,
        )
        return vectors[0]

    def get_model_dimensions(self) -> int:
        """Dimensionality of the configured Voyage model."""
        return MODEL_DIMENSIONS.get(self.model, 1024)

    def get_circuit_state(self) -> dict[str, Any]:
        return self._circuit_breaker.get_state()
