"""Dependency injection for embedding services.

Services are configured and injected rather than used as singletons.
"""

from __future__ import annotations

from ledger_chat.core.base import ServiceErrorDetails
from ledger_chat.core.config import settings
from ledger_chat.core.decorators import with_error_handling
from ledger_chat.core.errors import ServiceError
from ledger_chat.core.logging import get_logger
from ledger_chat.infrastructure.embeddings.voyage import VoyageEmbeddingService

logger = get_logger(__name__)


class EmbeddingServiceBuilder:
    """Builder for creating properly configured embedding service instances."""

    def __init__(self) -> None:
        self._api_key: str | None = None
        self._model: str | None = None

    def with_api_key(self, api_key: str) -> EmbeddingServiceBuilder:
        self._api_key = api_key
        return self

    def with_model(self, model: str) -> EmbeddingServiceBuilder:
        self._model = model
        return self

    @with_error_handling(reraise=True)
    def build(self) -> VoyageEmbeddingService:
        """Build the configured embedding service.

        Raises:
            ServiceError: If required configuration is missing
        """
        api_key = self._api_key or settings.voyage_api_key.get_secret_value()
        if not api_key:
            raise ServiceError(
                message="VOYAGE_API_KEY not configured",
                details=ServiceErrorDetails(
                    source="embedding_builder",
                    operation="build",
                    service_name="voyage",
                    endpoint="/embeddings",
                    status_code=0,
                ),
            )

        model = self._model or settings.voyage_model
        logger.info(f"Creating VoyageEmbeddingService instance with model {model}")
        service = VoyageEmbeddingService(model=model, api_key=api_key)
        self._validate_service(service)
        return service

    def _validate_service(self, service: VoyageEmbeddingService) -> None:
        dimensions = service.get_model_dimensions()
        if dimensions <= 0:
            raise ServiceError(
                message=f"Invalid embedding dimensions: {dimensions}",
                details=ServiceErrorDetails(
                    source="embedding_builder",
                    operation="validate",
                    service_name="voyage",
                    endpoint="/embeddings",
                    status_code=0,
                ),
            )

        logger.info(f"Embedding service validated: dimensions={dimensions}")


def create_embedding_service(
    api_key: str | None = None,
    model: str | None = None,
) -> VoyageEmbeddingService:
    """Convenience function to create an embedding service.

    Example:
        ```python
        embeddings = create_embedding_service()
        manager = VectorIndexManager(record_source=source, embeddings=embeddings)
        ```
    """
    builder = EmbeddingServiceBuilder()

    if api_key:
        builder.with_api_key(api_key)

    if model:
        builder.with_model(model)

    return builder.build()
