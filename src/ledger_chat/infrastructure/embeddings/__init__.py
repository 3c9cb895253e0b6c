from .factory import EmbeddingServiceBuilder, create_embedding_service
from .voyage import VoyageEmbeddingService

__all__ = ["EmbeddingServiceBuilder", "VoyageEmbeddingService", "create_embedding_service"]
