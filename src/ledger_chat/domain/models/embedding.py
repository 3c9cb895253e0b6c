"""Embedding models."""

from enum import Enum


class EmbeddingType(str, Enum):
    """Which side of a retrieval an embedding is for.

    Providers such as Voyage optimise document and query vectors differently.
    """

    DOCUMENT = "document"
    QUERY = "query"
