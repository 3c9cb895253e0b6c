"""Per-user vector index manager.

Each user gets one in-memory :class:`VectorIndex` built from their records on
first use. Indexes are never updated in place: ``refresh`` builds a new one and
swaps it in. There is no staleness detection, so whatever writes products,
sales or debts must call ``refresh`` afterwards.
"""

from __future__ import annotations

import time

from ledger_chat.core.base import ErrorLevel
from ledger_chat.core.cache import KeyedCache
from ledger_chat.core.config import settings
from ledger_chat.core.decorators import with_error_handling
from ledger_chat.core.errors import RetrievalUnavailableError
from ledger_chat.core.logging import get_logger
from ledger_chat.domain.models import Document, EmbeddingType, ScoredDocument
from ledger_chat.domain.services import EmbeddingService, RecordSource
from ledger_chat.services.documents import DocumentBuilder
from ledger_chat.services.vector_index import VectorIndex

logger = get_logger(__name__)


class VectorIndexManager:
    """Builds, caches and searches one vector index per user."""

    def __init__(
        self,
        record_source: RecordSource,
        embeddings: EmbeddingService,
        document_builder: DocumentBuilder | None = None,
        cache: KeyedCache[VectorIndex] | None = None,
    ) -> None:
        self.record_source = record_source
        self.embeddings = embeddings
        self.document_builder = document_builder or DocumentBuilder()
        self.cache: KeyedCache[VectorIndex] = (
            cache
            if cache is not None
            else KeyedCache(
                name="vector_index",
                max_entries=settings.index_cache_max_entries,
                ttl_seconds=settings.index_cache_ttl_seconds,
            )
        )

    async def _build_index(self, user_id: str) -> VectorIndex:
        started = time.perf_counter()
        logger.info("Building vector index", user_id=user_id)
        try:
            record_set = await self.record_source.fetch_user_records(user_id)
            documents = self.document_builder.build_documents(record_set)
            vectors = (
                await self.embeddings.embed_batch(
                    [doc.content for doc in documents], EmbeddingType.DOCUMENT
                )
                if documents
                else []
            )
            index = VectorIndex(user_id=user_id, documents=documents, vectors=vectors)
        except Exception as e:
            raise RetrievalUnavailableError(user_id=user_id, cause=e) from e

        logger.info(
            "Vector index built",
            user_id=user_id,
            documents=len(index),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return index

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def get_or_build_index(self, user_id: str) -> VectorIndex:
        """Return the user's cached index, building it once if needed.

        Concurrent callers for the same user share one build.

        Raises:
            RetrievalUnavailableError: If records could not be fetched or embedded
        """
        return await self.cache.get_or_build(user_id, lambda: self._build_index(user_id))

    async def retrieve_scored(self, user_id: str, query: str, k: int) -> list[ScoredDocument]:
        """Top ``k`` documents with their similarity scores."""
        index = await self.get_or_build_index(user_id)
        if k <= 0 or index.is_empty():
            return []

        try:
            query_vector = await self.embeddings.embed_text(query, EmbeddingType.QUERY)
            results = index.search(query_vector, k)
        except Exception as e:
            raise RetrievalUnavailableError(user_id=user_id, cause=e) from e

        logger.debug("Retrieved documents", user_id=user_id, k=k, returned=len(results))
        return results

    async def retrieve(self, user_id: str, query: str, k: int) -> list[Document]:
        """Top ``k`` documents for ``query``, most similar first.

        Returns an empty list when the user has no records.
        """
        return [scored.document for scored in await self.retrieve_scored(user_id, query, k)]

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def refresh(self, user_id: str) -> None:
        """Rebuild the user's index from current records and replace the cached one.

        If the rebuild fails the previous index stays in place and the error
        propagates.
        """
        logger.info("Refreshing vector index", user_id=user_id)
        await self.cache.rebuild(user_id, lambda: self._build_index(user_id))

    def evict(self, user_id: str) -> bool:
        """Drop the user's index without rebuilding it."""
        removed = self.cache.delete(user_id)
        if removed:
            logger.info("Evicted vector index", user_id=user_id)
        return removed

    def has_index(self, user_id: str) -> bool:
        return user_id in self.cache
