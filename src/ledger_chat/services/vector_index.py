"""In-memory vector index over one user's documents."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

import numpy as np

from ledger_chat.core.errors import EmbeddingError
from ledger_chat.domain.models import Document, ScoredDocument
from ledger_chat.domain.models.utils import utc_now


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    # Zero vectors stay zero and score 0 against everything
    norms[norms == 0] = 1.0
    return matrix / norms


class VectorIndex:
    """Immutable set of (embedding, document) pairs searched by cosine similarity.

    Rows are L2-normalised once at construction, so a search is a single
    matrix-vector product. Rebuilding an index means constructing a new one.
    """

    __slots__ = ("_documents", "_matrix", "built_at", "user_id")

    def __init__(
        self,
        user_id: str,
        documents: Sequence[Document],
        vectors: Sequence[Sequence[float]],
        built_at: datetime | None = None,
    ) -> None:
        if len(documents) != len(vectors):
            raise EmbeddingError(
                message="Embedding count does not match document count",
                details={
                    "source": "vector_index",
                    "operation": "build",
                    "documents": len(documents),
                    "vectors": len(vectors),
                },
            )
        self.user_id = user_id
        self.built_at = built_at or utc_now()
        self._documents: tuple[Document, ...] = tuple(documents)

        if self._documents:
            matrix = np.asarray(vectors, dtype=np.float32)
            if matrix.ndim != 2:
                raise EmbeddingError(
                    message="Embeddings must all have the same dimensions",
                    details={"source": "vector_index", "operation": "build"},
                )
            self._matrix = _normalize_rows(matrix)
        else:
            self._matrix = np.zeros((0, 0), dtype=np.float32)
        self._matrix.setflags(write=False)

    @property
    def documents(self) -> tuple[Document, ...]:
        return self._documents

    @property
    def dimensions(self) -> int:
        return int(self._matrix.shape[1]) if self._documents else 0

    def __len__(self) -> int:
        return len(self._documents)

    def is_empty(self) -> bool:
        return not self._documents

    def search(self, query_vector: Sequence[float], k: int) -> list[ScoredDocument]:
        """Top ``k`` documents by descending cosine similarity.

        Equal scores keep insertion order.
        """
        if k <= 0 or not self._documents:
            return []

        query = np.asarray(query_vector, dtype=np.float32)
        if query.shape != (self.dimensions,):
            raise EmbeddingError(
                message=f"Query vector has {query.size} dimensions, index has {self.dimensions}",
                details={"source": "vector_index", "operation": "search"},
            )
        norm = np.linalg.norm(query)
        if norm == 0:
            scores = np.zeros(len(self._documents), dtype=np.float32)
        else:
            scores = self._matrix @ (query / norm)

        # Stable sort on the negated scores keeps ties in insertion order
        order = np.argsort(-scores, kind="stable")[:k]
        return [
            ScoredDocument(document=self._documents[i], score=float(scores[i]))
            for i in order
        ]
