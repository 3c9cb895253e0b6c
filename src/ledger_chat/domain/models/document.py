"""Retrievable text chunks derived from business records."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RecordType(str, Enum):
    PRODUCT = "product"
    SALE = "sale"
    DEBT = "debt"


class DocumentMetadata(BaseModel):
    """Provenance of a chunk: which record of which user it came from."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    type: RecordType
    record_id: str
    name: str
    user_id: str
    chunk_index: int = 0


class Document(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    metadata: DocumentMetadata


class ScoredDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    document: Document
    score: float = Field(description="Cosine similarity to the query")
