"""Shared fixtures: in-process fakes for the model gateways and record source."""

import asyncio
import base64
import re
import zlib
from datetime import UTC, datetime, timedelta

import pytest

from ledger_chat.core.cache import KeyedCache
from ledger_chat.core.errors import GenerationError, RecordFetchError
from ledger_chat.domain.models import (
    Debt,
    DebtStatus,
    DebtType,
    EmbeddingType,
    Product,
    Sale,
    UserRecordSet,
)
from ledger_chat.services.chat import ChatOrchestrator
from ledger_chat.services.conversations import ConversationStore
from ledger_chat.services.documents import DocumentBuilder
from ledger_chat.services.index_manager import VectorIndexManager
from ledger_chat.services.prompts import PromptBuilder

DIMENSIONS = 512

# 1x1 transparent PNG
PNG_BASE64 = base64.b64encode(
    bytes.fromhex(
        "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
        "1f15c4890000000d49444154789c6360000002000100e221bc330000000049454e44ae426082"
    )
).decode()

T0 = datetime(2025, 1, 1, tzinfo=UTC)


def tokenize(text: str) -> list[str]:
    return re.findall(r"\w+", text.lower())


class FakeEmbeddings:
    """Bag-of-words embedder: each token hashes into one of DIMENSIONS buckets."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.fail_with: Exception | None = None
        self.batch_calls: list[list[str]] = []
        self.query_calls: list[str] = []

    def vector(self, text: str) -> list[float]:
        vector = [0.0] * DIMENSIONS
        for token in tokenize(text):
            vector[zlib.crc32(token.encode()) % DIMENSIONS] += 1.0
        return vector

    async def embed_batch(self, texts, embedding_type=EmbeddingType.DOCUMENT):
        self.batch_calls.append(list(texts))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return [self.vector(text) for text in texts]

    async def embed_text(self, text, embedding_type=EmbeddingType.QUERY):
        self.query_calls.append(text)
        if self.fail_with is not None:
            raise self.fail_with
        return self.vector(text)


class EchoGenerator:
    """Returns the prompt it was given, or a canned answer."""

    def __init__(self, answer: str | None = None, image_answer: str = "A red shirt on a shelf") -> None:
        self.answer = answer
        self.image_answer = image_answer
        self.delay = 0.0
        self.fail_text = False
        self.fail_image = False
        self.prompts: list[str] = []
        self.image_calls: list[tuple[str, str]] = []

    async def generate_text(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_text:
            raise GenerationError(message="model unavailable")
        return self.answer if self.answer is not None else prompt

    async def generate_from_image(self, instruction: str, image_base64: str) -> str:
        self.image_calls.append((instruction, image_base64))
        if self.fail_image:
            raise GenerationError(message="vision model unavailable")
        return self.image_answer


class InMemoryRecordSource:
    def __init__(self) -> None:
        self.records: dict[str, UserRecordSet] = {}
        self.fail = False
        self.fetches: list[str] = []

    def set(self, record_set: UserRecordSet) -> None:
        self.records[record_set.user_id] = record_set

    async def fetch_user_records(self, user_id: str) -> UserRecordSet:
        self.fetches.append(user_id)
        if self.fail:
            raise RecordFetchError(message="database unreachable")
        return self.records.get(user_id, UserRecordSet(user_id=user_id)).model_copy(deep=True)


def make_product(product_id: str, name: str, quantity: int, value: float = 20.0, days: int = 0) -> Product:
    return Product(
        id=product_id,
        name=name,
        acquisition_value=value,
        quantity=quantity,
        initial_quantity=quantity,
        created_at=T0 + timedelta(days=days),
    )


def make_sale(sale_id: str, product_name: str, quantity: int = 1, value: float = 35.0) -> Sale:
    return Sale(
        id=sale_id,
        product_name=product_name,
        quantity_sold=quantity,
        sale_value=value,
        profit=value - 20.0,
        created_at=T0,
    )


def make_debt(debt_id: str, description: str, amount: float = 100.0, paid: float = 0.0) -> Debt:
    return Debt(
        id=debt_id,
        type=DebtType.RECEIVABLE,
        description=description,
        amount=amount,
        amount_paid=paid,
        status=DebtStatus.PARTIALLY_PAID if paid else DebtStatus.PENDING,
        contact_name="Maria",
        created_at=T0,
    )


@pytest.fixture
def embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def generator() -> EchoGenerator:
    return EchoGenerator()


@pytest.fixture
def record_source() -> InMemoryRecordSource:
    return InMemoryRecordSource()


@pytest.fixture
def document_builder() -> DocumentBuilder:
    return DocumentBuilder(chunk_size=1000, chunk_overlap=200, currency="MZN")


@pytest.fixture
def index_manager(record_source, embeddings, document_builder) -> VectorIndexManager:
    return VectorIndexManager(
        record_source=record_source,
        embeddings=embeddings,
        document_builder=document_builder,
        cache=KeyedCache(name="test_index", max_entries=10, ttl_seconds=None),
    )


@pytest.fixture
def conversations() -> ConversationStore:
    return ConversationStore(cache=KeyedCache(name="test_conversations", max_entries=100, ttl_seconds=None))


@pytest.fixture
def orchestrator(index_manager, conversations, generator) -> ChatOrchestrator:
    return ChatOrchestrator(
        index_manager=index_manager,
        conversations=conversations,
        generator=generator,
        prompt_builder=PromptBuilder(currency="MZN"),
        retrieval_k=5,
        history_window=6,
        turn_timeout=5.0,
    )
