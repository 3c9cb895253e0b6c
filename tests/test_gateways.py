import base64
from types import SimpleNamespace

import pytest

from ledger_chat.core.circuit_breaker import CircuitBreaker, CircuitState, RetryWithCircuitBreaker
from ledger_chat.core.errors import (
    AuthenticationError,
    EmbeddingError,
    GenerationError,
    InvalidInputError,
    RateLimitError,
    ServiceError,
)
from ledger_chat.domain.models import EmbeddingType
from ledger_chat.infrastructure.embeddings.voyage import MAX_BATCH_SIZE, VoyageEmbeddingService
from ledger_chat.infrastructure.generation.anthropic import AnthropicGenerationService, detect_media_type

from .conftest import PNG_BASE64


class FakeVoyageClient:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[list[str], str]] = []

    async def embed(self, texts, model, input_type):
        self.calls.append((list(texts), input_type))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(embeddings=[[float(len(t)), 1.0] for t in texts])


class FakeMessages:
    def __init__(self, text: str = "an answer") -> None:
        self.text = text
        self.requests: list[dict] = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.text)])


class FakeAnthropicClient:
    def __init__(self, text: str = "an answer") -> None:
        self.messages = FakeMessages(text)


class AuthenticationFailure(Exception):
    pass


async def test_voyage_batches_large_requests_with_document_input_type():
    client = FakeVoyageClient()
    service = VoyageEmbeddingService(model="voyage-3", client=client)
    texts = [f"text {i}" for i in range(MAX_BATCH_SIZE + 5)]

    vectors = await service.embed_batch(texts)

    assert len(vectors) == len(texts)
    assert [len(batch) for batch, _ in client.calls] == [MAX_BATCH_SIZE, 5]
    assert {input_type for _, input_type in client.calls} == {"document"}


async def test_voyage_embeds_queries_as_queries():
    client = FakeVoyageClient()
    service = VoyageEmbeddingService(model="voyage-3", client=client)

    vector = await service.embed_text("red shirt", EmbeddingType.QUERY)

    assert vector == [9.0, 1.0]
    assert client.calls == [(["red shirt"], "query")]


async def test_voyage_rejects_empty_texts():
    service = VoyageEmbeddingService(model="voyage-3", client=FakeVoyageClient())

    with pytest.raises(EmbeddingError):
        await service.embed_batch(["ok", "  "])


async def test_voyage_maps_provider_errors():
    service = VoyageEmbeddingService(model="voyage-3", client=FakeVoyageClient(AuthenticationFailure("bad key")))

    with pytest.raises(AuthenticationError):
        await service.embed_text("hello")


async def test_anthropic_generate_text_sends_a_single_user_message():
    client = FakeAnthropicClient("You have 5 red shirts.")
    service = AnthropicGenerationService(model="claude-test", client=client, temperature=0.2, max_tokens=100)

    answer = await service.generate_text("prompt text")

    assert answer == "You have 5 red shirts."
    request = client.messages.requests[0]
    assert request["model"] == "claude-test"
    assert request["temperature"] == 0.2
    assert request["messages"] == [{"role": "user", "content": "prompt text"}]


async def test_anthropic_image_request_carries_image_and_instruction():
    client = FakeAnthropicClient("A red shirt")
    service = AnthropicGenerationService(vision_model="claude-vision", client=client)

    assert await service.generate_from_image("Describe it", PNG_BASE64) == "A red shirt"

    content = client.messages.requests[0]["messages"][0]["content"]
    assert content[0]["source"] == {"type": "base64", "media_type": "image/png", "data": PNG_BASE64}
    assert content[1] == {"type": "text", "text": "Describe it"}
    assert client.messages.requests[0]["model"] == "claude-vision"


async def test_anthropic_empty_answer_is_a_generation_error():
    service = AnthropicGenerationService(client=FakeAnthropicClient("   "))

    with pytest.raises(GenerationError):
        await service.generate_text("prompt")


def test_detect_media_type():
    assert detect_media_type(PNG_BASE64) == "image/png"
    assert detect_media_type(base64.b64encode(b"\xff\xd8\xff\xe0" + b"\x00" * 20).decode()) == "image/jpeg"
    assert detect_media_type(base64.b64encode(b"GIF89a" + b"\x00" * 20).decode()) == "image/gif"
    assert detect_media_type(base64.b64encode(b"RIFF\x00\x00\x00\x00WEBPVP8 ").decode()) == "image/webp"
    with pytest.raises(InvalidInputError):
        detect_media_type(base64.b64encode(b"%PDF-1.7 not an image").decode())


async def test_circuit_opens_after_repeated_failures():
    breaker = CircuitBreaker(name="test", failure_threshold=2, recovery_timeout=60, expected_exception_types=(ServiceError,))

    async def failing():
        raise ServiceError(message="down")

    for _ in range(2):
        with pytest.raises(ServiceError):
            await breaker.call_async(failing)

    assert breaker.state == CircuitState.OPEN
    with pytest.raises(ServiceError, match="is open"):
        await breaker.call_async(failing)


async def test_retry_recovers_from_rate_limits():
    breaker = CircuitBreaker(name="retry", failure_threshold=5, expected_exception_types=(RateLimitError,))
    retry = RetryWithCircuitBreaker(breaker, max_retries=3, initial_delay=0, retryable_exceptions=(RateLimitError,))
    attempts = 0

    async def flaky():
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise RateLimitError(message="slow down")
        return "ok"

    assert await retry.call_async(flaky) == "ok"
    assert attempts == 3
    assert breaker.state == CircuitState.CLOSED
