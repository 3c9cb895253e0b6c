import asyncio
import base64

import pytest

from ledger_chat.core.errors import ChatFailure, ChatTurnError
from ledger_chat.domain.models import (
    IMAGE_ANALYSIS_SOURCE,
    USER_DATA_SOURCE,
    ChatRequest,
    MessageRole,
    UserRecordSet,
)
from ledger_chat.services.chat import build_retrieval_query
from ledger_chat.services.prompts import IMAGE_ANALYSIS_INSTRUCTION, NO_CONTEXT

from .conftest import PNG_BASE64, make_product


@pytest.fixture
def red_shirt_shop(record_source):
    record_source.set(UserRecordSet(user_id="u1", products=[make_product("p1", "Red Shirt", quantity=5)]))
    return record_source


async def test_answer_prompt_contains_the_retrieved_record(orchestrator, generator, red_shirt_shop):
    response = await orchestrator.handle_turn("u1", ChatRequest(message="how many red shirts do I have"))

    prompt = generator.prompts[-1]
    assert "Product: Red Shirt" in prompt
    assert "Quantity in stock: 5" in prompt
    assert response.response == prompt
    assert response.sources == [USER_DATA_SOURCE]
    assert response.image_analysis is None
    assert [ref.record_id for ref in response.references] == ["p1"]
    assert generator.image_calls == []


async def test_turn_without_conversation_id_starts_one(orchestrator, conversations, red_shirt_shop):
    response = await orchestrator.handle_turn("u1", ChatRequest(message="hello"))

    assert response.conversation_id.startswith("conv_")
    assert conversations.owner_of(response.conversation_id) == "u1"
    messages = conversations.get_context(response.conversation_id).messages
    assert [m.role for m in messages] == [MessageRole.USER, MessageRole.ASSISTANT]


async def test_image_turn_analyses_image_and_grounds_query(orchestrator, generator, embeddings, red_shirt_shop):
    generator.image_answer = "A red shirt on a shelf"

    response = await orchestrator.handle_turn(
        "u1", ChatRequest(message="Do I have this?", image_base64=PNG_BASE64)
    )

    assert generator.image_calls == [(IMAGE_ANALYSIS_INSTRUCTION, PNG_BASE64)]
    assert response.image_analysis == "A red shirt on a shelf"
    assert IMAGE_ANALYSIS_SOURCE in response.sources
    assert embeddings.query_calls[-1] == "Do I have this?\n\nImage analysis: A red shirt on a shelf"
    assert "Image analysis: A red shirt on a shelf" in generator.prompts[-1]


async def test_stored_user_message_is_the_raw_text(orchestrator, conversations, red_shirt_shop):
    response = await orchestrator.handle_turn(
        "u1", ChatRequest(message="Do I have this?", image_base64=PNG_BASE64)
    )

    user_message = conversations.get_context(response.conversation_id).messages[0]
    assert user_message.content == "Do I have this?"
    assert user_message.image_analysis == "A red shirt on a shelf"


async def test_sequential_turns_are_recorded_in_order(orchestrator, conversations, generator, red_shirt_shop):
    generator.answer = "answer"
    conversation_id = orchestrator.start_conversation("u1")

    await orchestrator.handle_turn("u1", ChatRequest(message="first", conversation_id=conversation_id))
    await orchestrator.handle_turn("u1", ChatRequest(message="second", conversation_id=conversation_id))

    messages = conversations.get_context(conversation_id).messages
    assert [(m.role, m.content) for m in messages] == [
        (MessageRole.USER, "first"),
        (MessageRole.ASSISTANT, "answer"),
        (MessageRole.USER, "second"),
        (MessageRole.ASSISTANT, "answer"),
    ]
    assert "User: first\nAssistant: answer\nUser: second" in generator.prompts[-1]


async def test_history_is_limited_to_recent_messages(orchestrator, conversations, generator, red_shirt_shop):
    conversation_id = orchestrator.start_conversation("u1")
    for i in range(5):
        conversations.append_message(conversation_id, MessageRole.USER, f"old question {i}")
        conversations.append_message(conversation_id, MessageRole.ASSISTANT, f"old answer {i}")

    await orchestrator.handle_turn("u1", ChatRequest(message="latest", conversation_id=conversation_id))

    prompt = generator.prompts[-1]
    assert "old question 2" not in prompt
    assert "Assistant: old answer 2\nUser: old question 3" in prompt
    assert "User: latest" in prompt


async def test_retrieval_failure_records_nothing(orchestrator, conversations, generator, record_source):
    record_source.fail = True
    conversation_id = orchestrator.start_conversation("u1")

    with pytest.raises(ChatTurnError) as exc_info:
        await orchestrator.handle_turn("u1", ChatRequest(message="hi", conversation_id=conversation_id))

    error = exc_info.value
    assert error.failure is ChatFailure.RETRIEVAL_UNAVAILABLE
    assert error.user_message_recorded is False
    assert error.conversation_id == conversation_id
    assert conversations.get_context(conversation_id).messages == []
    assert generator.prompts == []


async def test_image_failure_records_nothing(orchestrator, conversations, generator, red_shirt_shop):
    generator.fail_image = True
    conversation_id = orchestrator.start_conversation("u1")

    with pytest.raises(ChatTurnError) as exc_info:
        await orchestrator.handle_turn(
            "u1", ChatRequest(message="what is this", image_base64=PNG_BASE64, conversation_id=conversation_id)
        )

    assert exc_info.value.failure is ChatFailure.IMAGE_ANALYSIS_FAILED
    assert exc_info.value.user_message_recorded is False
    assert conversations.get_context(conversation_id).messages == []


async def test_generation_failure_leaves_the_user_message_recorded(
    orchestrator, conversations, generator, red_shirt_shop
):
    generator.fail_text = True
    conversation_id = orchestrator.start_conversation("u1")

    with pytest.raises(ChatTurnError) as exc_info:
        await orchestrator.handle_turn("u1", ChatRequest(message="hi", conversation_id=conversation_id))

    assert exc_info.value.failure is ChatFailure.GENERATION_FAILED
    assert exc_info.value.user_message_recorded is True
    messages = conversations.get_context(conversation_id).messages
    assert [(m.role, m.content) for m in messages] == [(MessageRole.USER, "hi")]


async def test_slow_turn_times_out(orchestrator, conversations, generator, red_shirt_shop):
    orchestrator.turn_timeout = 0.05
    generator.delay = 1.0
    conversation_id = orchestrator.start_conversation("u1")

    with pytest.raises(ChatTurnError) as exc_info:
        await orchestrator.handle_turn("u1", ChatRequest(message="hi", conversation_id=conversation_id))

    assert exc_info.value.failure is ChatFailure.TIMEOUT
    assert exc_info.value.user_message_recorded is True
    assert [m.role for m in conversations.get_context(conversation_id).messages] == [MessageRole.USER]


async def test_refresh_user_data_rebuilds_the_index(orchestrator, generator, record_source, red_shirt_shop):
    await orchestrator.handle_turn("u1", ChatRequest(message="green hat"))
    assert "Green Hat" not in generator.prompts[-1]

    record_source.set(
        UserRecordSet(
            user_id="u1",
            products=[make_product("p1", "Red Shirt", quantity=5), make_product("p2", "Green Hat", quantity=2)],
        )
    )
    await orchestrator.refresh_user_data("u1")
    await orchestrator.handle_turn("u1", ChatRequest(message="green hat"))

    assert "Green Hat" in generator.prompts[-1]


async def test_concurrent_first_turns_build_the_index_once(orchestrator, embeddings, red_shirt_shop):
    embeddings.delay = 0.01

    await asyncio.gather(*(orchestrator.handle_turn("u1", ChatRequest(message=f"q{i}")) for i in range(5)))

    assert len(embeddings.batch_calls) == 1


def test_retrieval_query_appends_image_analysis():
    assert build_retrieval_query("hello", "") == "hello"
    assert build_retrieval_query("hello", "a hat") == "hello\n\nImage analysis: a hat"


def test_request_rejects_blank_message_and_bad_image():
    with pytest.raises(ValueError):
        ChatRequest(message="   ")
    with pytest.raises(ValueError):
        ChatRequest(message="hi", image_base64="not base64!")


def test_request_accepts_camel_case_and_data_uris():
    request = ChatRequest.model_validate(
        {"message": "hi", "imageBase64": f"data:image/png;base64,{PNG_BASE64}", "conversationId": "conv_1"}
    )

    assert request.image_base64 == PNG_BASE64
    assert request.conversation_id == "conv_1"


async def test_user_without_records_gets_an_answer_without_context(orchestrator, generator, embeddings):
    response = await orchestrator.handle_turn("newcomer", ChatRequest(message="what did I sell today?"))

    assert NO_CONTEXT in generator.prompts[-1]
    assert response.references == []
    assert response.sources == [USER_DATA_SOURCE]
    assert embeddings.query_calls == []


async def test_wrong_size_query_vector_is_a_retrieval_failure(
    orchestrator, conversations, embeddings, generator, red_shirt_shop, monkeypatch
):
    async def short_vector(text, embedding_type=None):
        return [1.0, 0.0, 0.0]

    monkeypatch.setattr(embeddings, "embed_text", short_vector)
    conversation_id = orchestrator.start_conversation("u1")

    with pytest.raises(ChatTurnError) as exc_info:
        await orchestrator.handle_turn("u1", ChatRequest(message="red shirt", conversation_id=conversation_id))

    assert exc_info.value.failure is ChatFailure.RETRIEVAL_UNAVAILABLE
    assert exc_info.value.user_message_recorded is True
    assert generator.prompts == []


@pytest.mark.parametrize("payload", [b"BM" + b"\x00" * 40, b"%PDF-1.7 not an image"])
def test_request_rejects_unsupported_image_formats(payload):
    with pytest.raises(ValueError, match="Unsupported image format"):
        ChatRequest(message="what is this", image_base64=base64.b64encode(payload).decode())
