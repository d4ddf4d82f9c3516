"""Tests for the completion handler."""

import pytest
from structlog.testing import capture_logs

from chat_assistant.domain.models import CompletionRequest, Message
from chat_assistant.errors import (
    ConfigurationError,
    RequestValidationError,
    StorageError,
    ProviderError,
)
from chat_assistant.repositories.memory import InMemoryRepository
from chat_assistant.services.completion import CompletionHandler, derive_title

from conftest import FakeProvider


def test_derive_title_short_message_is_verbatim():
    assert derive_title("Hello") == "Hello"
    assert derive_title("x" * 50) == "x" * 50


def test_derive_title_long_message_is_truncated():
    title = derive_title("a" * 80)
    assert len(title) == 51
    assert title == "a" * 50 + "…"


@pytest.mark.asyncio
async def test_first_message_sets_title_and_persists_in_order(repository, provider, handler):
    """Test the first exchange in a fresh conversation."""
    conversation = await repository.create_conversation("user-1")

    result = await handler.handle(
        CompletionRequest(conversation_id=conversation.id, message="Hello", user_id="user-1")
    )

    assert result.message == "Hi there!"
    assert result.usage.total_tokens == 15

    messages = await repository.get_messages(conversation.id)
    assert [m.role for m in messages] == ["user", "assistant"]
    assert [m.content for m in messages] == ["Hello", "Hi there!"]
    assert messages[0].created_at <= messages[1].created_at

    stored = await repository.get_conversation(conversation.id)
    assert stored.title == "Hello"


@pytest.mark.asyncio
async def test_title_only_derived_on_first_exchange(repository, handler):
    """Test that later messages leave the title alone."""
    conversation = await repository.create_conversation("user-1")
    await handler.handle(
        CompletionRequest(conversation_id=conversation.id, message="First question", user_id="user-1")
    )
    await handler.handle(
        CompletionRequest(conversation_id=conversation.id, message="Second question", user_id="user-1")
    )

    stored = await repository.get_conversation(conversation.id)
    assert stored.title == "First question"
    assert len(await repository.get_messages(conversation.id)) == 4


@pytest.mark.asyncio
async def test_long_first_message_title(repository, handler):
    conversation = await repository.create_conversation("user-1")
    message = "Please explain how photosynthesis works in desert plants specifically"
    await handler.handle(
        CompletionRequest(conversation_id=conversation.id, message=message, user_id="user-1")
    )

    stored = await repository.get_conversation(conversation.id)
    assert len(stored.title) == 51
    assert stored.title == message[:50] + "…"


@pytest.mark.asyncio
async def test_prompt_contains_system_history_and_new_message(repository, provider, handler):
    """Test the prompt sequence sent to the provider."""
    conversation = await repository.create_conversation("user-1")
    await handler.handle(
        CompletionRequest(conversation_id=conversation.id, message="One", user_id="user-1")
    )
    await handler.handle(
        CompletionRequest(conversation_id=conversation.id, message="Two", user_id="user-1")
    )

    prompt = provider.calls[-1]
    assert [(m.role, m.content) for m in prompt] == [
        ("system", handler.system_prompt),
        ("user", "One"),
        ("assistant", "Hi there!"),
        ("user", "Two"),
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "fields",
    [
        {"message": "Hello", "user_id": "user-1"},
        {"conversation_id": "c-1", "user_id": "user-1"},
        {"conversation_id": "c-1", "message": "Hello"},
        {"conversation_id": "c-1", "message": "", "user_id": "user-1"},
    ],
)
async def test_missing_fields_never_reach_provider(provider, handler, fields):
    with pytest.raises(RequestValidationError):
        await handler.handle(CompletionRequest(**fields))
    assert provider.calls == []


@pytest.mark.asyncio
async def test_missing_api_key_is_configuration_error(repository):
    handler = CompletionHandler(repository, FakeProvider(api_key=None))
    conversation = await repository.create_conversation("user-1")

    with pytest.raises(ConfigurationError):
        await handler.handle(
            CompletionRequest(conversation_id=conversation.id, message="Hello", user_id="user-1")
        )
    assert await repository.get_messages(conversation.id) == []


@pytest.mark.asyncio
async def test_unknown_conversation_fails_user_message_insert(handler, provider):
    with pytest.raises(StorageError) as exc_info:
        await handler.handle(
            CompletionRequest(conversation_id="missing", message="Hello", user_id="user-1")
        )
    assert exc_info.value.message == "Failed to save user message"
    assert provider.calls == []


@pytest.mark.asyncio
async def test_provider_failure_leaves_user_message(repository):
    """Test the partial-failure window: the user message is kept."""
    handler = CompletionHandler(repository, FakeProvider(fail=True))
    conversation = await repository.create_conversation("user-1")

    with pytest.raises(ProviderError):
        await handler.handle(
            CompletionRequest(conversation_id=conversation.id, message="Hello", user_id="user-1")
        )

    messages = await repository.get_messages(conversation.id)
    assert [m.role for m in messages] == ["user"]
    stored = await repository.get_conversation(conversation.id)
    assert stored.title == "New Chat"


class FailingAssistantInsertRepository(InMemoryRepository):
    async def add_message(self, message: Message) -> Message:
        if message.role == "assistant":
            raise StorageError("insert rejected")
        return await super().add_message(message)


class FailingTitleRepository(InMemoryRepository):
    async def update_conversation_title(self, conversation_id: str, title: str) -> None:
        raise StorageError("update rejected")


class CrashingProvider(FakeProvider):
    async def complete(self, messages):
        raise RuntimeError("credentials could not be refreshed")


@pytest.mark.asyncio
async def test_assistant_insert_failure_keeps_user_message(provider):
    repository = FailingAssistantInsertRepository()
    handler = CompletionHandler(repository, provider)
    conversation = await repository.create_conversation("user-1")

    with capture_logs() as logs:
        with pytest.raises(StorageError) as exc_info:
            await handler.handle(
                CompletionRequest(conversation_id=conversation.id, message="Hello", user_id="user-1")
            )

    assert exc_info.value.message == "Failed to save assistant response"
    assert [m.role for m in await repository.get_messages(conversation.id)] == ["user"]
    assert any(
        log["event"] == "completion_partial_failure" and log["stage"] == "assistant_insert"
        for log in logs
    )


@pytest.mark.asyncio
async def test_title_update_failure_does_not_fail_request(provider):
    repository = FailingTitleRepository()
    handler = CompletionHandler(repository, provider)
    conversation = await repository.create_conversation("user-1")

    with capture_logs() as logs:
        result = await handler.handle(
            CompletionRequest(conversation_id=conversation.id, message="Hello", user_id="user-1")
        )

    assert result.message == "Hi there!"
    assert [m.role for m in await repository.get_messages(conversation.id)] == ["user", "assistant"]
    assert (await repository.get_conversation(conversation.id)).title == "New Chat"
    assert any(log["event"] == "title_update_failed" for log in logs)


@pytest.mark.asyncio
async def test_unexpected_provider_exception_becomes_provider_error(repository):
    handler = CompletionHandler(repository, CrashingProvider())
    conversation = await repository.create_conversation("user-1")

    with capture_logs() as logs:
        with pytest.raises(ProviderError) as exc_info:
            await handler.handle(
                CompletionRequest(conversation_id=conversation.id, message="Hello", user_id="user-1")
            )

    assert exc_info.value.message == "Failed to get AI response"
    assert [m.role for m in await repository.get_messages(conversation.id)] == ["user"]
    assert any(
        log["event"] == "completion_partial_failure" and log["stage"] == "provider"
        for log in logs
    )
