"""Shared fixtures and test doubles."""

from typing import List, Optional

import pytest

from chat_assistant.domain.models import PromptMessage, ProviderReply, Usage
from chat_assistant.errors import ProviderError
from chat_assistant.repositories.memory import InMemoryRepository
from chat_assistant.services.completion import CompletionHandler
from chat_assistant.services.llm import CompletionProvider


class FakeProvider(CompletionProvider):
    """Records prompts and answers with a canned reply."""

    name = "Fake"

    def __init__(self, reply: str = "Hi there!", api_key: Optional[str] = "test-key", fail: bool = False):
        super().__init__(api_key, "fake-model")
        self.reply = reply
        self.fail = fail
        self.calls: List[List[PromptMessage]] = []

    async def complete(self, messages: List[PromptMessage]) -> ProviderReply:
        self.ensure_configured()
        self.calls.append(list(messages))
        if self.fail:
            raise ProviderError("Failed to get AI response")
        return ProviderReply(
            text=self.reply,
            usage=Usage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        )


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def handler(repository, provider):
    return CompletionHandler(repository, provider)
