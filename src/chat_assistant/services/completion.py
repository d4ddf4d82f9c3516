"""Completion handler: persist a user message, ask the provider, persist the reply."""

from typing import List

import structlog

from ..config import DEFAULT_SYSTEM_PROMPT
from ..domain.models import (
    ASSISTANT,
    USER,
    CompletionRequest,
    CompletionResult,
    Message,
    PromptMessage,
)
from ..errors import ChatError, ProviderError, RequestValidationError, StorageError
from ..repositories.base import Repository
from .llm import CompletionProvider

logger = structlog.get_logger()

TITLE_LIMIT = 50
ELLIPSIS = "…"


def derive_title(text: str, limit: int = TITLE_LIMIT) -> str:
    """Conversation title from the first user message.

    Text longer than ``limit`` is cut to ``limit`` characters and gets a
    single ellipsis character appended.
    """
    if len(text) <= limit:
        return text
    return text[:limit] + ELLIPSIS


class CompletionHandler:
    """Stateless per-message handler.

    The two inserts are independent writes: a provider or storage failure
    after the user message is saved leaves that message unanswered.
    """

    def __init__(
        self,
        repository: Repository,
        provider: CompletionProvider,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self.repository = repository
        self.provider = provider
        self.system_prompt = system_prompt

    async def handle(self, request: CompletionRequest) -> CompletionResult:
        self.provider.ensure_configured()

        if not request.conversation_id or not request.message or not request.user_id:
            raise RequestValidationError(
                "Missing required parameters",
                {
                    "conversationId": bool(request.conversation_id),
                    "message": bool(request.message),
                    "userId": bool(request.user_id),
                },
            )

        conversation_id = request.conversation_id
        logger.info("completion_started", conversation_id=conversation_id)

        try:
            history = await self.repository.get_messages(conversation_id)
        except Exception as e:
            logger.error("history_fetch_failed", conversation_id=conversation_id, error=str(e))
            raise StorageError("Failed to fetch conversation history") from e

        try:
            await self.repository.add_message(
                Message(conversation_id=conversation_id, role=USER, content=request.message)
            )
        except Exception as e:
            logger.error("user_message_insert_failed", conversation_id=conversation_id, error=str(e))
            raise StorageError("Failed to save user message") from e

        try:
            reply = await self.provider.complete(self._build_prompt(history, request.message))
        except ChatError:
            logger.warning("completion_partial_failure", conversation_id=conversation_id, stage="provider")
            raise
        except Exception as e:
            logger.warning(
                "completion_partial_failure",
                conversation_id=conversation_id,
                stage="provider",
                error=str(e),
            )
            raise ProviderError("Failed to get AI response") from e

        try:
            await self.repository.add_message(
                Message(conversation_id=conversation_id, role=ASSISTANT, content=reply.text)
            )
        except Exception as e:
            logger.warning("completion_partial_failure", conversation_id=conversation_id, stage="assistant_insert")
            raise StorageError("Failed to save assistant response") from e

        if len(history) == 0:
            await self._set_title(conversation_id, derive_title(request.message))

        logger.info(
            "completion_succeeded",
            conversation_id=conversation_id,
            history_length=len(history),
            reply_length=len(reply.text),
            total_tokens=reply.usage.total_tokens if reply.usage else None,
        )
        return CompletionResult(message=reply.text, usage=reply.usage)

    def _build_prompt(self, history: List[Message], message: str) -> List[PromptMessage]:
        prompt = [PromptMessage(role="system", content=self.system_prompt)]
        prompt.extend(PromptMessage(role=m.role, content=m.content) for m in history)
        prompt.append(PromptMessage(role=USER, content=message))
        return prompt

    async def _set_title(self, conversation_id: str, title: str) -> None:
        # The reply is already stored, so a failed title write only gets logged.
        try:
            await self.repository.update_conversation_title(conversation_id, title)
        except Exception as e:
            logger.warning("title_update_failed", conversation_id=conversation_id, error=str(e))
