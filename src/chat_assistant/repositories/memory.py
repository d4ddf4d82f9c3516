"""In-memory repository implementation."""

import asyncio
from typing import Dict, List, Optional

import structlog

from ..domain.models import DEFAULT_TITLE, Conversation, Message
from ..errors import NotFoundError
from .base import Repository

logger = structlog.get_logger()


class InMemoryRepository(Repository):
    """Async-safe in-process store for local runs and tests."""

    def __init__(self) -> None:
        self._conversations: Dict[str, Conversation] = {}
        self._messages: Dict[str, List[Message]] = {}
        self._lock = asyncio.Lock()
        logger.info("repository_initialized", backend="memory")

    async def list_conversations(self, user_id: str) -> List[Conversation]:
        async with self._lock:
            conversations = [
                c.model_copy() for c in self._conversations.values() if c.user_id == user_id
            ]
        return sorted(conversations, key=lambda c: c.updated_at, reverse=True)

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                logger.warning("conversation_not_found", conversation_id=conversation_id)
                return None
            return conversation.model_copy()

    async def create_conversation(self, user_id: str, title: str = DEFAULT_TITLE) -> Conversation:
        conversation = Conversation(user_id=user_id, title=title)
        async with self._lock:
            self._conversations[conversation.id] = conversation
            self._messages[conversation.id] = []
        logger.info("conversation_created", conversation_id=conversation.id, user_id=user_id)
        return conversation.model_copy()

    async def update_conversation_title(self, conversation_id: str, title: str) -> None:
        async with self._lock:
            conversation = self._require(conversation_id)
            conversation.title = title
        logger.info("conversation_title_updated", conversation_id=conversation_id)

    async def delete_conversation(self, conversation_id: str) -> None:
        async with self._lock:
            self._require(conversation_id)
            del self._conversations[conversation_id]
            self._messages.pop(conversation_id, None)
        logger.info("conversation_deleted", conversation_id=conversation_id)

    async def add_message(self, message: Message) -> Message:
        async with self._lock:
            conversation = self._require(message.conversation_id)
            self._messages.setdefault(message.conversation_id, []).append(message)
            conversation.updated_at = max(conversation.updated_at, message.created_at)
        logger.info(
            "message_added",
            conversation_id=message.conversation_id,
            message_role=message.role
        )
        return message

    async def get_messages(self, conversation_id: str) -> List[Message]:
        # Like a filtered table read: an unknown id yields no rows.
        async with self._lock:
            messages = list(self._messages.get(conversation_id, []))
        # sorted() is stable, so equal timestamps keep insertion order
        return sorted(messages, key=lambda m: m.created_at)

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            logger.error("conversation_not_found", conversation_id=conversation_id)
            raise NotFoundError("Conversation", conversation_id)
        return conversation
