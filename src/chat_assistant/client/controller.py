"""Client-side conversation state.

The controller never patches its lists after a mutating call; it re-reads
them from the repository instead.
"""

from typing import Callable, List, Optional, Sequence

import structlog

from ..domain.models import Conversation, Message
from ..repositories.base import Repository
from .composer import (
    Attachment,
    Notification,
    append_transcript,
    compose_message,
    validate_attachments,
)
from .invokers import CompletionInvoker

logger = structlog.get_logger()

Notifier = Callable[[Notification], None]


def error_notification(description: str) -> Notification:
    return Notification(title="Error", description=description, variant="destructive")


class ConversationController:
    """Holds the conversation list and the active thread for one user."""

    def __init__(
        self,
        repository: Repository,
        completion: CompletionInvoker,
        user_id: str,
        notify: Optional[Notifier] = None,
    ) -> None:
        self.repository = repository
        self.completion = completion
        self.user_id = user_id
        self.conversations: List[Conversation] = []
        self.current: Optional[Conversation] = None
        self.messages: List[Message] = []
        self.loading = False
        self.notifications: List[Notification] = []
        self._notify = notify or self.notifications.append

    async def load_conversations(self) -> None:
        try:
            conversations = await self.repository.list_conversations(self.user_id)
        except Exception as e:
            logger.error("load_conversations_failed", user_id=self.user_id, error=str(e))
            self._notify(error_notification("Failed to load conversations"))
            return

        self.conversations = sorted(conversations, key=lambda c: c.updated_at, reverse=True)
        if self.current is not None:
            # Keep the active entry in step with the refreshed row (title, timestamps).
            refreshed = next((c for c in self.conversations if c.id == self.current.id), None)
            if refreshed is not None:
                self.current = refreshed
                return
            logger.warning("active_conversation_gone", conversation_id=self.current.id)
            self.current = None
            self.messages = []

        if self.conversations:
            await self.select_conversation(self.conversations[0].id)

    async def load_messages(self, conversation_id: str) -> None:
        try:
            self.messages = await self.repository.get_messages(conversation_id)
        except Exception as e:
            logger.error("load_messages_failed", conversation_id=conversation_id, error=str(e))
            self._notify(error_notification("Failed to load messages"))

    async def create_conversation(self) -> Optional[Conversation]:
        try:
            conversation = await self.repository.create_conversation(self.user_id)
        except Exception as e:
            logger.error("create_conversation_failed", user_id=self.user_id, error=str(e))
            self._notify(error_notification("Failed to create new conversation"))
            return None

        self.conversations = [conversation] + self.conversations
        self.current = conversation
        self.messages = []
        return conversation

    async def select_conversation(self, conversation_id: str) -> None:
        for conversation in self.conversations:
            if conversation.id == conversation_id:
                self.current = conversation
                await self.load_messages(conversation_id)
                return
        logger.warning("select_unknown_conversation", conversation_id=conversation_id)

    async def delete_conversation(self, conversation_id: str) -> None:
        try:
            await self.repository.delete_conversation(conversation_id)
        except Exception as e:
            logger.error("delete_conversation_failed", conversation_id=conversation_id, error=str(e))
            self._notify(error_notification("Failed to delete conversation"))
            return

        self.conversations = [c for c in self.conversations if c.id != conversation_id]
        if self.current is not None and self.current.id == conversation_id:
            if self.conversations:
                await self.select_conversation(self.conversations[0].id)
            else:
                self.current = None
                self.messages = []

    async def send_message(
        self,
        text: str,
        attachments: Sequence[Attachment] = (),
        transcripts: Sequence[str] = (),
    ) -> Optional[str]:
        """Send a message and return the assistant reply, or None on failure.

        Attachments of an unsupported type or over the size limit are dropped
        with a notification; the rest are listed by name in the message.
        """
        accepted, rejected = validate_attachments(attachments)
        for notification in rejected:
            self._notify(notification)
        for transcript in transcripts:
            text = append_transcript(text, transcript)
        content = compose_message(text, accepted)
        if content is None:
            return None

        if self.current is None:
            if await self.create_conversation() is None:
                return None
        conversation_id = self.current.id

        self.loading = True
        try:
            result = await self.completion.invoke(conversation_id, content, self.user_id)
            # Reload to pick up server-side changes (new rows, title, timestamps).
            await self.load_messages(conversation_id)
            await self.load_conversations()
            return result.message
        except Exception as e:
            logger.error("send_message_failed", conversation_id=conversation_id, error=str(e))
            self._notify(error_notification("Failed to send message"))
            return None
        finally:
            self.loading = False
