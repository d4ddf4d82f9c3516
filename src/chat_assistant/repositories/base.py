"""Base repository interface."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..domain.models import DEFAULT_TITLE, Conversation, Message


class Repository(ABC):
    """Abstract base class for conversation and message storage."""

    @abstractmethod
    async def list_conversations(self, user_id: str) -> List[Conversation]:
        """List a user's conversations, most recently updated first."""
        pass

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """Retrieve a conversation by ID."""
        pass

    @abstractmethod
    async def create_conversation(self, user_id: str, title: str = DEFAULT_TITLE) -> Conversation:
        """Create a new conversation."""
        pass

    @abstractmethod
    async def update_conversation_title(self, conversation_id: str, title: str) -> None:
        """Set the title of a conversation."""
        pass

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation and its messages."""
        pass

    @abstractmethod
    async def add_message(self, message: Message) -> Message:
        """Add a message to a conversation."""
        pass

    @abstractmethod
    async def get_messages(self, conversation_id: str) -> List[Message]:
        """Get messages for a conversation, oldest first; unknown ids yield no rows."""
        pass

    async def close(self) -> None:
        """Release any held connections."""
        return None
