"""Domain models for the chat application."""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TITLE = "New Chat"

USER = "user"
ASSISTANT = "assistant"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class Message(BaseModel):
    """Message model. Append-only once stored."""

    id: str = Field(default_factory=new_id)
    conversation_id: str
    role: str = USER  # "user" or "assistant"
    content: str
    created_at: datetime = Field(default_factory=utcnow)


class Conversation(BaseModel):
    """Conversation model."""

    id: str = Field(default_factory=new_id)
    user_id: str
    title: str = DEFAULT_TITLE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PromptMessage(BaseModel):
    """A single (role, content) entry sent to the completion provider."""

    role: str
    content: str


class Usage(BaseModel):
    """Provider usage accounting."""

    model_config = ConfigDict(extra="allow")

    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class ProviderReply(BaseModel):
    text: str
    usage: Optional[Usage] = None


class CompletionRequest(BaseModel):
    """Inbound completion request; wire names are camelCase."""

    model_config = ConfigDict(populate_by_name=True)

    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    message: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")


class CompletionResult(BaseModel):
    """Assistant reply plus provider usage."""

    message: str
    usage: Optional[Usage] = None
