"""PostgREST-backed repository for a hosted Supabase database."""

from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..domain.models import DEFAULT_TITLE, Conversation, Message
from ..errors import ConfigurationError, NotFoundError, StorageError
from .base import Repository

logger = structlog.get_logger()


class RestRepository(Repository):
    """Talks to the ``conversations`` and ``messages`` tables over REST.

    Filters use PostgREST syntax (``column=eq.value``) and writes ask for
    the stored row back with ``Prefer: return=representation``.
    """

    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str],
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        if not base_url or not api_key:
            raise ConfigurationError("Data store URL and service key must be configured")
        self._rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        logger.info("repository_initialized", backend="rest", url=self._rest_url)

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        returning: bool = False,
        failure: str,
    ) -> List[Dict[str, Any]]:
        headers = dict(self._headers)
        if returning:
            headers["Prefer"] = "return=representation"
        try:
            response = await self._client.request(
                method,
                f"{self._rest_url}/{table}",
                params=params,
                json=json,
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "data_store_error",
                table=table,
                method=method,
                status_code=e.response.status_code,
                body=e.response.text,
            )
            raise StorageError(failure, {"status_code": e.response.status_code}) from e
        except httpx.HTTPError as e:
            logger.error("data_store_unreachable", table=table, method=method, error=str(e))
            raise StorageError(failure) from e

        if not response.content:
            return []
        return response.json()

    async def list_conversations(self, user_id: str) -> List[Conversation]:
        rows = await self._request(
            "GET",
            "conversations",
            params={"select": "*", "user_id": f"eq.{user_id}", "order": "updated_at.desc"},
            failure="Failed to load conversations",
        )
        return [Conversation.model_validate(row) for row in rows]

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        rows = await self._request(
            "GET",
            "conversations",
            params={"select": "*", "id": f"eq.{conversation_id}", "limit": "1"},
            failure="Failed to load conversation",
        )
        if not rows:
            logger.warning("conversation_not_found", conversation_id=conversation_id)
            return None
        return Conversation.model_validate(rows[0])

    async def create_conversation(self, user_id: str, title: str = DEFAULT_TITLE) -> Conversation:
        rows = await self._request(
            "POST",
            "conversations",
            json={"user_id": user_id, "title": title},
            returning=True,
            failure="Failed to create conversation",
        )
        if not rows:
            raise StorageError("Failed to create conversation")
        conversation = Conversation.model_validate(rows[0])
        logger.info("conversation_created", conversation_id=conversation.id, user_id=user_id)
        return conversation

    async def update_conversation_title(self, conversation_id: str, title: str) -> None:
        await self._request(
            "PATCH",
            "conversations",
            params={"id": f"eq.{conversation_id}"},
            json={"title": title},
            failure="Failed to update conversation title",
        )

    async def delete_conversation(self, conversation_id: str) -> None:
        rows = await self._request(
            "DELETE",
            "conversations",
            params={"id": f"eq.{conversation_id}"},
            returning=True,
            failure="Failed to delete conversation",
        )
        if not rows:
            raise NotFoundError("Conversation", conversation_id)
        logger.info("conversation_deleted", conversation_id=conversation_id)

    async def add_message(self, message: Message) -> Message:
        rows = await self._request(
            "POST",
            "messages",
            json={
                "conversation_id": message.conversation_id,
                "role": message.role,
                "content": message.content,
            },
            returning=True,
            failure="Failed to save message",
        )
        logger.info(
            "message_added",
            conversation_id=message.conversation_id,
            message_role=message.role
        )
        return Message.model_validate(rows[0]) if rows else message

    async def get_messages(self, conversation_id: str) -> List[Message]:
        rows = await self._request(
            "GET",
            "messages",
            params={
                "select": "*",
                "conversation_id": f"eq.{conversation_id}",
                "order": "created_at.asc",
            },
            failure="Failed to load messages",
        )
        return [Message.model_validate(row) for row in rows]

    async def close(self) -> None:
        await self._client.aclose()
