"""Ways for the client controller to reach the completion handler."""

from abc import ABC, abstractmethod
from typing import Optional

import httpx
import structlog
from pydantic import ValidationError

from ..domain.models import CompletionRequest, CompletionResult
from ..errors import CompletionFailedError
from ..services.completion import CompletionHandler

logger = structlog.get_logger()


class CompletionInvoker(ABC):
    """Sends one user message for completion."""

    @abstractmethod
    async def invoke(self, conversation_id: str, message: str, user_id: str) -> CompletionResult:
        pass

    async def close(self) -> None:
        return None


class LocalCompletionInvoker(CompletionInvoker):
    """Calls an in-process handler."""

    def __init__(self, handler: CompletionHandler) -> None:
        self.handler = handler

    async def invoke(self, conversation_id: str, message: str, user_id: str) -> CompletionResult:
        return await self.handler.handle(
            CompletionRequest(conversation_id=conversation_id, message=message, user_id=user_id)
        )


class HttpCompletionInvoker(CompletionInvoker):
    """POSTs to a deployed ``/chat-completion`` endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 120.0,
    ) -> None:
        self.url = f"{base_url.rstrip('/')}/chat-completion"
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"
            self._headers["apikey"] = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def invoke(self, conversation_id: str, message: str, user_id: str) -> CompletionResult:
        body = {"conversationId": conversation_id, "message": message, "userId": user_id}
        try:
            response = await self._client.post(self.url, json=body, headers=self._headers)
        except httpx.HTTPError as e:
            logger.error("completion_request_failed", url=self.url, error=str(e))
            raise CompletionFailedError(str(e) or "Completion request failed") from e

        if response.status_code != 200:
            try:
                data = response.json()
            except ValueError:
                data = None
            error = data.get("error") if isinstance(data, dict) else None
            raise CompletionFailedError(
                error or f"Completion failed with status {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return CompletionResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error("completion_reply_malformed", url=self.url, body=response.text[:200])
            raise CompletionFailedError(
                "Malformed completion response", status_code=response.status_code
            ) from e

    async def close(self) -> None:
        await self._client.aclose()
