"""Chat-completion provider clients."""

from abc import ABC, abstractmethod
from typing import List, Optional

import google.generativeai as genai
import httpx
import structlog
from google.api_core import exceptions

from ..config import Settings
from ..domain.models import ASSISTANT, PromptMessage, ProviderReply, Usage
from ..errors import ConfigurationError, EmptyResponseError, ProviderError

logger = structlog.get_logger()


class CompletionProvider(ABC):
    """External service that turns a prompt sequence into an assistant reply."""

    name = "provider"

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        max_tokens: int = 2000,
        temperature: float = 0.7,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    def ensure_configured(self) -> None:
        """Raise ConfigurationError when no API key is available."""
        if not self.api_key:
            raise ConfigurationError(f"{self.name} API key not configured")

    @abstractmethod
    async def complete(self, messages: List[PromptMessage]) -> ProviderReply:
        """Submit the prompt and return the reply text with usage."""
        pass

    async def close(self) -> None:
        return None


class OpenAIChatProvider(CompletionProvider):
    """OpenAI-compatible ``/chat/completions`` client."""

    name = "OpenAI"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        max_tokens: int = 2000,
        temperature: float = 0.7,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(api_key, model, max_tokens, temperature)
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def complete(self, messages: List[PromptMessage]) -> ProviderReply:
        self.ensure_configured()
        payload = {
            "model": self.model,
            "messages": [m.model_dump() for m in messages],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = await self._client.post(
                f"{self.base_url}/chat/completions", json=payload, headers=headers
            )
        except httpx.HTTPError as e:
            logger.error("provider_unreachable", provider=self.name, error=str(e))
            raise ProviderError("Failed to get AI response") from e

        if response.status_code >= 400:
            logger.error(
                "provider_error",
                provider=self.name,
                status_code=response.status_code,
                body=response.text,
            )
            raise ProviderError(
                "Failed to get AI response", {"status_code": response.status_code}
            )

        try:
            data = response.json() or {}
        except ValueError as e:
            logger.error("provider_malformed_reply", provider=self.name, body=response.text)
            raise ProviderError("Failed to get AI response") from e
        choices = data.get("choices") or []
        content = None
        if choices:
            content = (choices[0].get("message") or {}).get("content")
        if not content:
            raise EmptyResponseError()

        usage = data.get("usage")
        return ProviderReply(
            text=content,
            usage=Usage.model_validate(usage) if usage else None,
        )

    async def close(self) -> None:
        await self._client.aclose()


class GeminiChatProvider(CompletionProvider):
    """Google Gemini client; assistant turns are sent with the ``model`` role."""

    name = "Gemini"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-1.5-flash",
        max_tokens: int = 2000,
        temperature: float = 0.7,
    ) -> None:
        super().__init__(api_key, model, max_tokens, temperature)
        if api_key:
            genai.configure(api_key=api_key)

    async def complete(self, messages: List[PromptMessage]) -> ProviderReply:
        self.ensure_configured()
        system = "\n".join(m.content for m in messages if m.role == "system")
        contents = [
            {"role": "model" if m.role == ASSISTANT else "user", "parts": [m.content]}
            for m in messages
            if m.role != "system"
        ]
        try:
            model = genai.GenerativeModel(self.model, system_instruction=system or None)
            response = await model.generate_content_async(
                contents,
                generation_config=genai.GenerationConfig(
                    max_output_tokens=self.max_tokens,
                    temperature=self.temperature,
                ),
            )
        except exceptions.GoogleAPIError as e:
            logger.error("provider_error", provider=self.name, error=str(e))
            raise ProviderError("Failed to get AI response") from e
        except Exception as e:
            # google.auth failures, blocked prompts and stop-candidate errors
            logger.error(
                "provider_error",
                provider=self.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProviderError("Failed to get AI response") from e

        try:
            text = response.text
        except ValueError:
            text = None
        if not text:
            raise EmptyResponseError()

        metadata = getattr(response, "usage_metadata", None)
        usage = None
        if metadata is not None:
            usage = Usage(
                prompt_tokens=metadata.prompt_token_count,
                completion_tokens=metadata.candidates_token_count,
                total_tokens=metadata.total_token_count,
            )
        return ProviderReply(text=text, usage=usage)


def build_provider(settings: Settings) -> CompletionProvider:
    """Return the provider named by ``settings.chat_provider``."""
    if settings.chat_provider == "gemini":
        provider: CompletionProvider = GeminiChatProvider(
            settings.gemini_api_key,
            model=settings.model,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
        )
    elif settings.chat_provider == "openai":
        provider = OpenAIChatProvider(
            settings.openai_api_key,
            model=settings.model,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            base_url=settings.openai_base_url,
            timeout=settings.provider_timeout,
        )
    else:
        raise ConfigurationError(f"Unknown completion provider: {settings.chat_provider}")
    logger.info(
        "llm_service_init",
        provider=provider.name,
        model=provider.model,
        configured=bool(provider.api_key),
    )
    return provider
