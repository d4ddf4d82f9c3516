"""Runtime configuration read from the environment."""

from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Provide clear, concise, and helpful responses."
)

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "gemini": "gemini-1.5-flash",
}


class Settings(BaseSettings):
    """Application settings, one environment variable per field."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        populate_by_name=True,
        extra="ignore",
    )

    chat_provider: str = Field(default="openai", alias="CHAT_PROVIDER")
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    chat_model: Optional[str] = Field(default=None, alias="CHAT_MODEL")
    max_tokens: int = Field(default=2000, gt=0, alias="CHAT_MAX_TOKENS")
    temperature: float = Field(default=0.7, ge=0, le=2, alias="CHAT_TEMPERATURE")
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, alias="CHAT_SYSTEM_PROMPT")
    provider_timeout: float = Field(default=60.0, gt=0, alias="PROVIDER_TIMEOUT")

    data_store: str = Field(default="memory", alias="DATA_STORE")
    supabase_url: Optional[str] = Field(default=None, alias="SUPABASE_URL")
    supabase_service_role_key: Optional[str] = Field(default=None, alias="SUPABASE_SERVICE_ROLE_KEY")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )
    json_logs: bool = Field(default=False, alias="JSON_LOGS")

    @field_validator("chat_provider", "data_store", mode="before")
    @classmethod
    def _lowercase(cls, value):
        return value.lower() if isinstance(value, str) else value

    @field_validator("log_level", mode="before")
    @classmethod
    def _uppercase(cls, value):
        return value.upper() if isinstance(value, str) else value

    @property
    def model(self) -> str:
        """Model identifier, falling back to the provider's default."""
        return self.chat_model or DEFAULT_MODELS.get(self.chat_provider, DEFAULT_MODELS["openai"])

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables and an optional ``.env`` file."""
        return cls()
