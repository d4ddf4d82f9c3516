"""Repository selection from settings."""

from ..config import Settings
from ..errors import ConfigurationError
from .base import Repository
from .memory import InMemoryRepository
from .rest import RestRepository


def build_repository(settings: Settings) -> Repository:
    """Return the repository backend named by ``settings.data_store``."""
    if settings.data_store == "memory":
        return InMemoryRepository()
    if settings.data_store == "rest":
        return RestRepository(settings.supabase_url, settings.supabase_service_role_key)
    raise ConfigurationError(f"Unknown data store: {settings.data_store}")
