"""Error types shared across the chat service."""

from typing import Any, Dict, Optional


class ChatError(Exception):
    """Base exception for the chat service."""

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(ChatError):
    """Raised when a required setting is missing."""

    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION_ERROR")


class RequestValidationError(ChatError):
    """Raised when a request is missing required fields."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class StorageError(ChatError):
    """Raised when a read or write against the data store fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "STORAGE_ERROR", details)


class NotFoundError(StorageError):
    """Raised when a conversation does not exist."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            f"{resource} with identifier '{identifier}' not found",
            {"resource": resource, "identifier": identifier},
        )
        self.error_code = "NOT_FOUND"


class ProviderError(ChatError):
    """Raised when the completion provider answers with a failure."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "PROVIDER_ERROR", details)


class EmptyResponseError(ProviderError):
    """Raised when the provider reply carries no content."""

    def __init__(self, message: str = "No response from AI"):
        super().__init__(message)
        self.error_code = "EMPTY_RESPONSE"


class CompletionFailedError(ChatError):
    """Raised on the client side when the completion endpoint reports an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, "COMPLETION_FAILED", {"status_code": status_code})
        self.status_code = status_code
