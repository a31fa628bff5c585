"""Custom exceptions for the rulecraft service.

Provides specific exception classes for rule generation streaming and the
model backend.
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Rule Generation Streaming
# ---------------------------------------------------------------------------


class RuleGenerationError(Exception):
    """Base exception for rule generation errors."""

    pass


class TransportError(RuleGenerationError):
    """Raised when the generation endpoint answers with a non-2xx status or no body.

    Error Code: TRANSPORT_FAILED
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class StreamEndedUnexpectedlyError(RuleGenerationError):
    """Raised when a stream closes before any terminal event arrived.

    Error Code: STREAM_ENDED_UNEXPECTEDLY
    """

    def __init__(self, message: str = "Stream ended unexpectedly") -> None:
        super().__init__(message)


class StreamErrorEventError(RuleGenerationError):
    """Raised when the server reports an in-band error event.

    Error Code: STREAM_ERROR_EVENT
    """

    def __init__(self, error_text: str, code: str | None = None) -> None:
        self.error_text = error_text
        self.code = code
        super().__init__(error_text)


class InvalidPhaseTransitionError(RuleGenerationError):
    """Raised when the phase producer is driven out of order.

    Error Code: INVALID_PHASE_TRANSITION
    """

    def __init__(self, current: str, attempted: str) -> None:
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot {attempted} while in state '{current}'")


# ---------------------------------------------------------------------------
# Model Backend
# ---------------------------------------------------------------------------


class LLMServiceError(Exception):
    """Base exception for model backend errors."""

    pass


class ProviderNotSupportedError(LLMServiceError):
    """Raised when a request names an unknown model provider.

    Error Code: PROVIDER_NOT_SUPPORTED
    """

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Unsupported AI provider: {provider}")


class ApiKeyNotSetError(LLMServiceError):
    """Raised when the provider API key is missing from the environment.

    Error Code: API_KEY_NOT_SET
    """

    pass


class ModelBackendError(LLMServiceError):
    """Raised when the provider call fails or returns a non-success status.

    Error Code: MODEL_BACKEND_FAILED
    """

    pass


class PromptTemplateNotFoundError(FileNotFoundError):
    """Raised when a prompt template file does not exist.

    Error Code: PROMPT_TEMPLATE_NOT_FOUND
    """

    def __init__(self, name: str, path: str) -> None:
        self.name = name
        super().__init__(f"Prompt template '{name}' not found at {path}")


# ---------------------------------------------------------------------------
# Request Handling
# ---------------------------------------------------------------------------


class InvalidChatRequestError(ValueError):
    """Raised when a chat request body cannot be interpreted.

    Error Code: INVALID_REQUEST_BODY
    """

    pass
