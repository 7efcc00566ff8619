"""Exception hierarchy shared by the gateway, the approval gate and the orchestrator."""

from typing import Any


class AionError(RuntimeError):
    """Base class for every error raised on purpose by Aion."""


class ConfigurationError(AionError):
    """Raised when the configuration cannot produce a working backend call."""


class MissingCredentialsError(ConfigurationError):
    """Raised when a provider needs an API key and none is configured."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"{provider} API key not configured")
        self.provider = provider


class ProviderError(AionError):
    """
    Raised when a backend answers with a non-success status or cannot be reached.

    Attributes
    ----------
    provider:
        Human readable provider tag (``"Gemini"``, ``"Anthropic"``, ``"OpenAI"`` ...).
    status:
        HTTP status code, or *None* for connection-level failures.
    body:
        Decoded response body (JSON when possible, raw text otherwise).
    """

    def __init__(self, provider: str, status: int | None, body: Any) -> None:
        status_text = str(status) if status is not None else "connection failed"
        super().__init__(f"{provider} Error: {status_text} - {body}")
        self.provider = provider
        self.status = status
        self.body = body


class ApprovalAbandoned(AionError):
    """Raised inside a suspended loop whose pending approval was discarded by a reset."""
