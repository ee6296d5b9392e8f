"""Errors raised by the summarizer's HTTP clients.

Each maps to one way a summarization call goes wrong: no usable
credentials, the provider refusing the key, throttling, or a reply that
is not the JSON shape the provider documents. The compression
orchestrator turns any of them into a recorded transport failure.
"""

from __future__ import annotations

from memex.exceptions import MemexError


class LLMClientError(MemexError):
    """A summarization request could not produce a reply."""


class LLMConfigError(LLMClientError):
    """No provider credentials, or a provider that needs a base URL has none."""


class LLMRateLimitError(LLMClientError):
    """HTTP 429 from the provider.

    ``retry_after`` holds the Retry-After header in seconds when the
    provider sent one; the retry policy treats this error as transient.
    """

    def __init__(self, message: str = "Rate limited", retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        if retry_after is not None:
            message = f"{message} (retry after {retry_after}s)"
        super().__init__(message)


class LLMAuthError(LLMClientError):
    """The provider rejected the API key (401/403). Never retried."""


class LLMResponseError(LLMClientError):
    """A 2xx reply whose body is not JSON or lacks the expected keys."""
