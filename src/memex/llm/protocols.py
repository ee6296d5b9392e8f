"""LLM client and summarizer protocols.

LLMClient is the transport-level interface (one chat request, one
response dict). Summarizer is the narrow collaborator the compression
orchestrator depends on: messages in, text out.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class LLMClient(Protocol):
    """Protocol for pluggable LLM clients.

    Any object with chat(), extract_content() and close() matching these
    signatures works. OpenAIClient and AnthropicClient implement it.
    """

    def chat(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> dict:
        """Send messages, return response dict."""
        ...

    def extract_content(self, response: dict) -> str:
        """Extract assistant message text from a response dict."""
        ...

    def close(self) -> None:
        """Release underlying resources."""
        ...


@runtime_checkable
class Summarizer(Protocol):
    """Summarization collaborator used by compression.

    ``complete`` may raise on transport failure; callers decide how to
    degrade.
    """

    def complete(self, messages: list[dict[str, str]], system_prompt: str) -> str:
        ...
