"""Anthropic Messages API client over httpx.

Mirrors OpenAIClient: same retry policy, same error mapping, same
LLMClient protocol. A leading system message in ``messages`` is lifted
into the top-level ``system`` field the Messages API expects.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from memex.llm.client import build_retryer, check_response, json_body
from memex.llm.errors import LLMConfigError, LLMResponseError

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class AnthropicClient:
    """Sync httpx client for the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str = ANTHROPIC_API_URL,
        default_model: str = "claude-3-haiku-20240307",
        timeout: float = 60.0,
        max_retries: int = 1,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise LLMConfigError("No API key provided. Set ANTHROPIC_API_KEY.")
        self._base_url = base_url.rstrip("/")
        self._default_model = default_model
        self._max_retries = max_retries
        self._client = httpx.Client(
            timeout=timeout,
            headers={
                "Content-Type": "application/json",
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            transport=transport,
        )

    @property
    def default_model(self) -> str:
        return self._default_model

    def chat(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> dict:
        """Send a Messages API request with retry."""
        return build_retryer(self._max_retries)(
            self._do_chat,
            messages,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )

    def _do_chat(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> dict:
        system_parts = [m["content"] for m in messages if m.get("role") == "system"]
        payload: dict[str, Any] = {
            "model": model or self._default_model,
            "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
            "messages": [m for m in messages if m.get("role") != "system"],
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        if temperature is not None:
            payload["temperature"] = temperature
        payload.update(kwargs)

        response = self._client.post(f"{self._base_url}/messages", json=payload)
        check_response(response)

        data = json_body(response)
        if "content" not in data:
            raise LLMResponseError(
                f"Unexpected response format: missing 'content' key. "
                f"Response: {data}"
            )
        return data

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> AnthropicClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @staticmethod
    def extract_content(response: dict) -> str:
        """Text of the first content block; empty if it is not a text block."""
        try:
            block = response["content"][0]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMResponseError(
                f"Cannot extract content from response: {exc}. "
                f"Response: {response}"
            ) from exc
        if not isinstance(block, dict) or block.get("type") != "text":
            return ""
        return block.get("text") or ""
