"""Built-in OpenAI-compatible httpx client with tenacity retry.

Provides a sync HTTP client for OpenAI-compatible chat completion APIs
(OpenAI itself and LiteLLM proxies). The status handling and retry policy
here are shared with the Anthropic client.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
import tenacity

from memex.llm.errors import (
    LLMAuthError,
    LLMConfigError,
    LLMRateLimitError,
    LLMResponseError,
)

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_AUTH_ERROR_STATUS_CODES = {401, 403}


def _is_retryable(exc: BaseException) -> bool:
    """Check if an exception is retryable.

    Retryable: 429, 500, 502, 503, 504, connection errors.
    Not retryable: 401, 403, 400, other client errors.
    """
    if isinstance(exc, LLMAuthError):
        return False
    if isinstance(exc, LLMRateLimitError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))


def build_retryer(max_attempts: int) -> tenacity.Retrying:
    """Retry policy for one request.

    ``max_attempts`` of 1 means a single attempt and no retry.
    """
    return tenacity.Retrying(
        retry=tenacity.retry_if_exception(_is_retryable),
        wait=(
            tenacity.wait_exponential(multiplier=1, min=1, max=30)
            + tenacity.wait_random(0, 2)
        ),
        stop=tenacity.stop_after_attempt(max(1, max_attempts)),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def check_response(response: httpx.Response) -> None:
    """Map auth and rate-limit statuses to LLM errors, then raise_for_status."""
    if response.status_code in _AUTH_ERROR_STATUS_CODES:
        raise LLMAuthError(
            f"Authentication failed: HTTP {response.status_code} - "
            f"{response.text}"
        )

    if response.status_code == 429:
        retry_after_raw = response.headers.get("Retry-After")
        retry_after: float | None = None
        if retry_after_raw is not None:
            try:
                retry_after = float(retry_after_raw)
            except (ValueError, TypeError):
                pass
        raise LLMRateLimitError(
            f"Rate limited: HTTP 429 - {response.text}",
            retry_after=retry_after,
        )

    response.raise_for_status()


def json_body(response: httpx.Response) -> dict:
    """Decode a JSON object body, raising LLMResponseError for anything else."""
    try:
        data = response.json()
    except ValueError as exc:
        raise LLMResponseError(
            f"Response body is not JSON: {response.text[:200]!r}"
        ) from exc
    if not isinstance(data, dict):
        raise LLMResponseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


class OpenAIClient:
    """Sync httpx client for OpenAI-compatible chat completions.

    Implements the LLMClient protocol. Transient errors (429, 5xx) are
    retried with exponential backoff up to ``max_retries`` attempts;
    authentication errors (401, 403) fail immediately.

    Usage::

        with OpenAIClient(api_key="sk-...") as client:
            response = client.chat([{"role": "user", "content": "Hello"}])
            text = OpenAIClient.extract_content(response)
    """

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.openai.com/v1",
        default_model: str = "gpt-4o-mini",
        timeout: float = 60.0,
        max_retries: int = 1,
        extra_headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the OpenAI-compatible client.

        Args:
            api_key: API key for the endpoint.
            base_url: API base URL including the version segment.
            default_model: Default model for chat requests.
            timeout: Request timeout in seconds.
            max_retries: Total attempts for retryable errors (1 = no retry).
            extra_headers: Additional headers sent with every request.
            transport: Optional httpx transport (used by tests).

        Raises:
            LLMConfigError: If no API key is provided.
        """
        if not api_key:
            raise LLMConfigError(
                "No API key provided. Set OPENAI_API_KEY (or LITELLM_API_KEY "
                "for a LiteLLM proxy)."
            )
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._default_model = default_model
        self._max_retries = max_retries
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }
        if extra_headers:
            headers.update(extra_headers)
        self._client = httpx.Client(timeout=timeout, headers=headers, transport=transport)

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
        """Send chat completion request with retry.

        Uses tenacity.Retrying programmatically (not as decorator) so that
        max_retries is configurable per-instance.

        Raises:
            LLMAuthError: On 401/403 (no retry).
            LLMRateLimitError: On 429 after all attempts are exhausted.
            LLMResponseError: On unexpected response format.
            httpx.HTTPError: On other HTTP or transport errors.
        """
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
        """Execute a single chat completion request (no retry)."""
        payload: dict[str, Any] = {
            "model": model or self._default_model,
            "messages": messages,
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        payload.update(kwargs)

        response = self._client.post(f"{self._base_url}/chat/completions", json=payload)
        check_response(response)

        data = json_body(response)
        if "choices" not in data:
            raise LLMResponseError(
                f"Unexpected response format: missing 'choices' key. "
                f"Response: {data}"
            )
        return data

    def close(self) -> None:
        """Close the underlying httpx client."""
        self._client.close()

    def __enter__(self) -> OpenAIClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @staticmethod
    def extract_content(response: dict) -> str:
        """Extract the assistant's message content from a response dict.

        Raises:
            LLMResponseError: If the response format is unexpected.
        """
        try:
            return response["choices"][0]["message"].get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise LLMResponseError(
                f"Cannot extract content from response: {exc}. "
                f"Response: {response}"
            ) from exc
