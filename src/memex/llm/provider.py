"""Provider resolution and the summarizer adapter.

``resolve_provider`` picks anthropic / openai / litellm from MemexConfig,
``build_client`` constructs the matching httpx client, and
``LLMSummarizer`` adapts any LLMClient to the Summarizer protocol the
compression orchestrator uses.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from memex.llm.anthropic import AnthropicClient
from memex.llm.client import OpenAIClient
from memex.llm.errors import LLMConfigError

if TYPE_CHECKING:
    from memex.llm.protocols import LLMClient
    from memex.models.config import MemexConfig, Provider

logger = logging.getLogger(__name__)


def resolve_provider(config: MemexConfig) -> Provider:
    """Explicit ``AI_PROVIDER`` wins; otherwise detect from credentials.

    Detection order: litellm (key and base URL both set), anthropic,
    openai. With nothing configured the answer is anthropic, whose client
    then reports the missing key.
    """
    if config.provider is not None:
        return config.provider
    if config.litellm_api_key and config.litellm_base_url:
        return "litellm"
    if config.anthropic_api_key:
        return "anthropic"
    if config.openai_api_key:
        return "openai"
    return "anthropic"


def build_client(
    config: MemexConfig,
    *,
    transport: httpx.BaseTransport | None = None,
) -> LLMClient:
    """Construct the LLM client for the resolved provider.

    Raises:
        LLMConfigError: Required credentials for the provider are missing.
    """
    provider = resolve_provider(config)
    logger.debug("Using summarization provider %s", provider)

    if provider == "anthropic":
        return AnthropicClient(
            api_key=config.anthropic_api_key,
            default_model=config.anthropic_model,
            timeout=config.llm_timeout,
            max_retries=config.llm_max_retries,
            transport=transport,
        )

    if provider == "litellm":
        if not config.litellm_base_url:
            raise LLMConfigError("LITELLM_BASE_URL is not set.")
        if not config.litellm_api_key:
            raise LLMConfigError("LITELLM_API_KEY is not set.")
        headers = {"x-litellm-team": config.litellm_team_id} if config.litellm_team_id else None
        return OpenAIClient(
            api_key=config.litellm_api_key,
            base_url=config.litellm_base_url.rstrip("/") + "/v1",
            default_model=config.litellm_model,
            timeout=config.llm_timeout,
            max_retries=config.llm_max_retries,
            extra_headers=headers,
            transport=transport,
        )

    return OpenAIClient(
        api_key=config.openai_api_key,
        base_url=config.openai_base_url,
        default_model=config.openai_model,
        timeout=config.llm_timeout,
        max_retries=config.llm_max_retries,
        transport=transport,
    )


class LLMSummarizer:
    """Summarizer backed by an LLMClient.

    Built with :meth:`from_config`, the client is constructed on the first
    call, so missing credentials surface as an LLMConfigError from
    ``complete`` rather than when the session starts.

    Usage::

        summarizer = LLMSummarizer.from_config(MemexConfig.from_env())
        text = summarizer.complete([{"role": "user", "content": "..."}], SYSTEM)
    """

    def __init__(
        self,
        client: LLMClient | None = None,
        *,
        model: str | None = None,
        config: MemexConfig | None = None,
    ) -> None:
        if client is None and config is None:
            raise LLMConfigError("LLMSummarizer needs a client or a config")
        self._client = client
        self._config = config
        self._model = model

    @classmethod
    def from_config(cls, config: MemexConfig) -> LLMSummarizer:
        return cls(config=config)

    @property
    def client(self) -> LLMClient:
        if self._client is None:
            assert self._config is not None
            self._client = build_client(self._config)
        return self._client

    def complete(self, messages: list[dict[str, str]], system_prompt: str) -> str:
        client = self.client
        response = client.chat(
            [{"role": "system", "content": system_prompt}, *messages],
            model=self._model,
        )
        return client.extract_content(response)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    def __enter__(self) -> LLMSummarizer:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
