"""LLM client infrastructure for Memex.

Provides OpenAI-compatible and Anthropic httpx clients, provider
resolution, and the summarizer adapter used by compression.
"""

from memex.llm.anthropic import AnthropicClient
from memex.llm.client import OpenAIClient
from memex.llm.errors import (
    LLMAuthError,
    LLMClientError,
    LLMConfigError,
    LLMRateLimitError,
    LLMResponseError,
)
from memex.llm.protocols import LLMClient, Summarizer
from memex.llm.provider import LLMSummarizer, build_client, resolve_provider

__all__ = [
    "AnthropicClient",
    "OpenAIClient",
    "LLMClient",
    "LLMSummarizer",
    "Summarizer",
    "build_client",
    "resolve_provider",
    "LLMClientError",
    "LLMConfigError",
    "LLMRateLimitError",
    "LLMAuthError",
    "LLMResponseError",
]
