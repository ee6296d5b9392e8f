"""Configuration models for Memex.

MemexConfig holds provider credentials and runtime settings, resolved from
the environment, an optional ``.env`` file and the per-project
``.memex/config.json``.
ContextOptions controls how much memory the context assembler renders.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Mapping, Optional

from dotenv import dotenv_values
from pydantic import BaseModel

from memex.constants import CONFIG_FILE_NAME, DEFAULT_INJECT_DELAY_SECONDS, MEMEX_DIR_NAME

logger = logging.getLogger(__name__)

Provider = Literal["anthropic", "openai", "litellm"]
Tier = Literal[1, 2, 3]


def _float(value: str | None, default: float) -> float:
    try:
        return float(value) if value else default
    except ValueError:
        return default


def _int(value: str | None, default: int) -> int:
    try:
        return int(value) if value else default
    except ValueError:
        return default


class MemexConfig(BaseModel):
    """Runtime configuration.

    ``provider`` None means auto-detect from whichever credentials are set.
    """

    provider: Optional[Provider] = None
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-3-haiku-20240307"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com/v1"
    litellm_api_key: Optional[str] = None
    litellm_base_url: Optional[str] = None
    litellm_model: str = "gpt-4o-mini"
    litellm_team_id: Optional[str] = None
    webhook_url: Optional[str] = None
    llm_timeout: float = 60.0
    llm_max_retries: int = 1
    inject_delay: float = DEFAULT_INJECT_DELAY_SECONDS

    @property
    def has_credentials(self) -> bool:
        """True when any summarization provider has an API key."""
        return bool(self.anthropic_api_key or self.openai_api_key or self.litellm_api_key)

    @classmethod
    def from_env(
        cls,
        project_path: str | os.PathLike[str] | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> MemexConfig:
        """Build config from environment variables.

        Values in the process environment win over ``.env`` (the ``.env``
        file only fills in what is missing). ``webhookUrl`` from the
        project's ``.memex/config.json`` is used when ``MEMEX_WEBHOOK_URL``
        is unset.
        """
        merged: dict[str, str] = {}
        if project_path is not None:
            dotenv_path = Path(project_path) / ".env"
            if dotenv_path.is_file():
                merged.update(
                    {k: v for k, v in dotenv_values(dotenv_path).items() if v is not None}
                )
        merged.update(os.environ if env is None else env)

        provider = merged.get("AI_PROVIDER") or None
        if provider not in (None, "anthropic", "openai", "litellm"):
            logger.warning("Ignoring unknown AI_PROVIDER=%r", provider)
            provider = None

        webhook_url = merged.get("MEMEX_WEBHOOK_URL") or None
        if webhook_url is None and project_path is not None:
            webhook_url = load_project_settings(project_path).get("webhookUrl")

        defaults = cls.model_fields
        return cls(
            provider=provider,
            anthropic_api_key=merged.get("ANTHROPIC_API_KEY") or merged.get("MEMEX_ANTHROPIC_API_KEY"),
            anthropic_model=merged.get("ANTHROPIC_MODEL") or defaults["anthropic_model"].default,
            openai_api_key=merged.get("OPENAI_API_KEY") or merged.get("MEMEX_OPENAI_API_KEY"),
            openai_model=merged.get("OPENAI_MODEL") or defaults["openai_model"].default,
            openai_base_url=merged.get("OPENAI_BASE_URL") or defaults["openai_base_url"].default,
            litellm_api_key=merged.get("LITELLM_API_KEY"),
            litellm_base_url=merged.get("LITELLM_BASE_URL"),
            litellm_model=merged.get("LITELLM_MODEL") or defaults["litellm_model"].default,
            litellm_team_id=merged.get("LITELLM_TEAM_ID"),
            webhook_url=webhook_url if isinstance(webhook_url, str) else None,
            llm_timeout=_float(merged.get("MEMEX_LLM_TIMEOUT"), 60.0),
            llm_max_retries=max(1, _int(merged.get("MEMEX_LLM_MAX_RETRIES"), 1)),
            inject_delay=_float(merged.get("MEMEX_INJECT_DELAY"), DEFAULT_INJECT_DELAY_SECONDS),
        )


def load_project_settings(project_path: str | os.PathLike[str]) -> dict:
    """Read ``.memex/config.json``; an unreadable file counts as empty."""
    path = Path(project_path) / MEMEX_DIR_NAME / CONFIG_FILE_NAME
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.debug("Ignoring unreadable %s", path, exc_info=True)
        return {}
    return data if isinstance(data, dict) else {}


@dataclass(frozen=True)
class ContextOptions:
    """How much context to render.

    Attributes:
        tier: 1 = one-line orientation, 2 = key facts, 3 = full detail.
        max_tokens: Approximate token budget (1 token ~ 4 chars). None uses
            the tier's default ceiling.
        focus: Free-text topic; list items mentioning its keywords come first.
    """

    tier: Tier = 3
    max_tokens: Optional[int] = None
    focus: Optional[str] = None
