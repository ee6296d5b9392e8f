"""Session-event webhooks.

``fire_webhook`` POSTs a JSON payload and never raises: a slow or broken
endpoint costs at most the timeout and a debug log line.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal, Optional

import httpx

from memex._version import __version__
from memex.constants import WEBHOOK_TIMEOUT_SECONDS
from memex.models.memory import utc_now_iso

if TYPE_CHECKING:
    from memex.models.memory import ProjectMemory

logger = logging.getLogger(__name__)

WebhookEvent = Literal["session_end", "snapshot"]


def build_webhook_payload(
    memory: ProjectMemory,
    event: WebhookEvent,
    summary: Optional[str] = None,
) -> dict:
    return {
        "event": event,
        "projectPath": memory.project_path,
        "projectName": memory.project_name,
        "focus": memory.current_focus,
        "summary": summary,
        "pendingTasks": list(memory.pending_tasks),
        "gotchas": list(memory.gotchas),
        "timestamp": utc_now_iso(),
    }


def fire_webhook(
    url: str,
    payload: dict,
    *,
    timeout: float = WEBHOOK_TIMEOUT_SECONDS,
    transport: httpx.BaseTransport | None = None,
) -> None:
    """POST ``payload`` as JSON to ``url``; errors are logged and dropped."""
    try:
        with httpx.Client(timeout=timeout, transport=transport) as client:
            response = client.post(
                url,
                json=payload,
                headers={"User-Agent": f"memex/{__version__}"},
            )
        logger.debug("Webhook %s -> HTTP %d", url, response.status_code)
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
        logger.debug("Webhook to %s failed: %s", url, exc)
