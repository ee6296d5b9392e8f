"""Operator-controlled redaction.

Anything between ``<memex:skip>`` and ``</memex:skip>`` (any case, may span
lines) is replaced by a fixed placeholder before text leaves the process
or is persisted as conversation turns. An opening tag with no closing tag
redacts through the end of the text.
"""

from __future__ import annotations

import re
from typing import Iterable

from memex.constants import SKIP_PLACEHOLDER
from memex.models.memory import ConversationTurn

_SKIP_RE = re.compile(r"<memex:skip>.*?(?:</memex:skip>|\Z)", re.IGNORECASE | re.DOTALL)


def redact(text: str) -> str:
    return _SKIP_RE.sub(SKIP_PLACEHOLDER, text)


def redact_turns(turns: Iterable[ConversationTurn]) -> list[ConversationTurn]:
    return [
        turn.model_copy(update={"content": redact(turn.content)}) for turn in turns
    ]
