"""Prompts for session compression.

COMPRESS_SYSTEM frames the summarizer as the memory manager of a coding
agent. ``build_compress_prompt`` assembles the user message from existing
memory, git context and the transcript tail, and pins down the JSON shape
parsed into MemoryExtraction.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from memex.models.memory import ProjectMemory

COMPRESS_SYSTEM: str = (
    "You are a memory manager for an AI coding agent. "
    "Your job is to extract and maintain a structured understanding of a "
    "software project from conversation transcripts between a developer "
    "and an AI assistant.\n\n"
    "Be concise, accurate, and practical. Focus on what would actually help "
    "the AI resume work on this project without losing context. "
    "Output must always be valid JSON."
)

_SCHEMA: str = """{
  "projectName": "string",
  "stack": ["array of tech stack items"],
  "description": "string - what this project does",
  "decisions": [
    { "decision": "string", "reason": "string", "date": "ISO date string" }
  ],
  "currentFocus": "string - what is being worked on right now",
  "focusHistory": ["previous focus values, oldest first, at most 10"],
  "pendingTasks": ["string array - tasks mentioned but not completed"],
  "importantFiles": [
    { "filePath": "string", "purpose": "string" }
  ],
  "gotchas": ["string array - problems encountered, mistakes made, things to avoid"],
  "sessionSummary": "2-3 sentence summary of this session"
}"""

# Fields the summarizer maintains; session bookkeeping stays out of the prompt.
_PROMPT_FIELDS = {
    "projectName",
    "stack",
    "description",
    "decisions",
    "currentFocus",
    "focusHistory",
    "pendingTasks",
    "importantFiles",
    "gotchas",
}


def build_compress_prompt(
    transcript_tail: str,
    *,
    existing: ProjectMemory | None = None,
    git_context: str | None = None,
    partial: bool = False,
) -> str:
    """Build the user message for a compression call.

    Args:
        transcript_tail: Redacted transcript, already cut to its tail.
        existing: Current project memory; omitted when nothing is recorded.
        git_context: Rendered git context, if the project is a repository.
        partial: True for a mid-session snapshot.

    Returns:
        The formatted user prompt string.
    """
    if existing is not None and not existing.is_empty:
        current = {
            k: v
            for k, v in existing.model_dump(by_alias=True).items()
            if k in _PROMPT_FIELDS
        }
        existing_text = "Existing project memory:\n" + json.dumps(current, indent=2)
    else:
        existing_text = "No existing memory for this project."

    scope = (
        "This is a snapshot of a session that is still in progress."
        if partial
        else "This session has ended."
    )

    parts = [
        "Analyze this conversation transcript and update the project memory.",
        scope,
        existing_text,
    ]
    if git_context:
        parts.append(git_context)
    parts.append(f"--- TRANSCRIPT ---\n{transcript_tail}\n--- END TRANSCRIPT ---")
    parts.append(
        "Return an updated JSON object merging existing memory with new "
        "information from this session.\n"
        f"Schema:\n{_SCHEMA}\n\n"
        "Keep decisions and gotchas that are still relevant. If the focus "
        "changed, move the previous focus into focusHistory.\n"
        "Return ONLY the JSON, no markdown, no explanation."
    )
    return "\n\n".join(parts)
