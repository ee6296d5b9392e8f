"""Compression of session transcripts into project memory.

CompressionOrchestrator runs one compression attempt end to end:

1. Too-short transcripts never leave the process (final runs still close
   the session record with a placeholder summary).
2. ``<memex:skip>`` spans are redacted; only the transcript tail is sent.
3. The summarizer's reply is parsed into a MemoryExtraction and merged
   into existing memory, with focus history repaired deterministically.
4. Final runs record a RecentSession entry, the last conversation turns
   and close the session record; snapshot runs only update memory fields.

A parse or transport failure on a final run is never lost: a failed
RecentSession entry carrying the reason is persisted and the session
record is marked failed before CompressionFailedError is raised. There is
no retry at this level.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional, Sequence

from pydantic import ValidationError

from memex.constants import (
    EMPTY_SUMMARY,
    FAILED_SUMMARY,
    MAX_CONVERSATION_TURNS,
    MAX_RECENT_SESSIONS,
    MIN_TRANSCRIPT_CHARS,
    TOO_SHORT_SUMMARY,
    TRANSCRIPT_TAIL_CHARS,
)
from memex.exceptions import CompressionParseError, SummarizerTransportError
from memex.integrations.git import GitContext, format_git_context, get_git_context
from memex.integrations.webhook import build_webhook_payload, fire_webhook
from memex.models.compression import CompressionOutcome, CompressionStatus, MemoryExtraction
from memex.models.memory import RecentSession, utc_now_iso
from memex.operations.focus import normalize_history, push_focus
from memex.operations.redaction import redact, redact_turns
from memex.prompts.compress import COMPRESS_SYSTEM, build_compress_prompt

if TYPE_CHECKING:
    from memex.llm.protocols import Summarizer
    from memex.models.memory import ConversationTurn, ProjectMemory
    from memex.storage.store import MemoryStore

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?\s*```$", re.DOTALL)

GitContextProvider = Callable[[str], Optional[GitContext]]
WebhookSender = Callable[[str, dict], None]


# ---------------------------------------------------------------------------
# Parsing and merging
# ---------------------------------------------------------------------------


def parse_extraction(text: str) -> MemoryExtraction:
    """Parse a summarizer reply into a MemoryExtraction.

    Accepts bare JSON or JSON wrapped in a markdown code fence; as a last
    resort the outermost ``{...}`` span is tried.

    Raises:
        ValueError: Empty reply, invalid JSON, or wrong shape.
    """
    cleaned = text.strip()
    if not cleaned:
        raise ValueError("empty response from summarizer")
    fenced = _FENCE_RE.match(cleaned)
    if fenced:
        cleaned = fenced.group(1).strip()

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start < 0 or end <= start:
            raise ValueError(f"response is not valid JSON: {exc}") from exc
        try:
            data = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as inner:
            raise ValueError(f"response is not valid JSON: {inner}") from inner

    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")

    # Older prompt shape
    if "keyDecisions" in data and "decisions" not in data:
        data["decisions"] = data.pop("keyDecisions")
    if not data.get("sessionSummary"):
        recent = data.get("recentSessions")
        if isinstance(recent, list) and recent and isinstance(recent[-1], dict):
            data["sessionSummary"] = recent[-1].get("summary") or ""

    try:
        return MemoryExtraction.model_validate(data)
    except ValidationError as exc:
        raise ValueError(
            f"response does not match the memory schema ({exc.error_count()} errors)"
        ) from exc


def merge_extraction(memory: ProjectMemory, extraction: MemoryExtraction) -> ProjectMemory:
    """Fold extracted fields into a copy of ``memory``.

    Fields the summarizer left out keep their current values. Focus
    history is repaired so it stays consistent with the focus change.
    """
    updates: dict = {}
    if extraction.project_name:
        updates["project_name"] = extraction.project_name
    for name in ("description", "stack", "decisions", "pending_tasks", "important_files", "gotchas"):
        value = getattr(extraction, name)
        if value is not None:
            updates[name] = value

    prior_focus = memory.current_focus
    new_focus = (
        extraction.current_focus.strip()
        if extraction.current_focus is not None
        else prior_focus
    )
    history = (
        memory.focus_history if extraction.focus_history is None else extraction.focus_history
    )
    if new_focus != prior_focus:
        history = push_focus(history, prior_focus, new_focus)
    else:
        history = normalize_history(history, new_focus)
    updates["current_focus"] = new_focus
    updates["focus_history"] = history

    return memory.model_copy(update=updates, deep=True)


def upsert_recent_session(
    sessions: Sequence[RecentSession], entry: RecentSession
) -> list[RecentSession]:
    """Replace any entry for the same session, append ``entry`` as newest."""
    kept = [s for s in sessions if not s.same_session(entry)]
    kept.append(entry)
    return kept[-MAX_RECENT_SESSIONS:]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class CompressionOrchestrator:
    """Compress transcripts into one project's memory.

    Args:
        store: Memory store of the project.
        summarizer: Summarization collaborator.
        webhook_url: Fired after successful runs when set.
        git_context: Git-context collaborator; ``None`` disables it.
        webhook_sender: Sends the webhook (fire-and-forget).
    """

    def __init__(
        self,
        store: MemoryStore,
        summarizer: Summarizer,
        *,
        webhook_url: Optional[str] = None,
        git_context: Optional[GitContextProvider] = get_git_context,
        webhook_sender: WebhookSender = fire_webhook,
    ) -> None:
        self._store = store
        self._summarizer = summarizer
        self._webhook_url = webhook_url
        self._git_context = git_context
        self._send_webhook = webhook_sender

    def compress(
        self,
        transcript: str,
        *,
        partial: bool = False,
        session_id: Optional[int] = None,
        log_path: Optional[str | Path] = None,
        turns: Sequence[ConversationTurn] = (),
    ) -> CompressionOutcome:
        """Run one compression attempt.

        Args:
            transcript: Cleaned session transcript.
            partial: Snapshot of a running session (no session bookkeeping).
            session_id: Session record to close (final runs).
            log_path: Structured log of the session.
            turns: Conversation turns of the session (final runs).

        Returns:
            CompressionOutcome with status COMPRESSED or TOO_SHORT.

        Raises:
            CompressionParseError: Reply empty or malformed (failure persisted).
            SummarizerTransportError: Summarizer call failed (failure persisted).
        """
        memory = self._store.load_or_init()
        log_file = str(log_path) if log_path is not None else None

        if len(transcript.strip()) < MIN_TRANSCRIPT_CHARS:
            if partial:
                return CompressionOutcome(CompressionStatus.TOO_SHORT, memory, partial=True)
            if session_id is not None:
                self._store.finalize_session(session_id, TOO_SHORT_SUMMARY, log_file)
            logger.info("Transcript too short to compress (%d chars)", len(transcript.strip()))
            return CompressionOutcome(CompressionStatus.TOO_SHORT, memory, TOO_SHORT_SUMMARY)

        tail = redact(transcript)[-TRANSCRIPT_TAIL_CHARS:]
        prompt = build_compress_prompt(
            tail,
            existing=memory,
            git_context=self._git_text(),
            partial=partial,
        )

        try:
            reply = self._summarizer.complete([{"role": "user", "content": prompt}], COMPRESS_SYSTEM)
        except Exception as exc:
            reason = f"summarizer call failed: {type(exc).__name__}: {exc}"
            self._record_failure(memory, reason, partial, session_id, log_file, turns)
            raise SummarizerTransportError(reason) from exc

        try:
            extraction = parse_extraction(reply)
        except ValueError as exc:
            reason = str(exc)
            self._record_failure(memory, reason, partial, session_id, log_file, turns)
            raise CompressionParseError(reason) from exc

        updated = merge_extraction(memory, extraction)
        summary = (extraction.session_summary or "").strip()

        if partial:
            self._store.save(updated)
            self._notify(updated, "snapshot", summary or None)
            return CompressionOutcome(
                CompressionStatus.COMPRESSED, updated, summary, partial=True
            )

        summary = summary or EMPTY_SUMMARY
        kept = redact_turns(turns)[-MAX_CONVERSATION_TURNS:]
        if kept:
            updated.last_conversation_turns = kept
        updated.recent_sessions = upsert_recent_session(
            updated.recent_sessions,
            RecentSession(
                date=utc_now_iso(),
                summary=summary,
                log_file=log_file or "",
                session_id=session_id,
            ),
        )
        self._store.save(updated)
        if session_id is not None:
            self._store.finalize_session(session_id, summary, log_file, kept)

        logger.info(
            "Memory updated (focus: %s, %d turns saved)",
            updated.current_focus or "not set",
            len(kept),
        )
        self._notify(updated, "session_end", summary)
        return CompressionOutcome(
            CompressionStatus.COMPRESSED, updated, summary, turns_saved=len(kept)
        )

    def _git_text(self) -> Optional[str]:
        if self._git_context is None:
            return None
        ctx = self._git_context(self._store.project_path)
        return format_git_context(ctx) if ctx is not None else None

    def _record_failure(
        self,
        memory: ProjectMemory,
        reason: str,
        partial: bool,
        session_id: Optional[int],
        log_file: Optional[str],
        turns: Sequence[ConversationTurn],
    ) -> None:
        logger.warning("Compression failed: %s", reason)
        if partial:
            # The session is still running; its final compression records it.
            return
        memory.recent_sessions = upsert_recent_session(
            memory.recent_sessions,
            RecentSession(
                date=utc_now_iso(),
                summary=FAILED_SUMMARY,
                log_file=log_file or "",
                session_id=session_id,
                failed=True,
                reason=reason,
            ),
        )
        self._store.save(memory)
        if session_id is not None:
            self._store.finalize_session(
                session_id,
                FAILED_SUMMARY,
                log_file,
                redact_turns(turns)[-MAX_CONVERSATION_TURNS:],
                failed=True,
            )

    def _notify(self, memory: ProjectMemory, event: str, summary: Optional[str]) -> None:
        if not self._webhook_url:
            return
        self._send_webhook(
            self._webhook_url,
            build_webhook_payload(memory, event, summary),  # type: ignore[arg-type]
        )
