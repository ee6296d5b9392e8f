"""Transcript logging for captured agent sessions.

TranscriptLogger turns raw terminal I/O into RawCaptureEntry records,
appends each one to a JSONL structured log as soon as it exists, and
offers two read-only projections over the entry buffer:

- ``render_transcript()`` -- flat ``[USER]: ...`` / ``[AGENT]: ...`` text
  used as compression input.
- ``conversation_turns()`` -- consecutive same-source entries merged into
  ConversationTurn records.

``clean_raw_capture`` is the companion for the recorder's raw capture
file: it strips terminal control sequences and keeps printable ASCII.
"""

from __future__ import annotations

import json
import logging
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Optional, Sequence

from memex.constants import RAW_LOG_SUFFIX, STRUCTURED_LOG_SUFFIX
from memex.models.memory import ConversationTurn
from memex.models.session import RawCaptureEntry, Source

logger = logging.getLogger(__name__)

# CSI (including private "?" parameters), OSC and two-byte escapes.
_ANSI_RE = re.compile(
    r"\x1b\[[0-9;?]*[ -/]*[@-~]"
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
    r"|\x1b[()][A-Za-z0-9]"
    r"|\x1b[=>78DEHMc]"
)
_NON_PRINTABLE_RE = re.compile(r"[^\x20-\x7e\n\t]")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")
_LINE_SPLIT_RE = re.compile(r"\r\n|\r|\n")

_ROLE_FOR_SOURCE = {"user": "user", "agent": "assistant"}


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences, leaving everything else."""
    return _ANSI_RE.sub("", text)


def clean_raw_capture(raw: str) -> str:
    """Reduce a raw terminal capture to readable plain text.

    Control sequences are removed, carriage returns become newlines, only
    printable ASCII plus newline and tab survive, and runs of three or
    more newlines collapse to two.
    """
    text = strip_ansi(raw)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _NON_PRINTABLE_RE.sub("", text)
    text = _EXCESS_NEWLINES_RE.sub("\n\n", text)
    return text.strip()


def read_raw_capture(path: str | Path | None) -> str:
    """Cleaned contents of a raw capture file; empty if it is missing."""
    if path is None:
        return ""
    path = Path(path)
    if not path.is_file():
        return ""
    try:
        raw = path.read_bytes().decode("utf-8", errors="replace")
    except OSError:
        logger.warning("Could not read raw capture %s", path, exc_info=True)
        return ""
    return clean_raw_capture(raw)


def session_log_stem(now: Optional[datetime] = None) -> str:
    """File stem for a new session, e.g. ``2026-01-01T10-00-00-000Z``."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"


def raw_log_path_for(structured_log_path: str | Path) -> Path:
    path = Path(structured_log_path)
    return path.with_name(path.stem + RAW_LOG_SUFFIX)


def collapse_turns(entries: Sequence[RawCaptureEntry]) -> list[ConversationTurn]:
    """Merge consecutive same-source entries into conversation turns.

    The merged turn keeps the timestamp of its first entry; texts are
    joined with newlines.
    """
    turns: list[ConversationTurn] = []
    current_source: Optional[str] = None
    for entry in entries:
        if turns and entry.source == current_source:
            last = turns[-1]
            turns[-1] = last.model_copy(
                update={"content": f"{last.content}\n{entry.normalized_text}"}
            )
            continue
        current_source = entry.source
        turns.append(
            ConversationTurn(
                role=_ROLE_FOR_SOURCE[entry.source],  # type: ignore[arg-type]
                content=entry.normalized_text,
                timestamp=entry.timestamp,
            )
        )
    return turns


class TranscriptLogger:
    """Append-only capture log for one session.

    Usage::

        tlog = TranscriptLogger.create(store.sessions_dir)
        tlog.log_input("fix the login bug\\r")
        tlog.log_output("\\x1b[32mOn it.\\x1b[0m")
        tlog.render_transcript()  # "[USER]: fix the login bug\\n[AGENT]: On it."
        tlog.close()
    """

    def __init__(
        self,
        path: str | Path,
        *,
        entries: Sequence[RawCaptureEntry] = (),
    ) -> None:
        self.path = Path(path)
        self._entries: list[RawCaptureEntry] = list(entries)
        self._input_buffer = ""
        self._fh: Optional[IO[str]] = None

    @classmethod
    def create(cls, sessions_dir: str | Path, *, now: Optional[datetime] = None) -> TranscriptLogger:
        """New logger whose log file is named after the start time."""
        sessions_dir = Path(sessions_dir)
        sessions_dir.mkdir(parents=True, exist_ok=True)
        return cls(sessions_dir / (session_log_stem(now) + STRUCTURED_LOG_SUFFIX))

    @classmethod
    def load(cls, path: str | Path) -> TranscriptLogger:
        """Rehydrate a logger from an existing structured log.

        Lines that are not valid entries (a torn final write after a crash,
        for instance) are skipped.
        """
        path = Path(path)
        entries: list[RawCaptureEntry] = []
        if path.is_file():
            with path.open(encoding="utf-8", errors="replace") as fh:
                for lineno, line in enumerate(fh, 1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(RawCaptureEntry.from_log_dict(json.loads(line)))
                    except (ValueError, KeyError, TypeError):
                        logger.debug("Skipping malformed entry %s:%d", path, lineno)
        return cls(path, entries=entries)

    @property
    def raw_log_path(self) -> Path:
        return raw_log_path_for(self.path)

    @property
    def entries(self) -> tuple[RawCaptureEntry, ...]:
        return tuple(self._entries)

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def log_input(self, data: str) -> None:
        """Buffer typed input; each completed line becomes one entry."""
        self._input_buffer += data
        *complete, self._input_buffer = _LINE_SPLIT_RE.split(self._input_buffer)
        for line in complete:
            text = strip_ansi(line).strip()
            if text:
                self._append("user", line, text)

    def log_output(self, data: str) -> None:
        """Record one chunk of agent output; blank chunks are dropped."""
        text = strip_ansi(data).strip()
        if text:
            self._append("agent", data, text)

    def _append(self, source: Source, raw: str, text: str) -> None:
        entry = RawCaptureEntry(
            timestamp=int(time.time() * 1000),
            source=source,
            raw_text=raw,
            normalized_text=text,
        )
        self._entries.append(entry)
        if self._fh is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = self.path.open("a", encoding="utf-8")
        self._fh.write(json.dumps(entry.to_log_dict()) + "\n")
        self._fh.flush()

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def render_transcript(self) -> str:
        return "\n".join(
            f"[{e.source.upper()}]: {e.normalized_text}" for e in self._entries
        )

    def conversation_turns(self, limit: Optional[int] = None) -> list[ConversationTurn]:
        """Collapsed turns, optionally only the last ``limit`` of them."""
        turns = collapse_turns(self._entries)
        if limit is not None:
            turns = turns[-limit:] if limit > 0 else []
        return turns

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> TranscriptLogger:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
