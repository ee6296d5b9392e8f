"""Context reinjection for resumed sessions.

The rendered context is written to ``.memex/RESUME.md``. Claude reads
``CLAUDE.md`` on startup, so for that agent the document is also placed
at the top of the project's ``CLAUDE.md`` between marker comments and the
original file is restored afterwards. Other agents are asked to read the
resume file through an inject-on-ready message instead.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from memex.constants import RESUME_FILE_NAME
from memex.models.config import ContextOptions
from memex.models.memory import ProjectMemory
from memex.operations.context import build_resume_content

logger = logging.getLogger(__name__)

CONTEXT_START = "<!-- MEMEX_CONTEXT_START -->"
CONTEXT_END = "<!-- MEMEX_CONTEXT_END -->"
CLAUDE_MD = "CLAUDE.md"
CLAUDE_AGENTS = frozenset({"claude"})

_BLOCK_RE = re.compile(
    re.escape(CONTEXT_START) + r".*?" + re.escape(CONTEXT_END) + r"\n*", re.DOTALL
)


def inject_message(resume_path: str | Path) -> str:
    return (
        f"Please read the file {resume_path} to restore context from our previous "
        "sessions, then ask how to continue."
    )


def reads_claude_md(command: str) -> bool:
    return Path(command).name in CLAUDE_AGENTS


@dataclass(frozen=True)
class ResumeInjection:
    """Where resumed context went for one session.

    Attributes:
        resume_path: The written RESUME.md.
        inject_on_ready: Message to type into the agent, if any.
        claude_md_path: CLAUDE.md carrying the context block, if injected.
    """

    resume_path: Path
    inject_on_ready: Optional[str] = None
    claude_md_path: Optional[Path] = None


def wrap_context_block(content: str, original: Optional[str]) -> str:
    block = "\n".join([CONTEXT_START, content, CONTEXT_END, ""])
    return block + (f"\n\n{original}" if original else "")


def strip_context_block(text: str) -> Optional[str]:
    """Remove context blocks left in ``text``.

    Returns None when the text was nothing but context blocks.
    """
    stripped, count = _BLOCK_RE.subn("", text)
    if count and not stripped.strip():
        return None
    return stripped


@contextmanager
def resume_context(
    project_path: str | Path,
    memex_dir: str | Path,
    memory: ProjectMemory,
    command: str,
    options: Optional[ContextOptions] = None,
) -> Iterator[ResumeInjection]:
    """Place resumed context for the duration of one session.

    On exit ``CLAUDE.md`` is put back exactly as it was (removed if it did
    not exist) and ``RESUME.md`` is deleted.
    """
    resume_path = Path(memex_dir) / RESUME_FILE_NAME
    resume_path.parent.mkdir(parents=True, exist_ok=True)
    content = build_resume_content(memory, options)
    resume_path.write_text(content, encoding="utf-8")

    claude_md: Optional[Path] = None
    original: Optional[str] = None
    if reads_claude_md(command):
        claude_md = Path(project_path) / CLAUDE_MD
        original = None
        if claude_md.is_file():
            # A run killed before restoring CLAUDE.md leaves its block behind
            original = strip_context_block(claude_md.read_text(encoding="utf-8"))
        claude_md.write_text(wrap_context_block(content, original), encoding="utf-8")
        logger.info("Context injected into %s", claude_md)
        injection = ResumeInjection(resume_path, claude_md_path=claude_md)
    else:
        logger.info("Context written to %s", resume_path)
        injection = ResumeInjection(resume_path, inject_on_ready=inject_message(resume_path))

    try:
        yield injection
    finally:
        if claude_md is not None:
            if original is None:
                claude_md.unlink(missing_ok=True)
            else:
                claude_md.write_text(original, encoding="utf-8")
        resume_path.unlink(missing_ok=True)
