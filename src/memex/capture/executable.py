"""Executable resolution and child-environment sanitizing."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Iterable, Mapping, Optional

from memex.constants import COMMAND_LOOKUP_TIMEOUT_SECONDS, CREDENTIAL_ENV_KEYS
from memex.exceptions import ExecutableNotFoundError

logger = logging.getLogger(__name__)


def common_bin_dirs(home: Optional[str] = None) -> list[str]:
    """Well-known install locations checked when the shell lookup fails."""
    dirs = ["/opt/homebrew/bin", "/usr/local/bin", "/usr/bin", "/bin"]
    home = home if home is not None else os.environ.get("HOME")
    if home:
        dirs.append(str(Path(home) / ".local" / "bin"))
    return dirs


def _is_executable(path: str | Path) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def _login_shell_lookup(command: str, shell: str) -> Optional[str]:
    try:
        result = subprocess.run(
            [shell, "-lc", f"command -v {shlex.quote(command)}"],
            capture_output=True,
            text=True,
            timeout=COMMAND_LOOKUP_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("Login-shell lookup of %s failed: %s", command, exc)
        return None
    for line in result.stdout.splitlines():
        line = line.strip()
        if line.startswith("/"):
            return line
    return None


def resolve_executable(
    command: str,
    *,
    shell: Optional[str] = None,
    search_dirs: Optional[Iterable[str]] = None,
) -> str:
    """Absolute path of ``command``.

    Paths containing a separator are taken as given. Bare names are looked
    up through the user's login shell (so profile PATH changes apply), then
    in the common install directories.

    Raises:
        ExecutableNotFoundError: Nothing executable was found.
    """
    if os.sep in command:
        candidate = os.path.abspath(command)
        if _is_executable(candidate):
            return candidate
        raise ExecutableNotFoundError(command, candidate)

    shell = shell or os.environ.get("SHELL") or "/bin/sh"
    attempted = command
    found = _login_shell_lookup(command, shell)
    if found is not None:
        if _is_executable(found):
            return found
        attempted = found

    for directory in search_dirs if search_dirs is not None else common_bin_dirs():
        candidate = os.path.join(directory, command)
        if _is_executable(candidate):
            return candidate

    raise ExecutableNotFoundError(command, attempted)


def sanitize_env(
    env: Mapping[str, str],
    keys: Iterable[str] = CREDENTIAL_ENV_KEYS,
) -> dict[str, str]:
    """Copy of ``env`` without Memex's own credential variables."""
    drop = set(keys)
    return {k: v for k, v in env.items() if k not in drop}


def build_env_unset_args(keys: Iterable[str] = CREDENTIAL_ENV_KEYS) -> list[str]:
    """``-u NAME`` pairs for ``env``, re-asserting removal at exec time."""
    args: list[str] = []
    for key in keys:
        args += ["-u", key]
    return args
