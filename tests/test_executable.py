"""Tests for executable resolution and environment sanitizing."""

from __future__ import annotations

import os
import stat

import pytest

from memex.capture.executable import (
    build_env_unset_args,
    common_bin_dirs,
    resolve_executable,
    sanitize_env,
)
from memex.constants import CREDENTIAL_ENV_KEYS
from memex.exceptions import ExecutableNotFoundError, MemexError


def _make_executable(path):
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


class TestResolveExecutable:
    def test_explicit_path(self, tmp_path):
        agent = _make_executable(tmp_path / "agent")
        assert resolve_executable(str(agent)) == str(agent)

    def test_explicit_path_not_executable(self, tmp_path):
        target = tmp_path / "agent"
        target.write_text("not a program")
        with pytest.raises(ExecutableNotFoundError) as exc_info:
            resolve_executable(str(target))
        assert exc_info.value.attempted_path == str(target)

    def test_falls_back_to_search_dirs(self, tmp_path):
        agent = _make_executable(tmp_path / "my-agent")
        found = resolve_executable(
            "my-agent", shell=str(tmp_path / "no-such-shell"), search_dirs=[str(tmp_path)]
        )
        assert found == str(agent)

    def test_not_found_carries_remediation(self, tmp_path):
        with pytest.raises(ExecutableNotFoundError) as exc_info:
            resolve_executable(
                "definitely-not-installed-xyz",
                shell=str(tmp_path / "no-such-shell"),
                search_dirs=[str(tmp_path)],
            )
        err = exc_info.value
        assert isinstance(err, MemexError)
        assert err.command == "definitely-not-installed-xyz"
        assert "Run: which definitely-not-installed-xyz" in str(err)

    def test_common_bin_dirs_include_local_bin(self):
        dirs = common_bin_dirs("/home/dev")
        assert dirs[:4] == ["/opt/homebrew/bin", "/usr/local/bin", "/usr/bin", "/bin"]
        assert dirs[-1] == os.path.join("/home/dev", ".local", "bin")


class TestEnvironment:
    def test_sanitize_env_drops_credentials(self):
        env = {"PATH": "/usr/bin", "ANTHROPIC_API_KEY": "sk", "OPENAI_API_KEY": "sk", "AI_PROVIDER": "x"}
        assert sanitize_env(env) == {"PATH": "/usr/bin"}

    def test_sanitize_env_leaves_input_untouched(self):
        env = {"LITELLM_API_KEY": "k"}
        sanitize_env(env)
        assert env == {"LITELLM_API_KEY": "k"}

    def test_unset_args_cover_every_key(self):
        args = build_env_unset_args()
        assert args[::2] == ["-u"] * len(CREDENTIAL_ENV_KEYS)
        assert args[1::2] == list(CREDENTIAL_ENV_KEYS)
