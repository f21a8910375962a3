"""
Tests for protected shell execution.

The interception tests use a stand-in helper that only records its
arguments, so nothing is actually moved to a trash area and the targets
of intercepted deletions must still exist afterwards.
"""

import json
import os
import sys

import pytest

from toolhost.protected_shell import (
    HELPER_ENV,
    NO_OUTPUT_MESSAGE,
    PYTHON_BIN_ENV,
    OutputBuffer,
    build_preamble,
    build_protected_command,
    build_shell_env,
    detect_interpreters,
    rewrite_delete_bypass,
    run_shell,
)

requires_posix = pytest.mark.skipif(sys.platform == "win32", reason="needs bash and POSIX signals")


@pytest.fixture
def quiet_shell(tmp_path):
    """A shell that drops the login flag so no profile can write to the output."""
    wrapper = tmp_path / "quiet-bash"
    wrapper.write_text('#!/bin/sh\nshift\nexec bash --noprofile --norc -c "$1"\n')
    wrapper.chmod(0o755)
    return str(wrapper)


def read_helper_calls(log_path) -> list[list[str]]:
    if not log_path.exists():
        return []
    return [json.loads(line) for line in log_path.read_text().splitlines() if line]


class TestRewriteDeleteBypass:
    """Tests for normalizing escape hatches to the shadowed names."""

    def test_command_builtin(self):
        """Test that `command rm` becomes `rm`."""
        assert rewrite_delete_bypass("command rm -rf build") == "rm -rf build"

    def test_absolute_paths(self):
        """Test that /bin/rm and /usr/bin/unlink become bare names."""
        assert rewrite_delete_bypass("/bin/rm a") == "rm a"
        assert rewrite_delete_bypass("x && /usr/bin/unlink b") == "x && unlink b"

    def test_backslash_escape(self):
        """Test that \\rm becomes rm."""
        assert rewrite_delete_bypass("\\rm -f a; \\rmdir d") == "rm -f a; rmdir d"

    def test_mixed_sequence(self):
        """Test several bypasses in one command line."""
        command = "rm -rf /tmp/x; command rm -rf /tmp/y"

        assert rewrite_delete_bypass(command) == "rm -rf /tmp/x; rm -rf /tmp/y"

    def test_unrelated_paths_untouched(self):
        """Test that paths merely containing bin/rm are left alone."""
        assert rewrite_delete_bypass("ls /opt/tools/bin/rmtool") == "ls /opt/tools/bin/rmtool"
        assert rewrite_delete_bypass("cat /home/me/bin/rm") == "cat /home/me/bin/rm"


class TestPreamble:
    """Tests for the function-shadowing preamble."""

    def test_detect_interpreters(self):
        """Test that python-like interpreter names are collected once each."""
        command = "python3 -c 'print(1)' && python3 x && py -3 y"

        assert detect_interpreters(command) == ["py", "python3"]

    def test_no_interpreters(self):
        """Test commands without interpreters."""
        assert detect_interpreters("ls -la && echo hi") == []

    def test_preamble_defines_and_exports(self):
        """Test that every shadow is defined and exported."""
        preamble = build_preamble(["python3"])

        assert f'"${PYTHON_BIN_ENV}" "${HELPER_ENV}" "$@"' in preamble
        assert 'rm() { __toolhost_dd delete "$PWD" rm "$@"; }' in preamble
        assert 'rd() { rmdir "$@"; }' in preamble
        assert "python3() { __toolhost_dd python" in preamble
        assert (
            "export -f __toolhost_dd rm rmdir unlink del erase rd powershell pwsh python3"
            in preamble
        )

    def test_protected_command_layout(self):
        """Test that the rewritten command follows the preamble."""
        script = build_protected_command("/bin/rm a", "/opt/helper.py")

        assert script.startswith("__toolhost_dd() {")
        assert script.endswith("\nrm a")

    def test_no_helper_leaves_command_unchanged(self):
        """Test that without a helper the command is run as given."""
        assert build_protected_command("/bin/rm a", "") == "/bin/rm a"


class TestBuildShellEnv:
    """Tests for child environment construction."""

    def test_precedence(self, monkeypatch):
        """Test ambient env, then overrides, then fixed helper bindings."""
        monkeypatch.setenv("TOOLHOST_TEST_AMBIENT", "ambient")
        monkeypatch.setenv("TOOLHOST_TEST_OVERRIDE", "ambient")

        env = build_shell_env(
            {"TOOLHOST_TEST_OVERRIDE": "override", HELPER_ENV: "spoofed"}, "/opt/helper.py"
        )

        assert env["TOOLHOST_TEST_AMBIENT"] == "ambient"
        assert env["TOOLHOST_TEST_OVERRIDE"] == "override"
        assert env[HELPER_ENV] == "/opt/helper.py"
        assert env[PYTHON_BIN_ENV] == sys.executable


class TestOutputBuffer:
    """Tests for the capped output buffer."""

    def test_cap_applied_on_append(self):
        """Test that the buffer never grows past the limit plus marker."""
        buffer = OutputBuffer(limit=10)
        buffer.append("abcdef")
        buffer.append("ghijkl")

        assert buffer.text == "abcdefghij\n\n... (truncated)"


@requires_posix
class TestRunShell:
    """Tests for foreground execution with a real bash."""

    @pytest.mark.asyncio
    async def test_echo(self, tmp_path):
        """Test that stdout is returned on success."""
        result = await run_shell("echo hello", str(tmp_path), 10_000)

        assert result.endswith("hello")

    @pytest.mark.asyncio
    async def test_no_output(self, tmp_path, quiet_shell):
        """Test the message for a silent successful command."""
        result = await run_shell("true", str(tmp_path), 10_000, shell_path=quiet_shell)

        assert result == NO_OUTPUT_MESSAGE

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_a_result(self, tmp_path):
        """Test that a failing command reports its exit code."""
        result = await run_shell("echo oops >&2; exit 3", str(tmp_path), 10_000)

        assert result.startswith("Command exited with code 3.")
        assert "oops" in result

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path):
        """Test that a slow command is terminated and reported."""
        result = await run_shell("sleep 30", str(tmp_path), 200)

        assert result.startswith("Command timed out after 200ms.")

    @pytest.mark.asyncio
    async def test_missing_shell(self, tmp_path):
        """Test that a spawn failure becomes a message."""
        result = await run_shell(
            "echo hi", str(tmp_path), 10_000, shell_path=str(tmp_path / "no-such-shell")
        )

        assert result.startswith("Failed to execute command:")

    @pytest.mark.asyncio
    async def test_env_override(self, tmp_path):
        """Test that overrides reach the child."""
        result = await run_shell(
            'echo "value=$TOOLHOST_TEST_VALUE"', str(tmp_path), 10_000,
            {"TOOLHOST_TEST_VALUE": "42"},
        )

        assert result.endswith("value=42")

    @pytest.mark.asyncio
    async def test_cwd(self, tmp_path):
        """Test that the command runs in the requested directory."""
        result = await run_shell("pwd -P", str(tmp_path), 10_000)

        assert result.endswith(os.path.realpath(tmp_path))


@requires_posix
class TestDeleteInterception:
    """Tests that deletions are routed to the deferred-delete helper."""

    @pytest.fixture
    def target(self, tmp_path):
        path = tmp_path / "work" / "keep.txt"
        path.parent.mkdir()
        path.write_text("precious")
        return path

    async def run(self, command, target, recording_helper, timeout_ms=10_000):
        helper, log_path = recording_helper
        result = await run_shell(
            command,
            str(target.parent),
            timeout_ms,
            {"HELPER_LOG": str(log_path)},
            helper_path=str(helper),
        )
        return result, read_helper_calls(log_path)

    @pytest.mark.asyncio
    async def test_plain_rm(self, target, recording_helper):
        """Test that rm reaches the helper and the file survives."""
        _, calls = await self.run("rm -f keep.txt", target, recording_helper)

        assert len(calls) == 1
        assert calls[0][0] == "delete"
        assert os.path.realpath(calls[0][1]) == os.path.realpath(target.parent)
        assert calls[0][2:] == ["rm", "-f", "keep.txt"]
        assert target.exists()

    @pytest.mark.asyncio
    async def test_bypass_forms(self, target, recording_helper):
        """Test that command rm, /bin/rm and \\rm are all intercepted."""
        _, calls = await self.run(
            "command rm keep.txt; /bin/rm keep.txt; \\rm keep.txt", target, recording_helper
        )

        assert [call[2] for call in calls] == ["rm", "rm", "rm"]
        assert target.exists()

    @pytest.mark.asyncio
    async def test_subshell_inherits_shadow(self, target, recording_helper):
        """Test that exported shadows apply inside a child bash."""
        _, calls = await self.run("bash -c 'rm keep.txt'", target, recording_helper)

        assert len(calls) == 1
        assert calls[0][2:] == ["rm", "keep.txt"]
        assert target.exists()

    @pytest.mark.asyncio
    async def test_unlink_and_rmdir(self, target, recording_helper):
        """Test that unlink and rmdir are intercepted too."""
        _, calls = await self.run("unlink keep.txt; rmdir .", target, recording_helper)

        assert [call[2] for call in calls] == ["unlink", "rmdir"]
        assert target.exists()
