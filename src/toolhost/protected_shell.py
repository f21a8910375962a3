"""
Protected shell execution.

Commands run as `bash -lc <script>` where the script is a preamble of
shell functions followed by the caller's command. The functions shadow
rm, rmdir, unlink (and their Windows spellings), powershell/pwsh and any
python interpreter named in the command, routing each call through the
deferred-delete helper so deletions land in a trash area instead of being
unlinked. The functions are exported, so subshells inherit them.

Shadowing only catches calls made by name, so the obvious escape hatches
(`command rm`, `/bin/rm`, `\\rm`) are rewritten to the bare name first.

run_shell() is the foreground mode: bounded time, collected output. The
background mode lives in shell_registry and shares spawn_protected().
"""

import asyncio
import codecs
import functools
import logging
import os
import re
import signal
import sys

from toolhost.config import MAX_OUTPUT_CHARS, default_shell, truncate

logger = logging.getLogger(__name__)

PYTHON_BIN_ENV = "TOOLHOST_PYTHON_BIN"
HELPER_ENV = "TOOLHOST_DEFERRED_DELETE_HELPER"

NO_OUTPUT_MESSAGE = "Command completed successfully (no output)."

_BYPASS_REWRITES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bcommand\s+(rm|rmdir|unlink)\b"), r"\1"),
    (re.compile(r"(?<![\w/])(?:/usr/bin|/bin)/(rm|rmdir|unlink)\b"), r"\1"),
    (re.compile(r"(^|[\s;&|()])\\(rm|rmdir|unlink)\b"), r"\1\2"),
]

_INTERPRETER_RE = re.compile(r"\b(python\d*(?:\.\d+)?|py)\b")
_CODE_PAGE_RE = re.compile(r"^Active code page: \d+\s*", re.MULTILINE)

SHADOWED_COMMANDS = ["rm", "rmdir", "unlink", "del", "erase", "rd", "powershell", "pwsh"]


def rewrite_delete_bypass(command: str) -> str:
    """Normalize `command rm`, `/bin/rm`, `/usr/bin/rm` and `\\rm` to plain `rm`."""
    for pattern, replacement in _BYPASS_REWRITES:
        command = pattern.sub(replacement, command)
    return command


def detect_interpreters(command: str) -> list[str]:
    """Distinct python-like interpreter names used in command (python3, py, ...)."""
    return sorted({match.group(1) for match in _INTERPRETER_RE.finditer(command)})


@functools.lru_cache(maxsize=1)
def _warn_unprotected() -> None:
    logger.warning("No deferred-delete helper configured; shell commands run unprotected")


def build_preamble(interpreters: list[str]) -> str:
    lines = [
        "__toolhost_dd() {",
        f'  "${PYTHON_BIN_ENV}" "${HELPER_ENV}" "$@"',
        "}",
        'rm() { __toolhost_dd delete "$PWD" rm "$@"; }',
        'rmdir() { __toolhost_dd delete "$PWD" rmdir "$@"; }',
        'unlink() { __toolhost_dd delete "$PWD" unlink "$@"; }',
        'del() { rm "$@"; }',
        'erase() { rm "$@"; }',
        'rd() { rmdir "$@"; }',
        'powershell() { __toolhost_dd powershell "$PWD" "$(type -P powershell || true)" "$@"; }',
        'pwsh() { __toolhost_dd powershell "$PWD" "$(type -P pwsh || true)" "$@"; }',
    ]
    for name in interpreters:
        lines.append(
            f'{name}() {{ __toolhost_dd python "$PWD" "$(type -P {name} || true)" "$@"; }}'
        )
    exported = " ".join(["__toolhost_dd", *SHADOWED_COMMANDS, *interpreters])
    lines.append(f"export -f {exported} >/dev/null 2>&1 || true")
    return "\n".join(lines) + "\n"


def build_protected_command(command: str, helper_path: str) -> str:
    """
    Wrap command in the interception preamble.

    Without a helper there is nothing to route deletions to, so the
    command is returned untouched.
    """
    if not helper_path:
        _warn_unprotected()
        return command
    preamble = build_preamble(detect_interpreters(command))
    return f"{preamble}\n{rewrite_delete_bypass(command)}"


def build_shell_env(env_overrides: dict[str, str] | None, helper_path: str) -> dict[str, str]:
    """Ambient env, then caller overrides, then the two fixed helper bindings."""
    env = dict(os.environ)
    if env_overrides:
        env.update(env_overrides)
    env[PYTHON_BIN_ENV] = sys.executable
    env[HELPER_ENV] = helper_path
    return env


def shell_argv(script: str, shell_path: str | None = None) -> list[str]:
    return [shell_path or default_shell(), "-lc", script]


class OutputBuffer:
    """Accumulates process output, never exceeding the output ceiling."""

    def __init__(self, limit: int = MAX_OUTPUT_CHARS):
        self.limit = limit
        self.text = ""

    def append(self, chunk: str) -> None:
        self.text = truncate(self.text + chunk, self.limit)

    def __str__(self) -> str:
        return self.text


async def pump_stream(stream: asyncio.StreamReader | None, buffer: OutputBuffer) -> None:
    """Copy a child stream into buffer until EOF, decoding UTF-8 incrementally."""
    if stream is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            break
        buffer.append(decoder.decode(chunk))
    tail = decoder.decode(b"", final=True)
    if tail:
        buffer.append(tail)


async def spawn_protected(
    command: str,
    cwd: str,
    env_overrides: dict[str, str] | None = None,
    *,
    helper_path: str = "",
    shell_path: str | None = None,
) -> asyncio.subprocess.Process:
    """Start the protected script in its own process group with piped output."""
    script = build_protected_command(command, helper_path)
    kwargs = {}
    if sys.platform != "win32":
        kwargs["start_new_session"] = True
    return await asyncio.create_subprocess_exec(
        *shell_argv(script, shell_path),
        cwd=cwd,
        env=build_shell_env(env_overrides, helper_path),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        **kwargs,
    )


def terminate_process(proc: asyncio.subprocess.Process) -> None:
    """Send the platform termination signal to the child and its process group."""
    if proc.returncode is not None:
        return
    try:
        if sys.platform == "win32":
            proc.terminate()
        else:
            os.killpg(proc.pid, signal.SIGTERM)
    except ProcessLookupError:
        pass


async def _collect(proc: asyncio.subprocess.Process, buffer: OutputBuffer) -> int:
    await asyncio.gather(pump_stream(proc.stdout, buffer), pump_stream(proc.stderr, buffer))
    return await proc.wait()


async def _reap(proc: asyncio.subprocess.Process, grace: float = 5.0) -> None:
    try:
        await asyncio.wait_for(proc.wait(), grace)
    except TimeoutError:
        logger.warning(f"Process {proc.pid} still running after SIGTERM")


def clean_console_noise(output: str) -> str:
    """Drop the `Active code page: N` lines Windows consoles print."""
    if sys.platform != "win32":
        return output
    return _CODE_PAGE_RE.sub("", output).lstrip()


async def run_shell(
    command: str,
    cwd: str,
    timeout_ms: int,
    env_overrides: dict[str, str] | None = None,
    *,
    helper_path: str = "",
    shell_path: str | None = None,
) -> str:
    """
    Run a protected command in the foreground and describe the outcome.

    Non-zero exits and timeouts are reported in the returned text, not
    raised; only the caller decides what counts as a failure.
    """
    try:
        proc = await spawn_protected(
            command, cwd, env_overrides, helper_path=helper_path, shell_path=shell_path
        )
    except OSError as e:
        logger.error(f"Failed to spawn shell for command in {cwd}: {e}")
        return f"Failed to execute command: {e}"

    buffer = OutputBuffer()
    try:
        exit_code = await asyncio.wait_for(_collect(proc, buffer), timeout_ms / 1000)
    except TimeoutError:
        logger.info(f"Command timed out after {timeout_ms}ms (pid {proc.pid})")
        terminate_process(proc)
        await _reap(proc)
        return f"Command timed out after {timeout_ms}ms.\n\n{buffer.text}"
    except asyncio.CancelledError:
        terminate_process(proc)
        raise

    output = clean_console_noise(buffer.text)
    if exit_code == 0:
        return output.strip() or NO_OUTPUT_MESSAGE
    return f"Command exited with code {exit_code}.\n\n{truncate(output)}"
