"""
Background shell registry.

Background shells are protected commands started without waiting for
them. Each gets a ShellRecord that keeps collecting output after the
starting tool call has returned. Records are never evicted, so status
and kill requests keep working after the process has exited.
"""

import asyncio
import inspect
import logging
import re
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from toolhost.config import truncate
from toolhost.protected_shell import (
    OutputBuffer,
    pump_stream,
    spawn_protected,
    terminate_process,
)
from toolhost.types import ToolResult

logger = logging.getLogger(__name__)

CloseCallback = Callable[[], Awaitable[None] | None]


@dataclass
class ShellRecord:
    """State of one background shell."""
    id: str
    command: str
    cwd: str
    buffer: OutputBuffer = field(default_factory=OutputBuffer)
    running: bool = True
    exit_code: int | None = None
    started_at: float = field(default_factory=time.time)
    completed_at: float | None = None
    process: asyncio.subprocess.Process | None = field(default=None, repr=False)
    watcher: asyncio.Task | None = field(default=None, repr=False)

    @property
    def output(self) -> str:
        return self.buffer.text

    def kill(self) -> None:
        if self.process is not None:
            terminate_process(self.process)

    async def wait(self) -> int | None:
        """Wait until the process has closed and its callback has run."""
        if self.watcher is not None:
            await asyncio.shield(self.watcher)
        return self.exit_code


class ShellRegistry:
    """Owns every background shell started by this host."""

    def __init__(self, helper_path: str = "", shell_path: str | None = None):
        self.helper_path = helper_path
        self.shell_path = shell_path
        self._shells: dict[str, ShellRecord] = {}

    async def start(
        self,
        command: str,
        cwd: str,
        env_overrides: dict[str, str] | None = None,
        on_close: CloseCallback | None = None,
    ) -> ShellRecord:
        """Spawn command in the background and return its record immediately."""
        process = await spawn_protected(
            command,
            cwd,
            env_overrides,
            helper_path=self.helper_path,
            shell_path=self.shell_path,
        )
        record = ShellRecord(id=str(uuid.uuid4()), command=command, cwd=cwd, process=process)
        self._shells[record.id] = record
        record.watcher = asyncio.create_task(self._watch(record, on_close))
        logger.info(f"Started background shell {record.id} (pid {process.pid}) in {cwd}")
        return record

    async def _watch(self, record: ShellRecord, on_close: CloseCallback | None) -> None:
        process = record.process
        try:
            await asyncio.gather(
                pump_stream(process.stdout, record.buffer),
                pump_stream(process.stderr, record.buffer),
            )
            record.exit_code = await process.wait()
        finally:
            record.running = False
            record.completed_at = time.time()
            logger.info(f"Background shell {record.id} exited with {record.exit_code}")
            if on_close is not None:
                try:
                    result = on_close()
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(f"Close callback for shell {record.id} failed: {e}")

    def get(self, shell_id: str) -> ShellRecord | None:
        return self._shells.get(shell_id)

    def records(self) -> list[ShellRecord]:
        return list(self._shells.values())

    def kill(self, shell_id: str) -> ToolResult:
        record = self._shells.get(shell_id)
        if record is None:
            return ToolResult.fail(f"Shell not found: {shell_id}")
        if not record.running:
            exit_code = "?" if record.exit_code is None else record.exit_code
            return ToolResult.ok(
                f"Shell {shell_id} already completed.\nExit: {exit_code}"
                f"\n\nOutput:\n{truncate(record.output)}"
            )
        logger.info(f"Killing background shell {shell_id}")
        record.kill()
        return ToolResult.ok(f"Killed shell {shell_id}.\n\nOutput:\n{truncate(record.output)}")

    def status(self, shell_id: str, filter: str | None = None) -> ToolResult:
        """Report whether a shell is running, with its output optionally filtered by regex."""
        record = self._shells.get(shell_id)
        if record is None:
            return ToolResult.fail(f"Shell not found: {shell_id}")

        output = record.output
        if filter:
            try:
                pattern = re.compile(filter)
            except re.error as e:
                return ToolResult.fail(f"Invalid filter regex: {e}")
            output = "\n".join(line for line in output.split("\n") if pattern.search(line))

        if record.running:
            elapsed = time.time() - record.started_at
            state = f"Shell {shell_id} is running ({elapsed:.1f}s elapsed)."
        else:
            exit_code = "?" if record.exit_code is None else record.exit_code
            state = f"Shell {shell_id} finished.\nExit: {exit_code}"
        return ToolResult.ok(f"{state}\n\nOutput:\n{truncate(output) or '(no output yet)'}")

    def kill_all(self) -> int:
        """Terminate every running shell. Returns how many were signalled."""
        running = [record for record in self._shells.values() if record.running]
        for record in running:
            record.kill()
        if running:
            logger.info(f"Killed {len(running)} background shell(s)")
        return len(running)

    def kill_by_port(self, port: int) -> list[str]:
        """Terminate running shells whose command mentions port (dev servers)."""
        port_re = re.compile(rf"(?<!\d){port}(?!\d)")
        killed = []
        for record in self._shells.values():
            if record.running and port_re.search(record.command):
                record.kill()
                killed.append(record.id)
        return killed
