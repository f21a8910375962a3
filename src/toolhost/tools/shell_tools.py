"""
Shell tools: Bash, SkillBash, KillShell, ShellStatus.

Bash runs a protected command in the foreground or background. SkillBash
does the same for a command belonging to a skill, first mounting the
secrets the skill declares. Dangerous commands are refused before any
secret is resolved.
"""

import logging
import os
from typing import Any

from toolhost.config import DEFAULT_TIMEOUT_MS, MAX_TIMEOUT_MS, truncate
from toolhost.errors import MissingSecretError
from toolhost.protected_shell import run_shell
from toolhost.safety import is_dangerous_command
from toolhost.secret_mounts import SecretMountSession, SecretResolver
from toolhost.shell_registry import CloseCallback, ShellRecord, ShellRegistry
from toolhost.tools import Tool, bool_arg, int_arg, schema, str_arg
from toolhost.types import Skill, ToolContext, ToolResult

logger = logging.getLogger(__name__)

_COMMAND_PROPERTIES = {
    "command": {"type": "string", "description": "Shell command to run (bash syntax)"},
    "timeout": {
        "type": "number",
        "description": f"Timeout in milliseconds (default {DEFAULT_TIMEOUT_MS}, max {MAX_TIMEOUT_MS})",
    },
    "working_directory": {"type": "string", "description": "Directory to run in"},
    "run_in_background": {"type": "boolean", "description": "Return immediately with a shell id"},
}


def clamp_timeout(args: dict[str, Any]) -> int:
    return max(1, min(int_arg(args, "timeout", DEFAULT_TIMEOUT_MS), MAX_TIMEOUT_MS))


def format_background_start(record: ShellRecord) -> str:
    return (
        f"Command running in background.\nShell ID: {record.id}\n\n"
        f"{truncate(record.output or '(no output yet)')}"
    )


class ShellTools:
    """Handlers for the shell tool group, sharing one registry and skill cache."""

    def __init__(
        self,
        registry: ShellRegistry,
        resolver: SecretResolver,
        helper_path: str = "",
        shell_path: str | None = None,
    ):
        self.registry = registry
        self.resolver = resolver
        self.helper_path = helper_path
        self.shell_path = shell_path
        self.skills: dict[str, Skill] = {}

    def set_skills(self, skills: list[Skill]) -> None:
        self.skills = {skill.id: skill for skill in skills}

    def tools(self) -> list[Tool]:
        return [
            Tool(
                name="Bash",
                description="Run a shell command on this device.",
                handler=self.handle_bash,
                parameters=schema(_COMMAND_PROPERTIES, ["command"]),
            ),
            Tool(
                name="SkillBash",
                description="Run a shell command for a skill, with the skill's secrets mounted.",
                handler=self.handle_skill_bash,
                parameters=schema(
                    {"skill_id": {"type": "string"}, **_COMMAND_PROPERTIES},
                    ["skill_id", "command"],
                ),
            ),
            Tool(
                name="KillShell",
                description="Terminate a background shell.",
                handler=self.handle_kill_shell,
                parameters=schema({"shell_id": {"type": "string"}}, ["shell_id"]),
            ),
            Tool(
                name="ShellStatus",
                description="Show status and output of a background shell.",
                handler=self.handle_shell_status,
                parameters=schema(
                    {
                        "shell_id": {"type": "string"},
                        "filter": {"type": "string", "description": "Regex applied per line"},
                    },
                    ["shell_id"],
                ),
            ),
        ]

    async def _run(
        self,
        command: str,
        cwd: str,
        timeout_ms: int,
        background: bool,
        env_overrides: dict[str, str] | None = None,
        on_close: CloseCallback | None = None,
    ) -> ToolResult:
        if background:
            record = await self.registry.start(command, cwd, env_overrides, on_close)
            return ToolResult.ok(format_background_start(record))
        output = await run_shell(
            command,
            cwd,
            timeout_ms,
            env_overrides,
            helper_path=self.helper_path,
            shell_path=self.shell_path,
        )
        return ToolResult.ok(truncate(output))

    async def handle_bash(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        command = str_arg(args, "command")
        if not command.strip():
            return ToolResult.fail("command is required.")
        reason = is_dangerous_command(command)
        if reason:
            logger.warning(f"Blocked dangerous command ({reason}) for request {context.request_id}")
            return ToolResult.fail(f"Command blocked: {reason}")

        cwd = str_arg(args, "working_directory") or os.getcwd()
        return await self._run(
            command, cwd, clamp_timeout(args), bool_arg(args, "run_in_background")
        )

    async def handle_skill_bash(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        skill_id = str_arg(args, "skill_id").strip()
        if not skill_id:
            return ToolResult.fail("skill_id is required.")

        skill = self.skills.get(skill_id)
        if skill is None or not skill.secret_mounts:
            # Relative script paths in a skill resolve against its directory
            if skill is not None and skill.directory and not args.get("working_directory"):
                args = {**args, "working_directory": skill.directory}
            return await self.handle_bash(args, context)

        command = str_arg(args, "command")
        if not command.strip():
            return ToolResult.fail("command is required.")
        reason = is_dangerous_command(command)
        if reason:
            logger.warning(f"Blocked dangerous command ({reason}) for skill {skill_id}")
            return ToolResult.fail(f"Command blocked: {reason}")

        cwd = str_arg(args, "working_directory") or skill.directory or os.getcwd()
        background = bool_arg(args, "run_in_background")
        session = SecretMountSession(self.resolver, context, "SkillBash")
        handed_off = False
        try:
            try:
                await session.mount(skill.secret_mounts, cwd)
            except MissingSecretError as e:
                logger.warning(f"Skill {skill_id}: {e}")
                return ToolResult.fail(str(e))
            result = await self._run(
                command,
                cwd,
                clamp_timeout(args),
                background,
                session.env,
                on_close=session.release if background else None,
            )
            handed_off = background
            return result
        finally:
            if not handed_off:
                session.release()

    async def handle_kill_shell(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        shell_id = str_arg(args, "shell_id").strip()
        if not shell_id:
            return ToolResult.fail("shell_id is required.")
        return self.registry.kill(shell_id)

    async def handle_shell_status(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        shell_id = str_arg(args, "shell_id").strip()
        if not shell_id:
            return ToolResult.fail("shell_id is required.")
        return self.registry.status(shell_id, str_arg(args, "filter") or None)
